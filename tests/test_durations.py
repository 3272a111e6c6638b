import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from utils.durations import format_duration, parse_duration


class ParseDurationTest(unittest.TestCase):
    def test_units(self):
        cases = {
            "90": 90,
            "30m": 30,
            "2h": 120,
            "1d": 1440,
            "1w": 10080,
            "1 week": 10080,
            "3 Hours": 180,
        }
        for raw, minutes in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(parse_duration(raw), minutes)

    def test_indefinite(self):
        for raw in ("perm", "permanent", "forever", "0"):
            with self.subTest(raw=raw):
                self.assertIsNone(parse_duration(raw))

    def test_invalid(self):
        for raw in ("", "abc", "5y", "-5m", "1.5h"):
            with self.subTest(raw=raw):
                with self.assertRaises(ValueError):
                    parse_duration(raw)


class FormatDurationTest(unittest.TestCase):
    def test_formatting(self):
        self.assertEqual(format_duration(None), "indefinite")
        self.assertEqual(format_duration(1), "1 minute")
        self.assertEqual(format_duration(90), "90 minutes")
        self.assertEqual(format_duration(60), "1 hour")
        self.assertEqual(format_duration(2880), "2 days")
        self.assertEqual(format_duration(10080), "1 week")


if __name__ == "__main__":
    unittest.main()
