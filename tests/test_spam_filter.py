import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from core.types import ChatMessage
from filters.spam import detect_spam, evaluate_signals, is_spam, signal_threshold


def _msg(text: str, ts: int = 0) -> ChatMessage:
    return ChatMessage(sender_id=1, chat_id=-100, text=text, timestamp_ms=ts)


CAPS_ONLY = "BUY CHEAP WATCHES TODAY"
CAPS_AND_URLS = "BUY CHEAP WATCHES TODAY ONLY NOW http://a.io http://b.io"


class ThresholdTest(unittest.TestCase):
    def test_threshold_curve(self):
        expected = {1: 2, 2: 2, 3: 2, 4: 2, 5: 2, 6: 1, 7: 1, 8: 1, 9: 1, 10: 1}
        for sensitivity, threshold in expected.items():
            with self.subTest(sensitivity=sensitivity):
                self.assertEqual(signal_threshold(sensitivity), threshold)

    def test_out_of_range_sensitivity_is_clamped(self):
        self.assertEqual(signal_threshold(0), signal_threshold(1))
        self.assertEqual(signal_threshold(42), signal_threshold(10))


class SignalTest(unittest.TestCase):
    def test_caps_ratio(self):
        self.assertTrue(evaluate_signals(CAPS_ONLY, [], 5).caps)
        self.assertFalse(evaluate_signals("Normal sentence here", [], 5).caps)

    def test_caps_ignores_text_without_letters(self):
        self.assertFalse(evaluate_signals("12345 !!! 678", [], 10).caps)

    def test_url_burst_limit_follows_sensitivity(self):
        two_urls = "see http://a.io and https://b.io"
        self.assertTrue(evaluate_signals(two_urls, [], 5).url_burst)
        self.assertFalse(evaluate_signals(two_urls, [], 1).url_burst)

    def test_character_repetition(self):
        self.assertTrue(evaluate_signals("wooooow!!!!!", [], 5).repetition)
        self.assertFalse(evaluate_signals("wooooow", [], 5).repetition)
        self.assertTrue(evaluate_signals("wooooow", [], 10).repetition)
        self.assertFalse(evaluate_signals("wooow", [], 10).repetition)

    def test_repeated_words(self):
        self.assertTrue(evaluate_signals("buy Buy BUY now", [], 5).repeated_words)
        self.assertFalse(evaluate_signals("buy buy now", [], 5).repeated_words)

    def test_length(self):
        self.assertTrue(evaluate_signals("x" * 401, [], 5).length)
        self.assertFalse(evaluate_signals("x" * 400, [], 5).length)

    def test_near_duplicate(self):
        recent = [_msg("join my channel for free coins")]
        self.assertTrue(evaluate_signals("join my channel for free coins!", recent, 5).near_duplicate)
        self.assertFalse(evaluate_signals("what time is the meeting?", recent, 5).near_duplicate)

    def test_signal_names(self):
        signals = evaluate_signals(CAPS_AND_URLS, [], 5)
        self.assertEqual(signals.count, 2)
        self.assertEqual(signals.names(), ["caps", "url_burst"])


class IsSpamTest(unittest.TestCase):
    def test_threshold_two_at_medium_sensitivity(self):
        self.assertFalse(is_spam(CAPS_ONLY, [], 5))
        self.assertTrue(is_spam(CAPS_AND_URLS, [], 5))

    def test_single_signal_is_enough_at_max_sensitivity(self):
        self.assertTrue(is_spam(CAPS_ONLY, [], 10))

    def test_caps_and_url_burst_example(self):
        self.assertTrue(is_spam("AAAAAAAAA http://x.co http://y.co http://z.co", [], 10))

    def test_near_duplicate_counts_towards_verdict(self):
        recent = [_msg("join my channel for free coins")]
        self.assertFalse(is_spam("join my channel for free coins", recent, 5))
        self.assertTrue(is_spam("join my channel for free coins", recent, 10))

    def test_empty_text_is_not_spam(self):
        self.assertFalse(is_spam("", [], 10))

    def test_plain_message_is_not_spam(self):
        self.assertFalse(is_spam("Does anyone know when the meetup starts?", [], 10))

    def test_fail_open_on_internal_error(self):
        with patch("filters.spam.evaluate_signals", side_effect=RuntimeError("boom")):
            self.assertFalse(is_spam(CAPS_AND_URLS, [], 10))

    def test_fail_open_on_malformed_history(self):
        self.assertFalse(is_spam("hello there", [object()], 10))


class DetectSpamTest(unittest.TestCase):
    def test_returns_tripped_signals(self):
        signals = detect_spam(CAPS_AND_URLS, [], 5)
        self.assertIsNotNone(signals)
        self.assertEqual(signals.names(), ["caps", "url_burst"])

    def test_returns_none_below_threshold(self):
        self.assertIsNone(detect_spam(CAPS_ONLY, [], 5))

    def test_scores_once(self):
        with patch("filters.spam.evaluate_signals", wraps=evaluate_signals) as scorer:
            detect_spam(CAPS_AND_URLS, [], 5)
        self.assertEqual(scorer.call_count, 1)

    def test_fail_open_returns_none(self):
        with patch("filters.spam.evaluate_signals", side_effect=RuntimeError("boom")):
            self.assertIsNone(detect_spam(CAPS_AND_URLS, [], 10))


if __name__ == "__main__":
    unittest.main()
