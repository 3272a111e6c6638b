import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from config.config import settings
from config.group_settings import GroupSettingsService, describe_value
from storage import open_storage

CHAT = -1001


class GroupSettingsServiceTest(unittest.TestCase):
    def setUp(self):
        self.storage = open_storage(":memory:")
        self.service = GroupSettingsService(self.storage.groups)

    def tearDown(self):
        self.storage.close()

    def test_defaults_are_created_lazily(self):
        self.assertIsNone(self.storage.groups.fetch(CHAT))
        group = self.service.get(CHAT)
        self.assertEqual(group.spam_sensitivity, settings.DEFAULT_SPAM_SENSITIVITY)
        self.assertEqual(group.max_warnings, settings.DEFAULT_MAX_WARNINGS)
        self.assertEqual(group.mute_duration_minutes, settings.DEFAULT_MUTE_MINUTES)
        self.assertEqual(group.ban_duration_minutes, settings.DEFAULT_BAN_MINUTES)
        self.assertIsNotNone(self.storage.groups.fetch(CHAT))

    def test_update_persists(self):
        old, new = self.service.update(CHAT, "spam_sensitivity", "8")
        self.assertEqual(old, settings.DEFAULT_SPAM_SENSITIVITY)
        self.assertEqual(new, 8)
        self.assertEqual(self.storage.groups.fetch(CHAT).spam_sensitivity, 8)

    def test_durations_accept_units(self):
        self.service.update(CHAT, "mute_duration", "2h")
        self.service.update(CHAT, "ban-duration", "1w")
        group = self.service.get(CHAT)
        self.assertEqual(group.mute_duration_minutes, 120)
        self.assertEqual(group.ban_duration_minutes, 10080)

    def test_text_settings(self):
        self.service.update(CHAT, "welcome", "  Hi all  ")
        self.assertEqual(self.service.get(CHAT).welcome_message, "Hi all")

    def test_invalid_values_are_rejected(self):
        bad = [
            ("spam_sensitivity", "11"),
            ("spam_sensitivity", "high"),
            ("max_warnings", "0"),
            ("mute_duration", "perm"),
            ("rules", "   "),
            ("colour", "blue"),
        ]
        for key, value in bad:
            with self.subTest(key=key, value=value):
                with self.assertRaises(ValueError):
                    self.service.update(CHAT, key, value)
        self.assertEqual(self.service.get(CHAT).spam_sensitivity, settings.DEFAULT_SPAM_SENSITIVITY)

    def test_describe_value(self):
        self.assertEqual(describe_value("mute_duration_minutes", 60), "1 hour")
        self.assertEqual(describe_value("max_warnings", 3), "3")


if __name__ == "__main__":
    unittest.main()
