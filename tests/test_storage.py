import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from core.types import MINUTE_MS, InfractionInput, InfractionKind, RuleKind, active_restriction
from storage import open_storage

NOW = 1_700_000_000_000
USER = 501
CHAT = -1001


def _restriction(kind, *, minutes_ago, duration, user=USER, chat=CHAT, issued_by=None):
    return InfractionInput(
        user_id=user,
        chat_id=chat,
        kind=kind,
        reason="test",
        action_taken=kind.value,
        duration_minutes=duration,
        issued_by=issued_by,
        issued_at_ms=NOW - minutes_ago * MINUTE_MS,
    )


class InfractionStoreTest(unittest.TestCase):
    def setUp(self):
        self.storage = open_storage(":memory:")
        self.store = self.storage.infractions

    def tearDown(self):
        self.storage.close()

    def test_write_computes_expiry(self):
        row = self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=0, duration=30))
        self.assertEqual(row.expires_at_ms, NOW + 30 * MINUTE_MS)
        stored = self.store.fetch_for_user(USER)
        self.assertEqual([r.id for r in stored], [row.id])
        self.assertFalse(stored[0].processed)

    def test_history_is_newest_first(self):
        first = self.store.write(_restriction(InfractionKind.WARN, minutes_ago=10, duration=None))
        second = self.store.write(_restriction(InfractionKind.WARN, minutes_ago=5, duration=None))
        self.assertEqual([r.id for r in self.store.fetch_for_user(USER)], [second.id, first.id])
        self.assertEqual(len(self.store.fetch_for_user(USER, limit=1)), 1)

    def test_expired_restriction_is_returned(self):
        row = self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=120, duration=60))
        self.assertEqual([r.id for r in self.store.fetch_expired_restrictions(NOW)], [row.id])

    def test_active_and_indefinite_restrictions_are_not_returned(self):
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=10, duration=60))
        self.store.write(_restriction(InfractionKind.BAN, minutes_ago=600, duration=None))
        self.store.write(_restriction(InfractionKind.WARN, minutes_ago=600, duration=None))
        self.assertEqual(self.store.fetch_expired_restrictions(NOW), [])

    def test_superseded_restriction_is_not_returned(self):
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=120, duration=60))
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=10, duration=60))
        self.assertEqual(self.store.fetch_expired_restrictions(NOW), [])

    def test_supersession_is_per_kind_and_user(self):
        mute = self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=120, duration=60))
        self.store.write(_restriction(InfractionKind.BAN, minutes_ago=10, duration=60))
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=10, duration=60, user=USER + 1))
        self.assertEqual([r.id for r in self.store.fetch_expired_restrictions(NOW)], [mute.id])

    def test_processed_rows_are_not_returned(self):
        row = self.store.write(_restriction(InfractionKind.BAN, minutes_ago=120, duration=60))
        self.store.mark_processed(row.id)
        self.assertEqual(self.store.fetch_expired_restrictions(NOW), [])
        self.assertTrue(self.store.fetch_for_user(USER)[0].processed)

    def test_restricted_chats(self):
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=120, duration=60, chat=-1))
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=100, duration=60, chat=-2))
        done = self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=90, duration=60, chat=-3))
        self.store.mark_processed(done.id)
        self.assertEqual(self.store.fetch_restricted_chats(USER, InfractionKind.MUTE), [-2, -1])
        self.assertEqual(self.store.fetch_restricted_chats(USER, InfractionKind.BAN), [])

    def test_mark_user_processed(self):
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=5, duration=60))
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=3, duration=None))
        self.store.write(_restriction(InfractionKind.BAN, minutes_ago=3, duration=None))
        self.assertEqual(self.store.mark_user_processed(USER, InfractionKind.MUTE), 2)
        self.assertEqual(self.store.mark_user_processed(USER, InfractionKind.MUTE), 0)
        self.assertEqual(self.store.fetch_restricted_chats(USER, InfractionKind.BAN), [CHAT])

    def test_active_restriction_uses_latest_row(self):
        self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=30, duration=None))
        latest = self.store.write(_restriction(InfractionKind.MUTE, minutes_ago=5, duration=60))
        history = list(self.store.fetch_for_user(USER))
        self.assertEqual(active_restriction(history, InfractionKind.MUTE, NOW).id, latest.id)
        self.assertIsNone(active_restriction(history, InfractionKind.MUTE, NOW + 2 * 60 * MINUTE_MS))
        self.assertIsNone(active_restriction(history, InfractionKind.BAN, NOW))


class RuleAndUserStoreTest(unittest.TestCase):
    def setUp(self):
        self.storage = open_storage(":memory:")

    def tearDown(self):
        self.storage.close()

    def test_rules_roundtrip_ordered_by_severity(self):
        low = self.storage.rules.add("spam", RuleKind.WORD, 1, added_by=7)
        high = self.storage.rules.add(r"casin[o0]", RuleKind.REGEX, 5, added_by=7)
        rules = self.storage.rules.fetch_all()
        self.assertEqual([r.id for r in rules], [high, low])
        self.assertIs(rules[0].kind, RuleKind.REGEX)

        self.assertTrue(self.storage.rules.remove(low))
        self.assertFalse(self.storage.rules.remove(low))
        self.assertEqual([r.id for r in self.storage.rules.fetch_all()], [high])

    def test_users_upsert_and_lookup(self):
        self.storage.users.upsert(42, username="Alice", first_name="Alice")
        self.storage.users.upsert(42, username="alice_new")

        profile = self.storage.users.fetch(42)
        self.assertEqual(profile.username, "alice_new")
        self.assertEqual(profile.first_name, "Alice")
        self.assertEqual(self.storage.users.fetch_by_username("@ALICE_NEW").telegram_id, 42)
        self.assertIsNone(self.storage.users.fetch_by_username("bob"))
        self.assertIsNone(self.storage.users.fetch(43))


if __name__ == "__main__":
    unittest.main()
