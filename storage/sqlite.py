from __future__ import annotations

import contextlib
import json
import sqlite3
from datetime import datetime
from threading import RLock
from typing import Iterable, List, Sequence

from core.types import (
    ContentRule,
    GroupSettings,
    Infraction,
    InfractionInput,
    InfractionKind,
    RuleKind,
)
from .interfaces import (
    ContentRuleStore,
    GroupSettingsStore,
    InfractionStore,
    UserProfile,
    UserStore,
)


class Storage:
    """
    Entry point for interacting with SQLite-backed repositories. Keeps a single
    connection guarded by an RLock; operations are small and executed serially.
    """

    def __init__(self, *, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = RLock()
        self.infractions: InfractionStore = _InfractionStore(conn, self._lock)
        self.rules: ContentRuleStore = _ContentRuleStore(conn, self._lock)
        self.groups: GroupSettingsStore = _GroupSettingsStore(conn, self._lock)
        self.users: UserStore = _UserStore(conn, self._lock)
        self.logs = _LogStore(conn, self._lock)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class _SQLiteRepoBase:
    def __init__(self, conn: sqlite3.Connection, lock: RLock):
        self._conn = conn
        self._lock = lock

    @contextlib.contextmanager
    def _cursor(self) -> Iterable[sqlite3.Cursor]:
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()


_INFRACTION_COLUMNS = """
    id, user_id, chat_id, kind, reason, action_taken, duration_minutes,
    issued_by, issued_at_ms, expires_at_ms, processed
"""


def _row_to_infraction(row: sqlite3.Row) -> Infraction:
    return Infraction(
        id=row["id"],
        user_id=row["user_id"],
        chat_id=row["chat_id"],
        kind=InfractionKind(row["kind"]),
        reason=row["reason"],
        action_taken=row["action_taken"],
        duration_minutes=row["duration_minutes"],
        issued_by=row["issued_by"],
        issued_at_ms=row["issued_at_ms"],
        expires_at_ms=row["expires_at_ms"],
        processed=bool(row["processed"]),
    )


class _InfractionStore(_SQLiteRepoBase, InfractionStore):
    def write(self, data: InfractionInput) -> Infraction:
        payload = (
            data.user_id,
            data.chat_id,
            data.kind.value,
            data.reason,
            data.action_taken,
            data.duration_minutes,
            data.issued_by,
            data.issued_at_ms,
            data.expires_at_ms,
        )

        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO infractions (
                    user_id, chat_id, kind, reason, action_taken,
                    duration_minutes, issued_by, issued_at_ms, expires_at_ms
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                payload,
            )
            new_id = int(cur.lastrowid)

        return Infraction(
            id=new_id,
            user_id=data.user_id,
            chat_id=data.chat_id,
            kind=data.kind,
            reason=data.reason,
            action_taken=data.action_taken,
            duration_minutes=data.duration_minutes,
            issued_by=data.issued_by,
            issued_at_ms=data.issued_at_ms,
            expires_at_ms=data.expires_at_ms,
        )

    def fetch_for_user(self, user_id: int, limit: int | None = None) -> Sequence[Infraction]:
        sql = f"""
            SELECT {_INFRACTION_COLUMNS}
            FROM infractions
            WHERE user_id = ?
            ORDER BY issued_at_ms DESC, id DESC
        """
        params: tuple = (user_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (user_id, limit)

        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()

        return [_row_to_infraction(row) for row in rows]

    def mark_processed(self, infraction_id: int) -> None:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE infractions SET processed = 1 WHERE id = ? AND processed = 0",
                (infraction_id,),
            )

    def mark_user_processed(self, user_id: int, kind: InfractionKind) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE infractions
                SET processed = 1
                WHERE user_id = ? AND kind = ? AND processed = 0
                """,
                (user_id, kind.value),
            )
            return cur.rowcount

    def fetch_expired_restrictions(self, now_ms: int) -> Sequence[Infraction]:
        # A row is skipped while a newer, unprocessed row of the same kind for
        # the same user is still in force (supersession).
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_INFRACTION_COLUMNS}
                FROM infractions i
                WHERE i.kind IN ('BAN', 'MUTE')
                  AND i.processed = 0
                  AND i.expires_at_ms IS NOT NULL
                  AND i.expires_at_ms <= :now
                  AND NOT EXISTS (
                      SELECT 1 FROM infractions n
                      WHERE n.user_id = i.user_id
                        AND n.kind = i.kind
                        AND n.processed = 0
                        AND (n.issued_at_ms > i.issued_at_ms
                             OR (n.issued_at_ms = i.issued_at_ms AND n.id > i.id))
                        AND (n.expires_at_ms IS NULL OR n.expires_at_ms > :now)
                  )
                ORDER BY i.issued_at_ms ASC, i.id ASC
                """,
                {"now": now_ms},
            )
            rows = cur.fetchall()

        return [_row_to_infraction(row) for row in rows]

    def fetch_restricted_chats(self, user_id: int, kind: InfractionKind) -> List[int]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT chat_id
                FROM infractions
                WHERE user_id = ?
                  AND kind = ?
                  AND processed = 0
                  AND chat_id IS NOT NULL
                ORDER BY chat_id
                """,
                (user_id, kind.value),
            )
            rows = cur.fetchall()

        return [int(row["chat_id"]) for row in rows]


class _ContentRuleStore(_SQLiteRepoBase, ContentRuleStore):
    def fetch_all(self) -> Sequence[ContentRule]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, pattern, kind, severity
                FROM banned_content
                ORDER BY severity DESC, id ASC
                """,
            )
            rows = cur.fetchall()

        return [
            ContentRule(
                id=row["id"],
                pattern=row["pattern"],
                kind=RuleKind(row["kind"]),
                severity=row["severity"],
            )
            for row in rows
        ]

    def add(self, pattern: str, kind: RuleKind, severity: int, added_by: int | None) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO banned_content(pattern, kind, severity, added_by)
                VALUES (?, ?, ?, ?)
                """,
                (pattern, kind.value, severity, added_by),
            )
            return int(cur.lastrowid)

    def remove(self, rule_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM banned_content WHERE id = ?", (rule_id,))
            return cur.rowcount > 0


class _GroupSettingsStore(_SQLiteRepoBase, GroupSettingsStore):
    def fetch(self, chat_id: int) -> GroupSettings | None:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT chat_id, spam_sensitivity, max_warnings, mute_duration_minutes,
                       ban_duration_minutes, welcome_message, rules
                FROM group_settings
                WHERE chat_id = ?
                """,
                (chat_id,),
            )
            row = cur.fetchone()

        if not row:
            return None

        return GroupSettings(
            chat_id=row["chat_id"],
            spam_sensitivity=row["spam_sensitivity"],
            max_warnings=row["max_warnings"],
            mute_duration_minutes=row["mute_duration_minutes"],
            ban_duration_minutes=row["ban_duration_minutes"],
            welcome_message=row["welcome_message"],
            rules=row["rules"],
        )

    def upsert(self, group: GroupSettings) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO group_settings (
                    chat_id, spam_sensitivity, max_warnings, mute_duration_minutes,
                    ban_duration_minutes, welcome_message, rules
                )
                VALUES (:chat_id, :spam_sensitivity, :max_warnings, :mute_duration_minutes,
                        :ban_duration_minutes, :welcome_message, :rules)
                ON CONFLICT(chat_id) DO UPDATE SET
                    spam_sensitivity = excluded.spam_sensitivity,
                    max_warnings = excluded.max_warnings,
                    mute_duration_minutes = excluded.mute_duration_minutes,
                    ban_duration_minutes = excluded.ban_duration_minutes,
                    welcome_message = excluded.welcome_message,
                    rules = excluded.rules,
                    updated_at = CURRENT_TIMESTAMP
                """,
                {
                    "chat_id": group.chat_id,
                    "spam_sensitivity": group.spam_sensitivity,
                    "max_warnings": group.max_warnings,
                    "mute_duration_minutes": group.mute_duration_minutes,
                    "ban_duration_minutes": group.ban_duration_minutes,
                    "welcome_message": group.welcome_message,
                    "rules": group.rules,
                },
            )


class _UserStore(_SQLiteRepoBase, UserStore):
    def upsert(
        self,
        telegram_id: int,
        *,
        username: str | None,
        first_name: str | None = None,
    ) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO users(telegram_id, username, first_name)
                VALUES (:telegram_id, :username, :first_name)
                ON CONFLICT(telegram_id) DO UPDATE SET
                    username = excluded.username,
                    first_name = COALESCE(excluded.first_name, users.first_name),
                    last_seen_at = CURRENT_TIMESTAMP
                """,
                {
                    "telegram_id": telegram_id,
                    "username": username,
                    "first_name": first_name,
                },
            )

    def fetch(self, telegram_id: int) -> UserProfile | None:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT telegram_id, username, first_name, first_seen_at, last_seen_at
                FROM users
                WHERE telegram_id = ?
                """,
                (telegram_id,),
            )
            row = cur.fetchone()

        return _row_to_profile(row) if row else None

    def fetch_by_username(self, username: str) -> UserProfile | None:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT telegram_id, username, first_name, first_seen_at, last_seen_at
                FROM users
                WHERE username = ? COLLATE NOCASE
                ORDER BY last_seen_at DESC
                LIMIT 1
                """,
                (username.lstrip("@"),),
            )
            row = cur.fetchone()

        return _row_to_profile(row) if row else None


class _LogStore(_SQLiteRepoBase):
    def write(self, level: str, logger: str, message: str, context: dict | None = None) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO log_events(level, logger, message, context)
                VALUES (?, ?, ?, ?)
                """,
                (
                    level,
                    logger,
                    message,
                    json.dumps(context) if context else None,
                ),
            )


def _row_to_profile(row: sqlite3.Row) -> UserProfile:
    return UserProfile(
        telegram_id=row["telegram_id"],
        username=row["username"],
        first_name=row["first_name"],
        first_seen_at=_parse_dt(row["first_seen_at"]),
        last_seen_at=_parse_dt(row["last_seen_at"]),
    )


def _parse_dt(raw: str | datetime | None) -> datetime:
    if raw is None:
        return datetime.fromtimestamp(0)
    if isinstance(raw, datetime):
        return raw
    # SQLite returns ISO8601 strings
    return datetime.fromisoformat(raw)
