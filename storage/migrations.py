from __future__ import annotations

MIGRATIONS: tuple[tuple[int, str], ...] = (
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS users (
            telegram_id INTEGER PRIMARY KEY,
            username TEXT,
            first_name TEXT,
            first_seen_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP),
            last_seen_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP)
        );
        CREATE INDEX IF NOT EXISTS idx_users_username
            ON users(username COLLATE NOCASE);

        CREATE TABLE IF NOT EXISTS group_settings (
            chat_id INTEGER PRIMARY KEY,
            spam_sensitivity INTEGER NOT NULL,
            max_warnings INTEGER NOT NULL,
            mute_duration_minutes INTEGER NOT NULL,
            ban_duration_minutes INTEGER NOT NULL,
            welcome_message TEXT NOT NULL,
            rules TEXT NOT NULL,
            created_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP),
            updated_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP)
        );

        CREATE TABLE IF NOT EXISTS banned_content (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            pattern TEXT NOT NULL,
            kind TEXT NOT NULL CHECK (kind IN ('WORD', 'PHRASE', 'REGEX', 'LINK')),
            severity INTEGER NOT NULL CHECK (severity BETWEEN 1 AND 5),
            added_by INTEGER,
            added_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP)
        );

        -- append-only; `processed` is the only column ever updated
        CREATE TABLE IF NOT EXISTS infractions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            chat_id INTEGER,
            kind TEXT NOT NULL CHECK (kind IN ('WARN', 'MUTE', 'BAN', 'UNMUTE', 'UNBAN')),
            reason TEXT NOT NULL,
            action_taken TEXT NOT NULL,
            duration_minutes INTEGER,
            issued_by INTEGER,
            issued_at_ms INTEGER NOT NULL,
            expires_at_ms INTEGER,
            processed BOOLEAN NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_infractions_user_kind
            ON infractions(user_id, kind, issued_at_ms);
        CREATE INDEX IF NOT EXISTS idx_infractions_expiry
            ON infractions(processed, expires_at_ms);

        CREATE TABLE IF NOT EXISTS log_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at DATETIME NOT NULL DEFAULT (CURRENT_TIMESTAMP),
            level TEXT NOT NULL,
            logger TEXT NOT NULL,
            message TEXT NOT NULL,
            context TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_log_events_level_time
            ON log_events(level, created_at);
        """,
    ),
)

__all__ = ["MIGRATIONS"]
