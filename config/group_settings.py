"""
Per-group settings that administrators can change without restarting the bot.
.env provides the defaults; each chat's row is created lazily on first read.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, Tuple

from core.types import GroupSettings, default_group_settings
from storage.interfaces import GroupSettingsStore
from utils.durations import format_duration, parse_duration
from utils.logger import get_logger

LOGGER = get_logger(__name__)


def _parse_sensitivity(raw: str) -> int:
    value = int(raw)
    if not 1 <= value <= 10:
        raise ValueError("spam_sensitivity must be between 1 and 10")
    return value


def _parse_max_warnings(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise ValueError("max_warnings must be at least 1")
    return value


def _parse_minutes(raw: str) -> int:
    minutes = parse_duration(raw)
    if minutes is None:
        raise ValueError("Duration must be finite, e.g. 30m, 2h or 1d")
    return minutes


def _parse_text(raw: str) -> str:
    text = raw.strip()
    if not text:
        raise ValueError("Text must not be empty")
    return text


# /set key -> (GroupSettings attribute, parser)
SETTING_KEYS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "spam_sensitivity": ("spam_sensitivity", _parse_sensitivity),
    "max_warnings": ("max_warnings", _parse_max_warnings),
    "mute_duration": ("mute_duration_minutes", _parse_minutes),
    "ban_duration": ("ban_duration_minutes", _parse_minutes),
    "welcome": ("welcome_message", _parse_text),
    "rules": ("rules", _parse_text),
}


def describe_value(attr: str, value: object) -> str:
    if attr.endswith("_minutes"):
        return format_duration(int(value))
    return str(value)


class GroupSettingsService:
    """Lazily creates, reads and validates updates of GroupSettings rows."""

    def __init__(self, store: GroupSettingsStore):
        self._store = store

    def get(self, chat_id: int) -> GroupSettings:
        group = self._store.fetch(chat_id)
        if group is None:
            group = default_group_settings(chat_id)
            self._store.upsert(group)
            LOGGER.info("Created default settings for chat %s", chat_id)
        return group

    def update(self, chat_id: int, key: str, raw_value: str) -> Tuple[object, object]:
        """
        Apply `/set key value`. Returns (old, new); raises ValueError for an
        unknown key or an invalid value.
        """
        normalized = key.strip().lower().replace("-", "_")
        entry = SETTING_KEYS.get(normalized)
        if entry is None:
            raise ValueError(f"Unknown setting: {key}")
        attr, parser = entry

        try:
            value = parser(raw_value)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {normalized}: {exc}") from None

        group = self.get(chat_id)
        old = getattr(group, attr)
        if old == value:
            return old, value

        self._store.upsert(replace(group, **{attr: value}))
        LOGGER.info("Chat %s: %s changed %r -> %r", chat_id, attr, old, value)
        return old, value


__all__ = ["GroupSettingsService", "SETTING_KEYS", "describe_value"]
