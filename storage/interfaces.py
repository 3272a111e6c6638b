from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol, Sequence

from core.types import (
    ContentRule,
    GroupSettings,
    Infraction,
    InfractionInput,
    InfractionKind,
    RuleKind,
)


@dataclass(slots=True)
class UserProfile:
    telegram_id: int
    username: str | None
    first_name: str | None
    first_seen_at: datetime
    last_seen_at: datetime

    @property
    def mention(self) -> str:
        if self.username:
            return f"@{self.username}"
        return self.first_name or str(self.telegram_id)


class InfractionStore(Protocol):
    def write(self, data: InfractionInput) -> Infraction: ...

    def fetch_for_user(self, user_id: int, limit: int | None = None) -> Sequence[Infraction]: ...

    def mark_processed(self, infraction_id: int) -> None: ...

    def mark_user_processed(self, user_id: int, kind: InfractionKind) -> int: ...

    def fetch_expired_restrictions(self, now_ms: int) -> Sequence[Infraction]: ...

    def fetch_restricted_chats(self, user_id: int, kind: InfractionKind) -> List[int]: ...


class ContentRuleStore(Protocol):
    def fetch_all(self) -> Sequence[ContentRule]: ...

    def add(self, pattern: str, kind: RuleKind, severity: int, added_by: int | None) -> int: ...

    def remove(self, rule_id: int) -> bool: ...


class GroupSettingsStore(Protocol):
    def fetch(self, chat_id: int) -> GroupSettings | None: ...

    def upsert(self, group: GroupSettings) -> None: ...


class UserStore(Protocol):
    def upsert(
        self,
        telegram_id: int,
        *,
        username: str | None,
        first_name: str | None = None,
    ) -> None: ...

    def fetch(self, telegram_id: int) -> UserProfile | None: ...

    def fetch_by_username(self, username: str) -> UserProfile | None: ...
