from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from config.config import settings

MINUTE_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


class InfractionKind(str, Enum):
    WARN = "WARN"
    MUTE = "MUTE"
    BAN = "BAN"
    UNMUTE = "UNMUTE"
    UNBAN = "UNBAN"

    @property
    def is_restriction(self) -> bool:
        return self in (InfractionKind.MUTE, InfractionKind.BAN)


class RuleKind(str, Enum):
    WORD = "WORD"
    PHRASE = "PHRASE"
    REGEX = "REGEX"
    LINK = "LINK"


class ViolationKind(str, Enum):
    SPAM = "SPAM"
    BANNED_CONTENT = "BANNED_CONTENT"


class RestrictionState(str, Enum):
    ACTIVE = "ACTIVE"
    LIFTING = "LIFTING"
    PROCESSED = "PROCESSED"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A message as seen by the filters; never persisted by them."""
    sender_id: int
    chat_id: int
    text: str
    timestamp_ms: int
    message_id: int = 0


@dataclass(frozen=True, slots=True)
class ContentRule:
    pattern: str
    kind: RuleKind
    severity: int
    id: int | None = None


@dataclass(frozen=True, slots=True)
class Violation:
    kind: ViolationKind
    user_id: int
    chat_id: int
    message_id: int
    detail: str
    rule: ContentRule | None = None
    user_name: str | None = None


@dataclass(slots=True)
class GroupSettings:
    chat_id: int
    spam_sensitivity: int
    max_warnings: int
    mute_duration_minutes: int
    ban_duration_minutes: int
    welcome_message: str
    rules: str


def default_group_settings(chat_id: int) -> GroupSettings:
    """The only place group defaults are assembled."""
    return GroupSettings(
        chat_id=chat_id,
        spam_sensitivity=settings.DEFAULT_SPAM_SENSITIVITY,
        max_warnings=settings.DEFAULT_MAX_WARNINGS,
        mute_duration_minutes=settings.DEFAULT_MUTE_MINUTES,
        ban_duration_minutes=settings.DEFAULT_BAN_MINUTES,
        welcome_message=settings.WELCOME_MESSAGE,
        rules=settings.DEFAULT_RULES,
    )


@dataclass(slots=True)
class InfractionInput:
    user_id: int
    kind: InfractionKind
    reason: str
    action_taken: str
    issued_at_ms: int
    chat_id: int | None = None
    duration_minutes: int | None = None
    issued_by: int | None = None

    @property
    def expires_at_ms(self) -> int | None:
        if self.duration_minutes is None:
            return None
        return self.issued_at_ms + self.duration_minutes * MINUTE_MS


@dataclass(frozen=True, slots=True)
class Infraction:
    id: int
    user_id: int
    chat_id: int | None
    kind: InfractionKind
    reason: str
    action_taken: str
    duration_minutes: int | None
    issued_by: int | None
    issued_at_ms: int
    expires_at_ms: int | None
    processed: bool = False

    def is_active(self, at_ms: int) -> bool:
        if self.processed:
            return False
        return self.expires_at_ms is None or self.expires_at_ms > at_ms


def active_restriction(
    history: List[Infraction],
    kind: InfractionKind,
    at_ms: int,
) -> Optional[Infraction]:
    """Most recent infraction of `kind`, if it is still in force at `at_ms`."""
    latest: Infraction | None = None
    for item in history:
        if item.kind != kind:
            continue
        if latest is None or (item.issued_at_ms, item.id) > (latest.issued_at_ms, latest.id):
            latest = item
    if latest is not None and latest.is_active(at_ms):
        return latest
    return None


@dataclass(frozen=True, slots=True)
class ModerationDecision:
    """Outcome of the escalation ladder, before any side effect."""
    action: InfractionKind
    duration_minutes: int | None
    escalated: bool
    count: int
    threshold: int


@dataclass(slots=True)
class AppliedAction:
    violation: Violation
    decision: ModerationDecision
    infraction_ids: List[int] = field(default_factory=list)
    message_deleted: bool = False
    enforced: bool = False
    notified: bool = False

    @property
    def action(self) -> InfractionKind:
        return self.decision.action


@dataclass(slots=True)
class ResolvedRestriction:
    user_id: int
    kind: InfractionKind
    infraction_ids: List[int]
    lifted_chats: List[int] = field(default_factory=list)
    failed_chats: List[int] = field(default_factory=list)
    state: RestrictionState = RestrictionState.ACTIVE
