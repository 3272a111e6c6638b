"""
services/moderation.py
────────────────────────────────────────────────────────
Turns violations into infractions and platform restrictions.

ESCALATION LADDER (one per violation class, re-derived from history):
- SPAM:           MUTE for mute_duration  ->  MUTE for the escalation duration
- BANNED_CONTENT: WARN                    ->  BAN for ban_duration

The light infraction is always recorded first; once the count of light
infractions issued by the bot reaches max_warnings, the terminal action
applies instead. `decide_action` is pure; `ModerationCoordinator` performs
the side effects.

Platform failures are logged and leave the recorded infraction in place
("recorded but not enforced"). Storage failures propagate.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from telegram.error import TelegramError

from config.config import settings
from config.group_settings import GroupSettingsService
from core.types import (
    MINUTE_MS,
    AppliedAction,
    GroupSettings,
    Infraction,
    InfractionInput,
    InfractionKind,
    ModerationDecision,
    Violation,
    ViolationKind,
    now_ms,
)
from services.platform import ChatPlatform, is_already_gone
from storage.sqlite import Storage
from utils.formatter import format_admin_notice, format_violation_notice
from utils.logger import get_logger

LOGGER = get_logger(__name__)


def light_action(kind: ViolationKind) -> InfractionKind:
    if kind is ViolationKind.SPAM:
        return InfractionKind.MUTE
    if kind is ViolationKind.BANNED_CONTENT:
        return InfractionKind.WARN
    raise ValueError(f"Unhandled violation kind: {kind!r}")


def escalated_action(kind: InfractionKind) -> str:
    """`action_taken` of a terminal row, so it never counts as a light one."""
    return f"{kind.value}_ESCALATED"


def count_prior(history: List[Infraction], kind: ViolationKind) -> int:
    """Bot-issued light infractions for this violation class; escalation rows are not counted."""
    counted = light_action(kind)
    return sum(
        1
        for item in history
        if item.kind is counted
        and item.issued_by is None
        and item.action_taken == counted.value
    )


def decide_action(
    kind: ViolationKind,
    count: int,
    group: GroupSettings,
    escalation_mute_minutes: int,
) -> ModerationDecision:
    threshold = group.max_warnings
    escalated = count >= threshold

    if kind is ViolationKind.SPAM:
        duration = group.mute_duration_minutes
        if escalated:
            duration = max(duration, escalation_mute_minutes)
        return ModerationDecision(InfractionKind.MUTE, duration, escalated, count, threshold)

    if kind is ViolationKind.BANNED_CONTENT:
        if escalated:
            return ModerationDecision(
                InfractionKind.BAN, group.ban_duration_minutes, True, count, threshold
            )
        return ModerationDecision(InfractionKind.WARN, None, False, count, threshold)

    raise ValueError(f"Unhandled violation kind: {kind!r}")


def _reason(violation: Violation) -> str:
    if violation.kind is ViolationKind.SPAM:
        return f"Spam: {violation.detail}"
    return f"Banned content: {violation.detail}"


class ModerationCoordinator:
    def __init__(
        self,
        storage: Storage,
        platform: ChatPlatform,
        group_settings: GroupSettingsService,
        *,
        escalation_mute_minutes: int | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.platform = platform
        self.group_settings = group_settings
        self.escalation_mute_minutes = (
            escalation_mute_minutes
            if escalation_mute_minutes is not None
            else settings.SPAM_ESCALATION_MUTE_MINUTES
        )
        self.clock = clock

    # ───────────────────────────────
    # Violations detected by the filters
    # ───────────────────────────────
    async def apply_violation(
        self, violation: Violation, group: GroupSettings | None = None
    ) -> AppliedAction:
        if group is None:
            group = self.group_settings.get(violation.chat_id)
        return await self.handle_violation(violation.user_id, violation.chat_id, violation, group)

    async def handle_violation(
        self,
        user_id: int,
        chat_id: int,
        violation: Violation,
        group: GroupSettings,
    ) -> AppliedAction:
        now = self.clock()

        deleted = await self._delete_offending(chat_id, violation.message_id)

        light = light_action(violation.kind)
        light_row = self.storage.infractions.write(
            InfractionInput(
                user_id=user_id,
                chat_id=chat_id,
                kind=light,
                reason=_reason(violation),
                action_taken=light.value,
                duration_minutes=group.mute_duration_minutes if light is InfractionKind.MUTE else None,
                issued_at_ms=now,
            )
        )
        ids = [light_row.id]

        history = list(self.storage.infractions.fetch_for_user(user_id))
        decision = decide_action(
            violation.kind,
            count_prior(history, violation.kind),
            group,
            self.escalation_mute_minutes,
        )

        if decision.escalated and (
            decision.action is not light or decision.duration_minutes != light_row.duration_minutes
        ):
            terminal = self.storage.infractions.write(
                InfractionInput(
                    user_id=user_id,
                    chat_id=chat_id,
                    kind=decision.action,
                    reason=f"{_reason(violation)} (escalated after {decision.count}/{decision.threshold})",
                    action_taken=escalated_action(decision.action),
                    duration_minutes=decision.duration_minutes,
                    issued_at_ms=now,
                )
            )
            ids.append(terminal.id)

        LOGGER.info(
            "Violation %s by user %s in chat %s: action=%s escalated=%s count=%d/%d",
            violation.kind.value,
            user_id,
            chat_id,
            decision.action.value,
            decision.escalated,
            decision.count,
            decision.threshold,
        )

        applied = AppliedAction(
            violation=violation,
            decision=decision,
            infraction_ids=ids,
            message_deleted=deleted,
        )
        applied.enforced = await self._enforce(
            decision.action, chat_id, user_id, decision.duration_minutes, now
        )
        applied.notified = await self._notify(chat_id, format_violation_notice(violation, decision))
        return applied

    # ───────────────────────────────
    # Administrator actions
    # ───────────────────────────────
    async def apply_admin_action(
        self,
        kind: InfractionKind,
        user_id: int,
        chat_id: int,
        *,
        issued_by: int,
        duration_minutes: Optional[int] = None,
        reason: str = "",
        user_name: str | None = None,
    ) -> Tuple[Infraction, bool]:
        """Record and enforce a manual action. Returns (infraction, enforced)."""
        now = self.clock()

        if kind in (InfractionKind.UNMUTE, InfractionKind.UNBAN):
            lifted_kind = InfractionKind.MUTE if kind is InfractionKind.UNMUTE else InfractionKind.BAN
            closed = self.storage.infractions.mark_user_processed(user_id, lifted_kind)
            LOGGER.info("Closed %d %s record(s) of user %s", closed, lifted_kind.value, user_id)

        row = self.storage.infractions.write(
            InfractionInput(
                user_id=user_id,
                chat_id=chat_id,
                kind=kind,
                reason=reason or "No reason given",
                action_taken=kind.value,
                duration_minutes=duration_minutes if kind.is_restriction else None,
                issued_by=issued_by,
                issued_at_ms=now,
            )
        )

        enforced = await self._enforce(kind, chat_id, user_id, row.duration_minutes, now)
        if enforced:
            await self._notify(
                chat_id,
                format_admin_notice(kind, user_id, user_name, row.duration_minutes, reason),
            )
        return row, enforced

    # ───────────────────────────────
    # Platform side effects
    # ───────────────────────────────
    async def _delete_offending(self, chat_id: int, message_id: int) -> bool:
        if not message_id:
            return False
        try:
            await self.platform.delete_message(chat_id, message_id)
            return True
        except TelegramError as exc:
            LOGGER.warning("Failed to delete message %s in chat %s: %s", message_id, chat_id, exc)
            return False

    async def _enforce(
        self,
        kind: InfractionKind,
        chat_id: int,
        user_id: int,
        duration_minutes: Optional[int],
        now: int,
    ) -> bool:
        until = None if duration_minutes is None else now + duration_minutes * MINUTE_MS
        try:
            if kind is InfractionKind.WARN:
                return True
            if kind is InfractionKind.MUTE:
                await self.platform.restrict_user(chat_id, user_id, until)
            elif kind is InfractionKind.BAN:
                await self.platform.ban_user(chat_id, user_id, until)
            elif kind is InfractionKind.UNMUTE:
                await self.platform.unrestrict_user(chat_id, user_id)
            elif kind is InfractionKind.UNBAN:
                await self.platform.unban_user(chat_id, user_id)
            else:
                raise ValueError(f"Unhandled infraction kind: {kind!r}")
            return True
        except TelegramError as exc:
            if kind in (InfractionKind.UNMUTE, InfractionKind.UNBAN) and is_already_gone(exc):
                return True
            LOGGER.warning(
                "Recorded %s for user %s but could not enforce it in chat %s: %s",
                kind.value,
                user_id,
                chat_id,
                exc,
            )
            return False

    async def _notify(self, chat_id: int, text: str) -> bool:
        try:
            await self.platform.send_message(chat_id, text)
            return True
        except TelegramError as exc:
            LOGGER.warning("Failed to notify chat %s: %s", chat_id, exc)
            return False


__all__ = [
    "ModerationCoordinator",
    "count_prior",
    "decide_action",
    "escalated_action",
    "light_action",
]
