"""
services/sweeper.py
────────────────────────────────────────────────────────
Periodic pass that lifts expired MUTE / BAN restrictions.

ACTIVE -> LIFTING -> PROCESSED, one way only:
1) storage returns expired, unprocessed, non-superseded rows
2) every chat the user is restricted in gets an unban / unrestrict
3) each row is marked processed once all chats were attempted

A failure in one chat is logged and does not stop the others. Lifting a
restriction that is already gone counts as success, so a repeated attempt
after a crash between steps 2 and 3 is harmless.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, List, Tuple

from telegram.error import TelegramError
from telegram.ext import ContextTypes

from config.config import settings
from core.types import (
    Infraction,
    InfractionKind,
    ResolvedRestriction,
    RestrictionState,
    now_ms,
)
from services.platform import ChatPlatform, is_already_gone
from storage.sqlite import Storage
from utils.formatter import format_lift_notice
from utils.logger import get_logger

LOGGER = get_logger(__name__)


class RestrictionSweeper:
    def __init__(
        self,
        storage: Storage,
        platform: ChatPlatform,
        *,
        announce: bool | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.platform = platform
        self.announce = settings.ANNOUNCE_LIFTS if announce is None else announce
        self.clock = clock

    async def sweep_expired(self, now_ms: int | None = None) -> List[ResolvedRestriction]:
        now = self.clock() if now_ms is None else now_ms
        candidates = self.storage.infractions.fetch_expired_restrictions(now)
        if not candidates:
            return []

        grouped: Dict[Tuple[int, InfractionKind], List[Infraction]] = OrderedDict()
        for row in candidates:
            grouped.setdefault((row.user_id, row.kind), []).append(row)

        LOGGER.info(
            "Sweep found %d expired restriction(s) for %d user/kind pair(s)",
            len(candidates),
            len(grouped),
        )

        resolved: List[ResolvedRestriction] = []
        for (user_id, kind), rows in grouped.items():
            restriction = ResolvedRestriction(
                user_id=user_id,
                kind=kind,
                infraction_ids=[row.id for row in rows],
            )
            restriction.state = RestrictionState.LIFTING
            await self._lift_everywhere(restriction, rows)

            for row in rows:
                self.storage.infractions.mark_processed(row.id)
            restriction.state = RestrictionState.PROCESSED
            resolved.append(restriction)

        return resolved

    def _chats_for(self, user_id: int, kind: InfractionKind, rows: List[Infraction]) -> List[int]:
        chats = list(self.storage.infractions.fetch_restricted_chats(user_id, kind))
        for row in rows:
            if row.chat_id is not None and row.chat_id not in chats:
                chats.append(row.chat_id)
        return chats

    async def _lift_everywhere(self, restriction: ResolvedRestriction, rows: List[Infraction]) -> None:
        user_id, kind = restriction.user_id, restriction.kind
        chats = self._chats_for(user_id, kind, rows)
        if not chats:
            LOGGER.warning("No chat recorded for expired %s of user %s", kind.value, user_id)
            return

        for chat_id in chats:
            try:
                if kind is InfractionKind.BAN:
                    await self.platform.unban_user(chat_id, user_id)
                else:
                    await self.platform.unrestrict_user(chat_id, user_id)
            except TelegramError as exc:
                if is_already_gone(exc):
                    LOGGER.debug("%s of user %s in chat %s already gone", kind.value, user_id, chat_id)
                else:
                    LOGGER.warning(
                        "Failed to lift %s of user %s in chat %s: %s",
                        kind.value,
                        user_id,
                        chat_id,
                        exc,
                    )
                    restriction.failed_chats.append(chat_id)
                    continue

            restriction.lifted_chats.append(chat_id)
            LOGGER.info("Lifted %s of user %s in chat %s", kind.value, user_id, chat_id)
            if self.announce:
                await self._announce(chat_id, kind, user_id)

    async def _announce(self, chat_id: int, kind: InfractionKind, user_id: int) -> None:
        profile = self.storage.users.fetch(user_id)
        name = None
        if profile is not None:
            name = profile.first_name or profile.username
        try:
            await self.platform.send_message(chat_id, format_lift_notice(kind, user_id, name))
        except TelegramError as exc:
            LOGGER.debug("Lift notice for chat %s not delivered: %s", chat_id, exc)


async def sweep_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    """JobQueue callback; the sweeper lives in bot_data under "sweeper"."""
    sweeper: RestrictionSweeper | None = context.bot_data.get("sweeper")
    if sweeper is None:
        LOGGER.warning("Sweep skipped: sweeper is not initialised")
        return
    try:
        resolved = await sweeper.sweep_expired()
    except Exception:
        LOGGER.exception("Restriction sweep failed")
        return
    if resolved:
        LOGGER.info("Sweep resolved %d restriction(s)", len(resolved))


__all__ = ["RestrictionSweeper", "sweep_job"]
