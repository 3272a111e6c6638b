"""
services/platform.py
────────────────────────────────────────────────────────
Chat-platform boundary.

• `ChatPlatform` is the protocol the moderation services depend on.
• `TelegramPlatform` implements it on top of python-telegram-bot's Bot.
• Errors are telegram.error.TelegramError subclasses; callers decide
  whether a failure is skipped or surfaced.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

from telegram import Bot, ChatPermissions
from telegram.constants import ParseMode
from telegram.error import BadRequest

from utils.logger import get_logger

LOGGER = get_logger(__name__)

# Fragments of Telegram BadRequest texts meaning "nothing to lift / delete"
_ALREADY_GONE_MARKERS = (
    "not found",
    "user_not_participant",
    "participant_id_invalid",
    "message to delete not found",
    "can't remove chat owner",
    "user is an administrator",
)


def is_already_gone(exc: Exception) -> bool:
    return isinstance(exc, BadRequest) and any(
        marker in str(exc).lower() for marker in _ALREADY_GONE_MARKERS
    )


class ChatPlatform(Protocol):
    async def delete_message(self, chat_id: int, message_id: int) -> None: ...

    async def restrict_user(self, chat_id: int, user_id: int, until_ms: Optional[int]) -> None: ...

    async def unrestrict_user(self, chat_id: int, user_id: int) -> None: ...

    async def ban_user(self, chat_id: int, user_id: int, until_ms: Optional[int]) -> None: ...

    async def unban_user(self, chat_id: int, user_id: int) -> None: ...

    async def send_message(self, chat_id: int, text: str) -> None: ...


def _until(until_ms: Optional[int]) -> Optional[datetime]:
    if until_ms is None:
        return None
    return datetime.fromtimestamp(until_ms / 1000, tz=timezone.utc)


class TelegramPlatform:
    """ChatPlatform backed by the Bot API."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self.bot.delete_message(chat_id, message_id)

    async def restrict_user(self, chat_id: int, user_id: int, until_ms: Optional[int]) -> None:
        await self.bot.restrict_chat_member(
            chat_id,
            user_id,
            permissions=ChatPermissions.no_permissions(),
            until_date=_until(until_ms),
        )

    async def unrestrict_user(self, chat_id: int, user_id: int) -> None:
        await self.bot.restrict_chat_member(
            chat_id,
            user_id,
            permissions=ChatPermissions.all_permissions(),
        )

    async def ban_user(self, chat_id: int, user_id: int, until_ms: Optional[int]) -> None:
        await self.bot.ban_chat_member(chat_id, user_id, until_date=_until(until_ms))

    async def unban_user(self, chat_id: int, user_id: int) -> None:
        # only_if_banned keeps the call idempotent for members who are already back
        await self.bot.unban_chat_member(chat_id, user_id, only_if_banned=True)

    async def send_message(self, chat_id: int, text: str) -> None:
        await self.bot.send_message(chat_id, text, parse_mode=ParseMode.HTML)


__all__ = ["ChatPlatform", "TelegramPlatform", "is_already_gone"]
