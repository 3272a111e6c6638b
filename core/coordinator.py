from __future__ import annotations

from typing import List, Optional

from config.config import settings
from core.history import RecentMessageWindow
from core.types import ChatMessage, ContentRule, GroupSettings, Violation, ViolationKind
from filters.content import ContentMatcher
from filters.spam import detect_spam
from storage.sqlite import Storage
from utils.logger import get_logger

LOGGER = get_logger(__name__)


class ModerationEngine:
    """
    Runs the detectors over one inbound message.

    Order is fixed: spam first, then banned content; the first hit wins.
    Only clean messages enter the sender's recent window, so a flood that
    was already punished does not keep feeding the near-duplicate check.
    """

    def __init__(
        self,
        storage: Storage,
        window: RecentMessageWindow,
        matcher: ContentMatcher | None = None,
        *,
        anti_spam: bool | None = None,
        content_filter: bool | None = None,
    ):
        self.storage = storage
        self.window = window
        self.matcher = matcher or ContentMatcher()
        self.anti_spam = settings.ENABLE_ANTI_SPAM if anti_spam is None else anti_spam
        self.content_filter = (
            settings.ENABLE_CONTENT_FILTER if content_filter is None else content_filter
        )

    def _rules(self) -> List[ContentRule]:
        try:
            return list(self.storage.rules.fetch_all())
        except Exception as exc:
            LOGGER.error("Could not load banned content, skipping the check: %s", exc)
            return []

    def evaluate_message(
        self,
        message: ChatMessage,
        group: GroupSettings,
        user_name: str | None = None,
    ) -> Optional[Violation]:
        text = message.text or ""
        if not text.strip():
            return None

        if self.anti_spam:
            recent = self.window.recent(message.sender_id, message.timestamp_ms)
            signals = detect_spam(text, recent, group.spam_sensitivity)
            if signals is not None:
                LOGGER.info(
                    "Spam from user %s in chat %s: %s",
                    message.sender_id,
                    message.chat_id,
                    ", ".join(signals.names()),
                )
                return Violation(
                    kind=ViolationKind.SPAM,
                    user_id=message.sender_id,
                    chat_id=message.chat_id,
                    message_id=message.message_id,
                    detail=", ".join(signals.names()) or "spam heuristics",
                    user_name=user_name,
                )

        if self.content_filter:
            try:
                rule = self.matcher.match(text, self._rules())
            except Exception as exc:
                LOGGER.error("Banned-content check failed, letting message through: %s", exc, exc_info=True)
                rule = None
            if rule is not None:
                LOGGER.info(
                    "Banned content from user %s in chat %s: rule %s (%s)",
                    message.sender_id,
                    message.chat_id,
                    rule.id,
                    rule.kind.value,
                )
                return Violation(
                    kind=ViolationKind.BANNED_CONTENT,
                    user_id=message.sender_id,
                    chat_id=message.chat_id,
                    message_id=message.message_id,
                    detail=f"{rule.kind.value.lower()} rule #{rule.id}",
                    rule=rule,
                    user_name=user_name,
                )

        self.window.add(message)
        return None


__all__ = ["ModerationEngine"]
