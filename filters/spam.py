"""
filters/spam.py
────────────────────────────────────────────────────────
Heuristic spam check for a single message.

Six independent signals are evaluated against the sender's recent messages:
caps ratio, character repetition, URL burst, repeated words, length and
near-duplicates. Sensitivity 1..10 is normalised to f = sensitivity / 10;
higher sensitivity lowers every threshold. A message is spam when at least
max(1, floor(3 - 2f)) signals fire.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

from core.types import ChatMessage
from filters.similarity import similarity
from utils.logger import get_logger

LOGGER = get_logger(__name__)

REPEAT_RE = re.compile(r"(.)\1{4,}")
URL_RE = re.compile(r"https?://\S+")

MIN_SENSITIVITY = 1
MAX_SENSITIVITY = 10


@dataclass(frozen=True, slots=True)
class SpamSignals:
    caps: bool
    repetition: bool
    url_burst: bool
    repeated_words: bool
    length: bool
    near_duplicate: bool

    @property
    def count(self) -> int:
        return sum(1 for name in self.names())

    def names(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]


def _clamp(sensitivity: int) -> int:
    return max(MIN_SENSITIVITY, min(MAX_SENSITIVITY, int(sensitivity)))


# Every threshold below is the f-form rewritten over s = 10f, so that
# boundaries such as floor(2 * 0.7) do not depend on float rounding.

def signal_threshold(sensitivity: int) -> int:
    """max(1, floor(3 - 2f))"""
    s = _clamp(sensitivity)
    return max(1, (30 - 2 * s) // 10)


def _count_limit(base: int, s: int) -> int:
    # base - floor(2f)
    return base - (2 * s) // 10


def _caps_signal(text: str, s: int) -> bool:
    # upper / letters > 0.7 - 0.2f
    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        return False
    upper = sum(1 for ch in letters if ch.isupper())
    return 50 * upper > (35 - s) * len(letters)


def _repeated_words_signal(text: str, limit: int) -> bool:
    counts = Counter(text.lower().split())
    return any(n > limit for n in counts.values())


def _near_duplicate_signal(text: str, recent: Iterable[ChatMessage], s: int) -> bool:
    bound = (40 - s) / 50  # 0.8 - 0.2f
    for msg in recent:
        if msg.text and similarity(text, msg.text) > bound:
            return True
    return False


def evaluate_signals(text: str, recent: Iterable[ChatMessage], sensitivity: int) -> SpamSignals:
    s = _clamp(sensitivity)
    return SpamSignals(
        caps=_caps_signal(text, s),
        repetition=sum(1 for _ in REPEAT_RE.finditer(text)) > _count_limit(2, s),
        url_burst=len(URL_RE.findall(text)) > _count_limit(2, s),
        repeated_words=_repeated_words_signal(text, _count_limit(3, s)),
        length=len(text) > 500 - 20 * s,
        near_duplicate=_near_duplicate_signal(text, recent, s),
    )


def detect_spam(
    text: str, recent_messages: Iterable[ChatMessage], sensitivity: int = 5
) -> Optional[SpamSignals]:
    """Signals that tripped the verdict, or None. Fail-open: errors mean "not spam"."""
    try:
        if not text:
            return None
        signals = evaluate_signals(text, recent_messages or (), sensitivity)
        threshold = signal_threshold(sensitivity)
        if signals.count >= threshold:
            LOGGER.debug("Spam signals %s (threshold %d)", signals.names(), threshold)
            return signals
        return None
    except Exception as exc:
        LOGGER.error("Spam evaluation failed, letting message through: %s", exc, exc_info=True)
        return None


def is_spam(text: str, recent_messages: Iterable[ChatMessage], sensitivity: int = 5) -> bool:
    return detect_spam(text, recent_messages, sensitivity) is not None


__all__ = ["SpamSignals", "detect_spam", "evaluate_signals", "is_spam", "signal_threshold"]
