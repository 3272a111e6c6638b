from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Optional

from core.types import ContentRule, RuleKind
from utils.logger import get_logger

LOGGER = get_logger(__name__)

LINK_RE = re.compile(r"https?://\S+", re.IGNORECASE)
WORD_SPLIT_RE = re.compile(r"\W+")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def validate_rule(pattern: str, kind: RuleKind) -> None:
    """Raise ValueError when a rule could never be evaluated."""
    if not pattern or not pattern.strip():
        raise ValueError("Pattern must not be empty")
    if kind is RuleKind.REGEX:
        try:
            _compile(pattern)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression: {exc}") from None


class ContentMatcher:
    """
    Matches text against banned-content rules.

    Rules are scanned by severity, highest first, so the first hit is the most
    severe one. A broken rule is logged and skipped; the scan goes on.
    """

    def _matches(self, rule: ContentRule, text: str, text_lower: str, words: set[str]) -> bool:
        needle = rule.pattern.lower()
        if rule.kind is RuleKind.WORD:
            return needle in words
        if rule.kind is RuleKind.PHRASE:
            return needle in text_lower
        if rule.kind is RuleKind.REGEX:
            return _compile(rule.pattern).search(text) is not None
        if rule.kind is RuleKind.LINK:
            return any(needle in url.lower() for url in LINK_RE.findall(text))
        raise ValueError(f"Unsupported rule kind: {rule.kind!r}")

    def match(self, text: str, rules: Iterable[ContentRule]) -> Optional[ContentRule]:
        if not text:
            return None

        ordered: List[ContentRule] = sorted(rules, key=lambda r: r.severity, reverse=True)
        if not ordered:
            return None

        text_lower = text.lower()
        words = {w for w in WORD_SPLIT_RE.split(text_lower) if w}

        for rule in ordered:
            if not rule.pattern:
                LOGGER.warning("Skipping banned-content rule %s with empty pattern", rule.id)
                continue
            try:
                if self._matches(rule, text, text_lower, words):
                    return rule
            except (re.error, ValueError) as exc:
                LOGGER.error("Invalid banned-content rule %s (%r): %s", rule.id, rule.pattern, exc)
        return None


def match(text: str, rules: Iterable[ContentRule]) -> Optional[ContentRule]:
    return ContentMatcher().match(text, rules)


__all__ = ["ContentMatcher", "match", "validate_rule"]
