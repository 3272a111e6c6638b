from __future__ import annotations

import re
from typing import Optional

_UNIT_MINUTES = {
    "m": 1, "min": 1, "mins": 1, "minute": 1, "minutes": 1,
    "h": 60, "hr": 60, "hrs": 60, "hour": 60, "hours": 60,
    "d": 1440, "day": 1440, "days": 1440,
    "w": 10080, "week": 10080, "weeks": 10080,
}
_INDEFINITE = {"perm", "permanent", "forever", "inf", "indefinite", "0"}
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([a-z]*)\s*$")


def parse_duration(raw: str) -> Optional[int]:
    """
    "90" -> 90, "30m" -> 30, "2h" -> 120, "1d" -> 1440, "1 week" -> 10080,
    "perm" -> None (indefinite). Anything else raises ValueError.
    """
    if raw is None:
        raise ValueError("Duration is missing")
    value = raw.strip().lower()
    if value in _INDEFINITE:
        return None

    found = _DURATION_RE.match(value)
    if not found:
        raise ValueError(f"Unrecognised duration: {raw!r}")

    amount = int(found.group(1))
    unit = found.group(2) or "m"
    if unit not in _UNIT_MINUTES:
        raise ValueError(f"Unknown duration unit: {unit!r}")
    if amount <= 0:
        raise ValueError("Duration must be positive")
    return amount * _UNIT_MINUTES[unit]


def format_duration(minutes: Optional[int]) -> str:
    if not minutes:
        return "indefinite"
    for size, name in ((10080, "week"), (1440, "day"), (60, "hour")):
        if minutes % size == 0:
            count = minutes // size
            return f"{count} {name}{'' if count == 1 else 's'}"
    return f"{minutes} minute{'' if minutes == 1 else 's'}"


__all__ = ["parse_duration", "format_duration"]
