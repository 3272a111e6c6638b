# GroupGuard/config/config.py
"""
Configuration module for the GroupGuard moderation bot.

▪️ Loads environment variables from the .env file in the repository root.
▪️ Builds the typed Settings container, available as the singleton `settings`.
▪️ Group-level defaults declared here seed every lazily created GroupSettings row.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# ───────────────────────────────
#  .env loading
# ───────────────────────────────
ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(ROOT_DIR / ".env")           # .env lives in the project root

DEFAULT_WELCOME = "Welcome to our group! 👋\nPlease read the rules and enjoy your stay!"
DEFAULT_RULES = (
    "📜 Group Rules:\n"
    "1. Be respectful to all members\n"
    "2. No spam or self-promotion\n"
    "3. No NSFW content\n"
    "4. No hate speech or harassment\n"
    "5. Follow the admins' instructions\n\n"
    "Breaking these rules may result in warnings, mutes, or bans."
)


# ───────────────────────────────
#  Typed container
# ───────────────────────────────
@dataclass(frozen=True, slots=True)
class Settings:
    BOT_TOKEN: str
    ADMIN_USER_IDS: List[int]
    DB_PATH: str

    # Defaults for freshly created group settings
    DEFAULT_SPAM_SENSITIVITY: int
    DEFAULT_MAX_WARNINGS: int
    DEFAULT_MUTE_MINUTES: int
    DEFAULT_BAN_MINUTES: int
    SPAM_ESCALATION_MUTE_MINUTES: int
    WELCOME_MESSAGE: str
    DEFAULT_RULES: str

    # Sender window and sweeper cadence
    MESSAGE_WINDOW_SECONDS: int
    MESSAGE_WINDOW_MAX: int
    SWEEP_INTERVAL_SECONDS: int

    # Feature flags
    ENABLE_ANTI_SPAM: bool
    ENABLE_CONTENT_FILTER: bool
    ENABLE_WELCOME_MESSAGE: bool
    ANNOUNCE_LIFTS: bool

    LOG_LEVEL: str = "INFO"


# ───────────────────────────────
#  Helper field parsers
# ───────────────────────────────
def _parse_int_list(raw: str | None) -> List[int]:
    if not raw:
        return []
    return [int(x.strip()) for x in raw.split(",") if x.strip()]


def _str_to_bool(raw: str | None, *, default: bool = True) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: int, *, upper: int | None = None) -> int:
    raw = os.environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1 or (upper is not None and value > upper):
        bound = f"1..{upper}" if upper is not None else ">= 1"
        raise ValueError(f"{name} must be {bound}, got {value}")
    return value


# ───────────────────────────────
#  Settings assembly
# ───────────────────────────────
def _build_settings() -> Settings:
    # BOT_TOKEN is checked by main.py so that tooling and tests can import the config
    bot_token = os.environ.get("BOT_TOKEN", "")
    admin_ids = _parse_int_list(os.environ.get("ADMIN_USER_IDS"))
    db_path = os.environ.get("DB_PATH", str(ROOT_DIR / "data" / "storage.sqlite"))

    return Settings(
        BOT_TOKEN=bot_token,
        ADMIN_USER_IDS=admin_ids,
        DB_PATH=db_path,
        DEFAULT_SPAM_SENSITIVITY=_positive_int("DEFAULT_SPAM_SENSITIVITY", 5, upper=10),
        DEFAULT_MAX_WARNINGS=_positive_int("DEFAULT_MAX_WARNINGS", 3),
        DEFAULT_MUTE_MINUTES=_positive_int("DEFAULT_MUTE_MINUTES", 60),
        DEFAULT_BAN_MINUTES=_positive_int("DEFAULT_BAN_MINUTES", 1440),
        SPAM_ESCALATION_MUTE_MINUTES=_positive_int("SPAM_ESCALATION_MUTE_MINUTES", 1440),
        WELCOME_MESSAGE=os.environ.get("WELCOME_MESSAGE", DEFAULT_WELCOME),
        DEFAULT_RULES=os.environ.get("DEFAULT_RULES", DEFAULT_RULES),
        MESSAGE_WINDOW_SECONDS=_positive_int("MESSAGE_WINDOW_SECONDS", 60),
        MESSAGE_WINDOW_MAX=_positive_int("MESSAGE_WINDOW_MAX", 50),
        SWEEP_INTERVAL_SECONDS=_positive_int("SWEEP_INTERVAL_SECONDS", 60),
        ENABLE_ANTI_SPAM=_str_to_bool(os.environ.get("ENABLE_ANTI_SPAM")),
        ENABLE_CONTENT_FILTER=_str_to_bool(os.environ.get("ENABLE_CONTENT_FILTER")),
        ENABLE_WELCOME_MESSAGE=_str_to_bool(os.environ.get("ENABLE_WELCOME_MESSAGE")),
        ANNOUNCE_LIFTS=_str_to_bool(os.environ.get("ANNOUNCE_LIFTS")),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


# singleton
settings: Settings = _build_settings()

__all__ = ["settings", "Settings"]
