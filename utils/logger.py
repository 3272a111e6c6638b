"""
utils/logger.py
────────────────────────────────────────────────────────
Logging setup for GroupGuard.

The root logger is configured once, on the first `get_logger` call:
console, the rotating file logs/groupguard.log, and an audit handler that
copies WARNING and above into the `log_events` table.

The audit handler never opens storage on its own. Until the bot binds one
with `bind_log_storage`, it drops records; the console and file still get
them. Tests that open an in-memory storage are therefore never written to
the process-wide database by a stray warning.
"""

from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config.config import settings

LOG_DIR = Path(__file__).resolve().parents[1] / "logs"
LOG_FILE = "groupguard.log"

LOG_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"
LOG_LEVEL = getattr(logging, settings.LOG_LEVEL, logging.INFO)

_ROOT_LOGGER_INITIALIZED = False


class AuditLogHandler(logging.Handler):
    """Copies WARNING+ records into a bound storage's `log_events` table."""

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.storage = None
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        storage = self.storage
        if storage is None or getattr(self._local, "busy", False):
            return

        self._local.busy = True
        try:
            context: dict[str, str] | None = None
            if record.exc_info:
                context = {"exc_info": self.formatException(record.exc_info)}
            elif record.stack_info:
                context = {"stack": self.formatStack(record.stack_info)}

            storage.logs.write(
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
                context=context,
            )
        except Exception:
            self.handleError(record)
        finally:
            self._local.busy = False


AUDIT_HANDLER = AuditLogHandler()


def _init_root_logger() -> None:
    global _ROOT_LOGGER_INITIALIZED
    if _ROOT_LOGGER_INITIALIZED:
        return

    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(LOG_LEVEL)
        formatter = logging.Formatter(LOG_FMT, DATE_FMT)

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root.addHandler(console)

        LOG_DIR.mkdir(exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_DIR / LOG_FILE,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if AUDIT_HANDLER not in root.handlers:
        root.addHandler(AUDIT_HANDLER)

    _ROOT_LOGGER_INITIALIZED = True


def bind_log_storage(storage) -> None:
    """Route WARNING+ records into `storage`; pass None to stop."""
    _init_root_logger()
    AUDIT_HANDLER.storage = storage


def get_logger(name: Optional[str] = None) -> logging.Logger:
    _init_root_logger()
    return logging.getLogger(name or "root")


__all__ = ["AUDIT_HANDLER", "AuditLogHandler", "bind_log_storage", "get_logger"]
