from __future__ import annotations

import sys

from utils.logger import get_logger

LOGGER = get_logger(__name__)

from config.config import settings

if not settings.BOT_TOKEN:
    LOGGER.critical("BOT_TOKEN is not set in .env, shutting down.")
    sys.exit(2)

from bot.app import run_polling

if __name__ == "__main__":
    try:
        run_polling()
    except KeyboardInterrupt:
        LOGGER.info("KeyboardInterrupt received, exiting.")
