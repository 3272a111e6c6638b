from __future__ import annotations

from typing import List

from telegram import BotCommand
from telegram.constants import ParseMode
from telegram.ext import Application, ApplicationBuilder, Defaults

from config.config import settings
from utils.logger import get_logger
from bot.handlers import bootstrap, register_handlers
from services.sweeper import sweep_job

LOGGER = get_logger(__name__)

BOT_COMMANDS: List[BotCommand] = [
    BotCommand("help", "List of commands"),
    BotCommand("rules", "Show the group rules"),
    BotCommand("settings", "Show group settings (admins)"),
    BotCommand("set", "Change a group setting (admins)"),
    BotCommand("warn", "Warn a user (admins)"),
    BotCommand("mute", "Mute a user (admins)"),
    BotCommand("unmute", "Unmute a user (admins)"),
    BotCommand("ban", "Ban a user (admins)"),
    BotCommand("unban", "Unban a user (admins)"),
    BotCommand("infractions", "Infraction history of a user (admins)"),
    BotCommand("addfilter", "Add banned content (admins)"),
    BotCommand("filters", "List banned content (admins)"),
    BotCommand("delfilter", "Remove banned content (admins)"),
]


def run_polling() -> None:
    LOGGER.info("▶️  Starting bot (polling)…")

    app = (
        ApplicationBuilder()
        .token(settings.BOT_TOKEN)
        .defaults(Defaults(parse_mode=ParseMode.HTML))
        .build()
    )

    register_handlers(app)

    async def post_init(application: Application) -> None:
        """Runs once the application is initialised."""
        bootstrap(application)
        if BOT_COMMANDS:
            await application.bot.set_my_commands(BOT_COMMANDS)

        if application.job_queue is None:
            LOGGER.error(
                "JobQueue is unavailable; install python-telegram-bot[job-queue]. "
                "Expired restrictions will not be lifted."
            )
        else:
            application.job_queue.run_repeating(
                sweep_job,
                interval=settings.SWEEP_INTERVAL_SECONDS,
                first=settings.SWEEP_INTERVAL_SECONDS,
                name="restriction-sweep",
            )
            LOGGER.info("Restriction sweep scheduled every %ss", settings.SWEEP_INTERVAL_SECONDS)
        LOGGER.info("Application ready.")

    app.post_init = post_init

    LOGGER.info("Polling started...")
    app.run_polling(
        allowed_updates=["message"],
    )
    LOGGER.info("Bot stopped.")


if __name__ == "__main__":
    run_polling()
