from __future__ import annotations

import html
from typing import List, Optional, Tuple

from telegram import Bot, Message, Update, User
from telegram.constants import ChatMemberStatus, ChatType
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from config.config import settings
from config.group_settings import SETTING_KEYS, GroupSettingsService, describe_value
from core.coordinator import ModerationEngine
from core.history import RecentMessageWindow
from core.types import ChatMessage, InfractionKind, RuleKind, active_restriction, now_ms
from filters.content import validate_rule
from services.moderation import ModerationCoordinator
from services.platform import TelegramPlatform
from services.sweeper import RestrictionSweeper
from storage import init_storage
from utils.durations import format_duration, parse_duration
from utils.formatter import (
    format_infractions,
    format_rules_list,
    format_settings,
    mention,
)
from utils.logger import bind_log_storage, get_logger

LOGGER = get_logger(__name__)

STORAGE = None
group_settings: GroupSettingsService | None = None
engine: ModerationEngine | None = None
moderation: ModerationCoordinator | None = None
sweeper: RestrictionSweeper | None = None
_INITIALIZED = False

INFRACTIONS_SHOWN = 10
_ADMIN_STATUSES = {ChatMemberStatus.OWNER, ChatMemberStatus.ADMINISTRATOR}


def _ensure_initialized(bot: Bot) -> None:
    global _INITIALIZED, STORAGE, group_settings, engine, moderation, sweeper
    if _INITIALIZED:
        return

    STORAGE = init_storage()
    bind_log_storage(STORAGE)
    platform = TelegramPlatform(bot)

    group_settings = GroupSettingsService(STORAGE.groups)
    engine = ModerationEngine(
        STORAGE,
        RecentMessageWindow(
            window_seconds=settings.MESSAGE_WINDOW_SECONDS,
            max_per_sender=settings.MESSAGE_WINDOW_MAX,
        ),
    )
    moderation = ModerationCoordinator(STORAGE, platform, group_settings)
    sweeper = RestrictionSweeper(STORAGE, platform)

    LOGGER.info("Moderation configuration loaded:")
    LOGGER.info("  ANTI_SPAM: %s", settings.ENABLE_ANTI_SPAM)
    LOGGER.info("  CONTENT_FILTER: %s", settings.ENABLE_CONTENT_FILTER)
    LOGGER.info("  WELCOME_MESSAGE: %s", settings.ENABLE_WELCOME_MESSAGE)
    LOGGER.info("  SWEEP_INTERVAL: %ss", settings.SWEEP_INTERVAL_SECONDS)

    _INITIALIZED = True


def bootstrap(app: Application) -> None:
    """Build the services eagerly and expose the sweeper to the job queue."""
    _ensure_initialized(app.bot)
    app.bot_data["sweeper"] = sweeper


# ───────────────────────────────
# Helpers
# ───────────────────────────────
def _display_name(user: User) -> str:
    return user.full_name or user.username or str(user.id)


def _remember(user: User) -> None:
    try:
        STORAGE.users.upsert(user.id, username=user.username, first_name=user.first_name)
    except Exception as exc:
        LOGGER.warning("Failed to upsert user %s: %s", user.id, exc)


async def _reply(msg: Message, text: str) -> None:
    # replies default to HTML, plain text is escaped
    await msg.reply_text(html.escape(text))


def _is_group(msg: Message) -> bool:
    return msg.chat.type in (ChatType.GROUP, ChatType.SUPERGROUP)


async def is_admin(context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int) -> bool:
    if user_id in settings.ADMIN_USER_IDS:
        return True
    try:
        member = await context.bot.get_chat_member(chat_id, user_id)
    except TelegramError as exc:
        LOGGER.warning("Could not check admin status of %s in %s: %s", user_id, chat_id, exc)
        return False
    return member.status in _ADMIN_STATUSES


async def _require_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    msg = update.effective_message
    user = update.effective_user
    if not msg or not user:
        return False
    if not _is_group(msg):
        await _reply(msg, "❌ This command only works in groups.")
        return False
    if not await is_admin(context, msg.chat_id, user.id):
        await _reply(msg, "❌ This command is for group administrators only.")
        return False
    return True


def _resolve_target(msg: Message, args: List[str]) -> Tuple[Optional[int], Optional[str], List[str]]:
    """
    Target user from a replied-to message, a numeric id or a known @username.
    Returns (user_id, display_name, remaining_args).
    """
    replied = msg.reply_to_message
    if replied and replied.from_user:
        return replied.from_user.id, _display_name(replied.from_user), list(args)

    if not args:
        return None, None, []

    head, rest = args[0], list(args[1:])
    if head.lstrip("-").isdigit():
        user_id = int(head)
        profile = STORAGE.users.fetch(user_id)
        name = (profile.first_name or profile.username) if profile else None
        return user_id, name, rest

    if head.startswith("@"):
        profile = STORAGE.users.fetch_by_username(head)
        if profile is None:
            return None, None, rest
        return profile.telegram_id, profile.mention, rest

    return None, None, list(args)


# ───────────────────────────────
# Message flow
# ───────────────────────────────
async def on_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    _ensure_initialized(context.bot)
    msg: Message = update.effective_message
    if not msg or not msg.from_user or not _is_group(msg):
        return

    _remember(msg.from_user)

    text = (msg.text or msg.caption or "").strip()
    if not text:
        return

    if await is_admin(context, msg.chat_id, msg.from_user.id):
        return

    group = group_settings.get(msg.chat_id)
    message = ChatMessage(
        sender_id=msg.from_user.id,
        chat_id=msg.chat_id,
        text=text,
        timestamp_ms=int(msg.date.timestamp() * 1000) if msg.date else now_ms(),
        message_id=msg.message_id,
    )

    violation = engine.evaluate_message(message, group, user_name=_display_name(msg.from_user))
    if violation is None:
        return

    applied = await moderation.apply_violation(violation, group)
    LOGGER.info(
        "Applied %s to user %s (deleted=%s, enforced=%s, infractions=%s)",
        applied.action.value,
        violation.user_id,
        applied.message_deleted,
        applied.enforced,
        applied.infraction_ids,
    )


async def on_new_members(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    _ensure_initialized(context.bot)
    msg = update.effective_message
    if not msg or not msg.new_chat_members:
        return

    group = group_settings.get(msg.chat_id)
    for member in msg.new_chat_members:
        _remember(member)
        if member.is_bot or not settings.ENABLE_WELCOME_MESSAGE:
            continue
        try:
            await msg.reply_html(
                f"{mention(member.id, _display_name(member))}\n{html.escape(group.welcome_message)}"
            )
        except TelegramError as exc:
            LOGGER.warning("Failed to welcome %s in chat %s: %s", member.id, msg.chat_id, exc)


# ───────────────────────────────
# General commands
# ───────────────────────────────
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    msg = update.effective_message
    if not msg:
        return
    await _reply(
        msg,
        "👋 Hi! I keep groups clean: spam and banned content are removed, "
        "repeat offenders are muted or banned automatically.\n"
        "Add me to a group as an administrator and send /help for the commands."
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    msg = update.effective_message
    if not msg:
        return
    await msg.reply_html(
        "📖 <b>GroupGuard commands</b>\n\n"
        "<b>Everyone:</b>\n"
        " • <b>/rules</b> show the group rules\n\n"
        "<b>🔨 Moderation (admins):</b>\n"
        " • <b>/warn</b> &lt;user&gt; &lt;reason&gt;\n"
        " • <b>/mute</b> &lt;user&gt; &lt;duration&gt; [reason]\n"
        " • <b>/unmute</b> &lt;user&gt;\n"
        " • <b>/ban</b> &lt;user&gt; &lt;duration&gt; [reason]\n"
        " • <b>/unban</b> &lt;user&gt;\n"
        " • <b>/infractions</b> &lt;user&gt;\n\n"
        "<b>🚫 Banned content (admins):</b>\n"
        " • <b>/addfilter</b> &lt;word|phrase|regex|link&gt; &lt;severity 1-5&gt; &lt;pattern&gt;\n"
        " • <b>/filters</b>\n"
        " • <b>/delfilter</b> &lt;id&gt;\n\n"
        "<b>⚙️ Settings (admins):</b>\n"
        " • <b>/settings</b>\n"
        " • <b>/set</b> &lt;key&gt; &lt;value&gt;\n\n"
        "&lt;user&gt; is a reply, a numeric id or a known @username.\n"
        "Durations: <code>30m</code>, <code>2h</code>, <code>1d</code>, <code>1w</code>, <code>perm</code>."
    )


async def cmd_rules(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    msg = update.effective_message
    if not msg or not _is_group(msg):
        return
    group = group_settings.get(msg.chat_id)
    await _reply(msg, group.rules)


# ───────────────────────────────
# Settings
# ───────────────────────────────
async def cmd_settings(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message
    await msg.reply_html(format_settings(group_settings.get(msg.chat_id)))


async def cmd_set(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message

    if not context.args or len(context.args) < 2:
        await msg.reply_html(
            "<b>Usage:</b> <code>/set &lt;key&gt; &lt;value&gt;</code>\n"
            "<b>Keys:</b> " + ", ".join(f"<code>{key}</code>" for key in SETTING_KEYS)
        )
        return

    key = context.args[0]
    # free text keeps its original spacing
    raw_value = msg.text.split(None, 2)[2] if msg.text else " ".join(context.args[1:])

    try:
        old, new = group_settings.update(msg.chat_id, key, raw_value)
    except ValueError as exc:
        await _reply(msg, f"❌ {exc}")
        return

    attr = SETTING_KEYS[key.strip().lower().replace("-", "_")][0]
    LOGGER.info("Setting %s changed in chat %s by user %s", attr, msg.chat_id, update.effective_user.id)
    await msg.reply_html(
        "✅ <b>Setting updated</b>\n\n"
        f" • Was: <code>{html.escape(describe_value(attr, old))}</code>\n"
        f" • Now: <code>{html.escape(describe_value(attr, new))}</code>"
    )


# ───────────────────────────────
# Administrator actions
# ───────────────────────────────
async def _admin_action(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    kind: InfractionKind,
) -> None:
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message
    command = kind.value.lower()

    user_id, name, rest = _resolve_target(msg, context.args or [])
    if user_id is None:
        await _reply(msg, f"❌ Usage: /{command} <user> ... (reply, numeric id or @username)")
        return
    if user_id == context.bot.id:
        await _reply(msg, "❌ I will not moderate myself.")
        return

    duration: Optional[int] = None
    if kind.is_restriction:
        if not rest:
            await _reply(msg, f"❌ Usage: /{command} <user> <duration> [reason]")
            return
        try:
            duration = parse_duration(rest[0])
        except ValueError as exc:
            await _reply(msg, f"❌ {exc}")
            return
        rest = rest[1:]

    reason = " ".join(rest).strip()
    if kind is InfractionKind.WARN and not reason:
        await _reply(msg, "❌ Usage: /warn <user> <reason>")
        return

    infraction, enforced = await moderation.apply_admin_action(
        kind,
        user_id,
        msg.chat_id,
        issued_by=update.effective_user.id,
        duration_minutes=duration,
        reason=reason,
        user_name=name,
    )
    LOGGER.info(
        "Admin %s issued %s #%s for user %s in chat %s (%s)",
        update.effective_user.id,
        kind.value,
        infraction.id,
        user_id,
        msg.chat_id,
        format_duration(duration) if kind.is_restriction else "no duration",
    )
    if not enforced:
        await _reply(
            msg,
            f"⚠️ {kind.value} was recorded but could not be applied. Check my admin rights."
        )


async def cmd_warn(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _admin_action(update, context, InfractionKind.WARN)


async def cmd_mute(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _admin_action(update, context, InfractionKind.MUTE)


async def cmd_unmute(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _admin_action(update, context, InfractionKind.UNMUTE)


async def cmd_ban(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _admin_action(update, context, InfractionKind.BAN)


async def cmd_unban(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _admin_action(update, context, InfractionKind.UNBAN)


async def cmd_infractions(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message

    user_id, name, _ = _resolve_target(msg, context.args or [])
    if user_id is None:
        await _reply(msg, "❌ Usage: /infractions <user> (reply, numeric id or @username)")
        return

    history = list(STORAGE.infractions.fetch_for_user(user_id))
    now = now_ms()
    active = [
        item
        for item in (
            active_restriction(history, InfractionKind.MUTE, now),
            active_restriction(history, InfractionKind.BAN, now),
        )
        if item is not None
    ]
    await msg.reply_html(format_infractions(user_id, name, history[:INFRACTIONS_SHOWN], active))


# ───────────────────────────────
# Banned content
# ───────────────────────────────
async def cmd_addfilter(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message
    usage = "❌ Usage: /addfilter <word|phrase|regex|link> <severity 1-5> <pattern>"

    if not context.args or len(context.args) < 3:
        await _reply(msg, usage)
        return

    try:
        kind = RuleKind(context.args[0].upper())
        severity = int(context.args[1])
    except ValueError:
        await _reply(msg, usage)
        return
    if not 1 <= severity <= 5:
        await _reply(msg, "❌ Severity must be between 1 and 5.")
        return

    pattern = msg.text.split(None, 3)[3] if msg.text else " ".join(context.args[2:])
    if kind is not RuleKind.REGEX:
        pattern = pattern.strip()
    try:
        validate_rule(pattern, kind)
    except ValueError as exc:
        await _reply(msg, f"❌ {exc}")
        return

    rule_id = STORAGE.rules.add(pattern, kind, severity, update.effective_user.id)
    LOGGER.info("Banned-content rule #%s (%s) added by %s", rule_id, kind.value, update.effective_user.id)
    await msg.reply_html(
        f"✅ Added rule <b>#{rule_id}</b> <code>{kind.value}</code> "
        f"severity {severity}: <code>{html.escape(pattern)}</code>"
    )


async def cmd_filters(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    await update.effective_message.reply_html(format_rules_list(STORAGE.rules.fetch_all()))


async def cmd_delfilter(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _ensure_initialized(context.bot)
    if not await _require_admin(update, context):
        return
    msg = update.effective_message

    if not context.args or len(context.args) != 1:
        await _reply(msg, "❌ Usage: /delfilter <id>")
        return
    try:
        rule_id = int(context.args[0].lstrip("#"))
    except ValueError:
        await _reply(msg, "❌ Rule id must be a number")
        return

    if STORAGE.rules.remove(rule_id):
        LOGGER.info("Banned-content rule #%s removed by %s", rule_id, update.effective_user.id)
        await _reply(msg, f"✅ Rule #{rule_id} removed.")
    else:
        await _reply(msg, f"❌ Rule #{rule_id} not found.")


def register_handlers(app: Application) -> None:
    LOGGER.info("Registering handlers...")
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("rules", cmd_rules))
    app.add_handler(CommandHandler("settings", cmd_settings))
    app.add_handler(CommandHandler("set", cmd_set))
    app.add_handler(CommandHandler("warn", cmd_warn))
    app.add_handler(CommandHandler("mute", cmd_mute))
    app.add_handler(CommandHandler("unmute", cmd_unmute))
    app.add_handler(CommandHandler("ban", cmd_ban))
    app.add_handler(CommandHandler("unban", cmd_unban))
    app.add_handler(CommandHandler("infractions", cmd_infractions))
    app.add_handler(CommandHandler("addfilter", cmd_addfilter))
    app.add_handler(CommandHandler("filters", cmd_filters))
    app.add_handler(CommandHandler("delfilter", cmd_delfilter))

    app.add_handler(MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, on_new_members))
    app.add_handler(
        MessageHandler((filters.TEXT | filters.CAPTION) & ~filters.COMMAND, on_message)
    )
