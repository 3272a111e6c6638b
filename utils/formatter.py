from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Iterable, Optional

from core.types import (
    ContentRule,
    GroupSettings,
    Infraction,
    InfractionKind,
    ModerationDecision,
    Violation,
    ViolationKind,
)
from utils.durations import format_duration

_KIND_TITLES: dict[InfractionKind, str] = {
    InfractionKind.WARN: "warned",
    InfractionKind.MUTE: "muted",
    InfractionKind.BAN: "banned",
    InfractionKind.UNMUTE: "unmuted",
    InfractionKind.UNBAN: "unbanned",
}

_RESTRICTION_NOUNS: dict[InfractionKind, str] = {
    InfractionKind.MUTE: "mute",
    InfractionKind.BAN: "ban",
}


def mention(user_id: int, name: Optional[str] = None) -> str:
    label = html.escape(name) if name else str(user_id)
    return f'<a href="tg://user?id={user_id}">{label}</a>'


def _format_ms(value: Optional[int]) -> str:
    if value is None:
        return "—"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def format_violation_notice(violation: Violation, decision: ModerationDecision) -> str:
    who = mention(violation.user_id, violation.user_name)
    if violation.kind is ViolationKind.SPAM:
        cause = "spam"
    else:
        cause = "prohibited content"

    if decision.action is InfractionKind.BAN:
        head = f"⛔ {who} has been banned for {format_duration(decision.duration_minutes)} for repeatedly posting {cause}."
    elif decision.action is InfractionKind.MUTE:
        head = f"🔇 {who} has been muted for {format_duration(decision.duration_minutes)} due to {cause}."
    else:
        head = f"⚠️ {who}: your message was deleted for containing {cause}."

    return f"{head}\nWarning {decision.count}/{decision.threshold}"


def format_admin_notice(
    kind: InfractionKind,
    user_id: int,
    user_name: Optional[str],
    duration_minutes: Optional[int],
    reason: str,
) -> str:
    text = f"✅ {mention(user_id, user_name)} has been {_KIND_TITLES[kind]}"
    if kind.is_restriction:
        text += f" for {format_duration(duration_minutes)}"
    text += "."
    if reason:
        text += f"\nReason: {html.escape(reason)}"
    return text


def format_lift_notice(kind: InfractionKind, user_id: int, user_name: Optional[str]) -> str:
    noun = _RESTRICTION_NOUNS.get(kind, kind.value.lower())
    return f"🔄 The {noun} of {mention(user_id, user_name)} has expired and was lifted automatically."


def format_settings(group: GroupSettings) -> str:
    return (
        "<b>⚙️ Current group settings</b>\n\n"
        f"<b>Spam sensitivity:</b> <code>{group.spam_sensitivity}</code>\n"
        f"<b>Max warnings:</b> <code>{group.max_warnings}</code>\n"
        f"<b>Mute duration:</b> <code>{format_duration(group.mute_duration_minutes)}</code>\n"
        f"<b>Ban duration:</b> <code>{format_duration(group.ban_duration_minutes)}</code>\n\n"
        f"<b>Welcome message:</b>\n{html.escape(group.welcome_message)}\n\n"
        f"<b>Rules:</b>\n{html.escape(group.rules)}\n\n"
        "<b>To change settings:</b>\n"
        " • <code>/set spam_sensitivity &lt;1-10&gt;</code>\n"
        " • <code>/set max_warnings &lt;number&gt;</code>\n"
        " • <code>/set mute_duration &lt;duration&gt;</code>\n"
        " • <code>/set ban_duration &lt;duration&gt;</code>\n"
        " • <code>/set welcome &lt;message&gt;</code>\n"
        " • <code>/set rules &lt;rules&gt;</code>"
    )


def format_infractions(
    user_id: int,
    user_name: Optional[str],
    history: Iterable[Infraction],
    active: Iterable[Infraction],
) -> str:
    lines = [f"<b>📋 Infractions of {mention(user_id, user_name)}</b>"]
    for item in active:
        lines.append(
            f"🔒 Active {_RESTRICTION_NOUNS.get(item.kind, item.kind.value.lower())} "
            f"until {_format_ms(item.expires_at_ms) if item.expires_at_ms else 'lifted manually'}"
        )
    rows = list(history)
    if not rows:
        lines.append("<i>No infractions recorded.</i>")
    for item in rows:
        lines.append(
            f"• <code>{item.kind.value}</code> {_format_ms(item.issued_at_ms)}"
            f" — {html.escape(item.reason)}"
        )
    return "\n".join(lines)


def format_rules_list(rules: Iterable[ContentRule]) -> str:
    rows = [
        f"#{rule.id} <code>{rule.kind.value}</code> sev {rule.severity}: <code>{html.escape(rule.pattern)}</code>"
        for rule in rules
    ]
    if not rows:
        return "<i>No banned content configured.</i>"
    return "<b>🚫 Banned content</b>\n" + "\n".join(rows)


__all__ = [
    "mention",
    "format_violation_notice",
    "format_admin_notice",
    "format_lift_notice",
    "format_settings",
    "format_infractions",
    "format_rules_list",
]
