"""
User-facing summaries for provisioning runs.

Everything here returns plain text sized for a Discord message. Long
reports go out with the full text attached as a file.
"""

from __future__ import annotations

import io
import logging
from typing import List, Optional, Sequence, Union

import discord

from .analytics import ServerAnalytics
from .engine import SetupResult
from .progress import Phase
from .teardown import TeardownResult
from .template import ChannelKind, ChannelSpec, ServerTemplate

log = logging.getLogger("guildforge.reporting")

MESSAGE_LIMIT = 1900
ERRORS_SHOWN = 5

_KIND_ICONS = {
    ChannelKind.TEXT: "#",
    ChannelKind.VOICE: "🔊",
    ChannelKind.STAGE: "🎙️",
    ChannelKind.FORUM: "💬",
    ChannelKind.ANNOUNCEMENT: "📢",
}


def truncate_message(content: str, max_length: int = MESSAGE_LIMIT) -> str:
    if len(content) <= max_length:
        return content
    suffix = "\n... (truncated)"
    return content[: max_length - len(suffix)] + suffix


def format_errors(errors: Sequence[str], limit: int = ERRORS_SHOWN) -> List[str]:
    lines = [f"• {error}" for error in errors[:limit]]
    if len(errors) > limit:
        lines.append(f"• ... and {len(errors) - limit} more")
    return lines


def format_progress(phase: Phase, index: int, total: int, elapsed: float, *, title: str = "Server setup") -> str:
    minutes, seconds = divmod(int(elapsed), 60)
    return (
        f"**{title}**\n"
        f"Phase: {phase.label} ({index}/{total})\n"
        f"Elapsed: {minutes:02d}:{seconds:02d}"
    )


def format_setup_summary(result: SetupResult, template_name: str) -> str:
    header = "✅ Setup complete" if result.success else "⚠️ Setup finished with errors"
    lines = [
        f"**{header}: {template_name}**",
        f"Roles: {result.roles_created} | Categories: {result.categories_created} | "
        f"Channels: {result.channels_created} | Embeds: {result.embeds_sent}",
    ]
    extras = []
    if result.automod_rules_created:
        extras.append(f"AutoMod rules: {result.automod_rules_created}")
    if result.settings_applied:
        extras.append("settings applied")
    if result.onboarding_applied:
        extras.append("onboarding enabled")
    if extras:
        lines.append(" | ".join(extras))
    lines.append(f"Time: {result.elapsed:.1f}s")
    if result.errors:
        lines.append(f"\n**Errors ({len(result.errors)}):**")
        lines.extend(format_errors(result.errors))
    return truncate_message("\n".join(lines))


def format_teardown_summary(result: TeardownResult) -> str:
    header = "✅ Reset complete" if result.success else "⚠️ Reset finished with errors"
    lines = [
        f"**{header}**",
        f"Deleted channels: {result.channels_deleted} | categories: {result.categories_deleted} | "
        f"roles: {result.roles_deleted} | AutoMod rules: {result.automod_rules_deleted}",
    ]
    if result.skipped:
        lines.append(f"Skipped: {len(result.skipped)} ({', '.join(result.skipped[:ERRORS_SHOWN])})")
    lines.append(f"Time: {result.elapsed:.1f}s")
    if result.errors:
        lines.append(f"\n**Errors ({len(result.errors)}):**")
        lines.extend(format_errors(result.errors))
    return truncate_message("\n".join(lines))


def format_abort(exc: Exception, partial: Optional[Union[SetupResult, TeardownResult]] = None) -> str:
    lines = [f"❌ **Aborted:** {exc}"]
    if partial is not None:
        counts = ", ".join(f"{name}={value}" for name, value in partial.counts().items())
        lines.append(f"Completed before the abort: {counts}")
        lines.append("Nothing was rolled back.")
    return truncate_message("\n".join(lines))


def _health_badge(score: int) -> str:
    if score >= 80:
        return "🟢"
    if score >= 50:
        return "🟡"
    return "🔴"


def format_analysis(analytics: ServerAnalytics) -> str:
    server, channels, roles, health = analytics.server, analytics.channels, analytics.roles, analytics.health
    lines = [
        f"📊 **{server.name}**",
        f"Health: {_health_badge(health.score)} {health.score}/100",
        f"Members: {server.member_count} ({server.online_count} online) | "
        f"Boosts: {server.boost_count} (level {server.boost_level})",
        f"Created: {server.created_at:%Y-%m-%d} ({server.age_days} days ago)",
        "",
        f"Channels: {channels.total} | text {channels.text}, voice {channels.voice}, forum {channels.forum}, "
        f"announcement {channels.announcement}, stage {channels.stage}, categories {channels.categories}",
        f"Roles: {roles.total} | admin {roles.admin}, moderator {roles.moderator}, basic {roles.basic}, "
        f"managed {roles.managed}, hoisted {roles.hoisted}",
    ]
    if health.issues:
        lines.append(f"\n**Issues ({len(health.issues)}):**")
        lines.extend(format_errors(health.issues))
    if health.recommendations:
        lines.append("\n**Recommendations:**")
        lines.extend(format_errors(health.recommendations))
    return truncate_message("\n".join(lines))


def _channel_badges(channel: ChannelSpec) -> List[str]:
    badges = []
    if channel.slowmode:
        badges.append(f"slowmode: {channel.slowmode}s")
    if channel.user_limit:
        badges.append(f"limit: {channel.user_limit}")
    rule = channel.permissions
    if rule is not None:
        if rule.staff_only:
            badges.append("🔒 staff")
        if rule.role_locked:
            badges.append(f"🔑 {rule.role_locked}")
        if rule.everyone is not None and rule.everyone.send_messages is False:
            badges.append("📖 read-only")
    if channel.nsfw:
        badges.append("nsfw")
    if channel.embed is not None:
        badges.append("embed")
    return badges


def render_preview(template: ServerTemplate, *, include_staff: bool = True) -> str:
    lines = [f"📋 **{template.name}**", template.description, ""]
    for category in template.categories:
        skipped = not include_staff and category.is_staff_category
        lines.append(f"📁 **{category.name}**" + (" (skipped)" if skipped else ""))
        for channel in category.channels:
            badges = _channel_badges(channel)
            extra = f" ({', '.join(badges)})" if badges else ""
            lines.append(f"  {_KIND_ICONS[channel.kind]} {channel.name}{extra}")

    lines.append("")
    lines.append("👥 **Roles**")
    for role in sorted(template.roles, key=lambda r: r.position, reverse=True):
        badge = "🏷️" if role.hoist else "▫️"
        lines.append(f"  {badge} {role.name} ({role.color})")

    lines.append("")
    lines.append(
        f"📊 Total: {len(template.categories)} categories, "
        f"{template.channel_count} channels, {len(template.roles)} roles"
    )
    return "\n".join(lines)


async def send_safe_followup(
    interaction: discord.Interaction,
    content: str,
    *,
    ephemeral: bool = True,
    filename: str = "guildforge_report.txt",
) -> Optional[discord.Message]:
    """Send a followup that never exceeds the message limit.

    Longer content is cut and the full text attached as a file.
    """
    try:
        if len(content) <= MESSAGE_LIMIT:
            return await interaction.followup.send(content, ephemeral=ephemeral, wait=True)

        summary = truncate_message(content)
        attachment = discord.File(io.BytesIO(content.encode("utf-8")), filename=filename)
        return await interaction.followup.send(summary, file=attachment, ephemeral=ephemeral, wait=True)
    except discord.Forbidden:
        log.warning("Missing permissions to send followup")
    except discord.HTTPException as e:
        log.error("Failed to send followup: %s", e)
    return None
