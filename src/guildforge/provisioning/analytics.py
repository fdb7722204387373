"""
Server health analysis.

Reads the guild, its channels and its roles (three GETs, no writes) and
scores the layout out of 100. Each finding either costs points as an issue
or is listed as a recommendation, so the report says what to fix and not
only how bad things are.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import discord

from .api import GuildApi
from .errors import FatalRemoteError, PerItemError
from .payloads import ChannelResponse, RoleResponse

log = logging.getLogger("guildforge.analytics")

MODERATION_PERMISSIONS = discord.Permissions(kick_members=True, ban_members=True, manage_messages=True)

INFO_CHANNEL_WORDS = ("rules", "info", "welcome")
STAFF_CHANNEL_WORDS = ("staff", "admin", "mod")

MAX_ADMIN_ROLES = 3
MAX_HOISTED_ROLES = 10
MAX_TEXT_CHANNELS = 50
MIN_TEXT_CHANNELS = 3
FORUM_MEMBER_THRESHOLD = 50


@dataclass(frozen=True)
class ServerStats:
    name: str
    member_count: int
    online_count: int
    boost_level: int
    boost_count: int
    created_at: datetime.datetime
    age_days: int


@dataclass(frozen=True)
class ChannelBreakdown:
    total: int = 0
    text: int = 0
    voice: int = 0
    forum: int = 0
    announcement: int = 0
    stage: int = 0
    categories: int = 0
    empty_categories: Tuple[str, ...] = ()

    @classmethod
    def from_channels(cls, channels: Sequence[ChannelResponse]) -> "ChannelBreakdown":
        def count(kind: discord.ChannelType) -> int:
            return sum(1 for c in channels if c.type == kind.value)

        category_type = discord.ChannelType.category.value
        parents = {c.parent_id for c in channels if c.parent_id}
        return cls(
            total=len(channels),
            text=count(discord.ChannelType.text),
            voice=count(discord.ChannelType.voice),
            forum=count(discord.ChannelType.forum),
            announcement=count(discord.ChannelType.news),
            stage=count(discord.ChannelType.stage_voice),
            categories=count(discord.ChannelType.category),
            empty_categories=tuple(
                c.name for c in sorted(channels, key=lambda c: c.position)
                if c.type == category_type and c.id not in parents
            ),
        )


@dataclass(frozen=True)
class RoleBreakdown:
    total: int = 0
    managed: int = 0
    hoisted: int = 0
    colored: int = 0
    admin: int = 0
    moderator: int = 0
    basic: int = 0

    @classmethod
    def from_roles(cls, roles: Sequence[RoleResponse]) -> "RoleBreakdown":
        managed = hoisted = colored = admin = moderator = basic = 0
        for role in roles:
            permissions = discord.Permissions(int(role.permissions))
            is_admin = permissions.administrator
            is_moderator = not role.managed and not is_admin and permissions.value & MODERATION_PERMISSIONS.value
            managed += role.managed
            hoisted += role.hoist
            colored += role.color > 0
            admin += is_admin
            moderator += bool(is_moderator)
            basic += not (role.managed or is_admin or is_moderator)
        return cls(
            total=len(roles),
            managed=managed,
            hoisted=hoisted,
            colored=colored,
            admin=admin,
            moderator=moderator,
            basic=basic,
        )


@dataclass
class HealthReport:
    score: int = 100
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ServerAnalytics:
    server: ServerStats
    channels: ChannelBreakdown
    roles: RoleBreakdown
    health: HealthReport


def _mentions(names: Iterable[str], words: Sequence[str]) -> bool:
    return any(word in name.lower() for name in names for word in words)


def score_health(
    channels: ChannelBreakdown,
    roles: RoleBreakdown,
    member_count: int,
    channel_names: Sequence[str],
) -> HealthReport:
    """Score a guild layout from 0 to 100."""
    report = HealthReport()
    penalty = 0

    if channels.empty_categories:
        report.issues.append(
            f"{len(channels.empty_categories)} empty categories: {', '.join(channels.empty_categories)}"
        )
        penalty += 3 * len(channels.empty_categories)
    if channels.categories == 0:
        report.issues.append("No categories, so channels are unorganized")
        penalty += 20
    if channels.announcement == 0:
        report.recommendations.append("Add an announcement channel for important updates")
        penalty += 5
    if channels.forum == 0 and member_count > FORUM_MEMBER_THRESHOLD:
        report.recommendations.append("Add forum channels for support and feedback threads")
        penalty += 5
    if channels.voice == 0:
        report.recommendations.append("Add voice channels for real-time conversation")
        penalty += 10
    if roles.admin > MAX_ADMIN_ROLES:
        report.issues.append(f"{roles.admin} roles have Administrator")
        penalty += 10
    if roles.hoisted > MAX_HOISTED_ROLES:
        report.issues.append(f"{roles.hoisted} hoisted roles crowd the member list")
        penalty += 5
    if channels.text > MAX_TEXT_CHANNELS:
        report.issues.append(f"{channels.text} text channels is more than members can follow")
        penalty += 10
    if channels.text < MIN_TEXT_CHANNELS:
        report.issues.append("Very few text channels")
        penalty += 15
    if not _mentions(channel_names, INFO_CHANNEL_WORDS):
        report.issues.append("No rules, info or welcome channel")
        report.recommendations.append("Add a rules channel (Community servers require one)")
        penalty += 15
    if not _mentions(channel_names, STAFF_CHANNEL_WORDS):
        report.recommendations.append("Add a staff-only channel for moderation")
        penalty += 5

    report.score = max(0, min(100, 100 - penalty))
    return report


async def analyze_guild(api: GuildApi, guild_id: int, *, now: Optional[datetime.datetime] = None) -> ServerAnalytics:
    """Fetch the guild's structure and build its health report.

    The @everyone role is left out of the role counts. Any failed read is
    fatal.
    """
    try:
        guild = await api.get_guild(guild_id, with_counts=True)
        channels = await api.list_channels(guild_id)
        roles = [r for r in await api.list_roles(guild_id) if int(r.id) != guild_id]
    except PerItemError as exc:
        raise FatalRemoteError(exc.operation, str(exc), status=exc.status, code=exc.code) from exc

    created_at = discord.utils.snowflake_time(int(guild.id))
    now = now or discord.utils.utcnow()

    channel_breakdown = ChannelBreakdown.from_channels(channels)
    role_breakdown = RoleBreakdown.from_roles(roles)
    health = score_health(
        channel_breakdown,
        role_breakdown,
        guild.approximate_member_count,
        [c.name for c in channels],
    )
    log.info("Guild %s scored %d (%d issues)", guild_id, health.score, len(health.issues))

    return ServerAnalytics(
        server=ServerStats(
            name=guild.name,
            member_count=guild.approximate_member_count,
            online_count=guild.approximate_presence_count,
            boost_level=guild.premium_tier,
            boost_count=guild.premium_subscription_count,
            created_at=created_at,
            age_days=max(0, (now - created_at).days),
        ),
        channels=channel_breakdown,
        roles=role_breakdown,
        health=health,
    )
