from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

import discord

from .api import GuildApi
from .overwrites import OverwriteKind
from .payloads import ChannelResponse, RoleResponse
from .permissions import permission_names, STAFF_POSITION
from .preflight import run_preflight
from .template import (
    CategorySpec,
    ChannelKind,
    ChannelSpec,
    EveryoneRule,
    GuildSettings,
    PermissionRule,
    RoleSpec,
    ServerTemplate,
)

log = logging.getLogger("guildforge.backup")

UNCATEGORIZED = "GENERAL"


def _slug(name: str) -> str:
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9]", "-", name.lower())).strip("-") or "guild"


def _is_staff_role(role: RoleResponse) -> bool:
    permissions = discord.Permissions(int(role.permissions))
    return role.position >= STAFF_POSITION or permissions.administrator or permissions.manage_guild


def _channel_rule(channel: ChannelResponse, everyone_id: int, roles: Dict[int, RoleResponse]) -> Optional[PermissionRule]:
    """Recover a symbolic rule from the overwrites we know how to produce."""
    send_denied = view_denied = False
    allowed: List[RoleResponse] = []

    for overwrite in channel.overwrites:
        if overwrite.type != OverwriteKind.ROLE:
            continue
        target = int(overwrite.id)
        deny = discord.Permissions(int(overwrite.deny))
        allow = discord.Permissions(int(overwrite.allow))
        if target == everyone_id:
            send_denied = deny.send_messages
            view_denied = deny.view_channel
        elif target in roles and allow.view_channel:
            allowed.append(roles[target])

    locked = next((r for r in allowed if not _is_staff_role(r)), None) if view_denied else None
    staff_only = view_denied and bool(allowed) and locked is None
    # A hidden channel with no allowed role is a plain everyone deny
    hidden = view_denied and not allowed

    everyone = None
    if send_denied or hidden:
        everyone = EveryoneRule(
            send_messages=False if send_denied else None,
            view_channel=False if hidden else None,
        )

    rule = PermissionRule(everyone=everyone, staff_only=staff_only, role_locked=locked.name if locked else None)
    return rule if rule.to_dict() else None


def _channel_spec(channel: ChannelResponse, everyone_id: int, roles: Dict[int, RoleResponse]) -> ChannelSpec:
    kind = ChannelKind.from_channel_type(channel.type) or ChannelKind.TEXT
    tags = tuple(t.get("name", "") for t in channel.available_tags or ()) if kind is ChannelKind.FORUM else ()
    return ChannelSpec(
        name=channel.name,
        kind=kind,
        topic=channel.topic or None,
        slowmode=channel.rate_limit_per_user or None,
        nsfw=bool(channel.nsfw),
        user_limit=(channel.user_limit or None) if kind.is_voice else None,
        bitrate=(channel.bitrate or None) if kind.is_voice else None,
        permissions=_channel_rule(channel, everyone_id, roles),
        tags=tags,
    )


async def export_guild(api: GuildApi, guild_id: int) -> ServerTemplate:
    """Read the guild's structure back into a template.

    Channels without a category are collected into a leading "GENERAL"
    category. @everyone and managed roles are left out.
    """
    context = await run_preflight(api, guild_id, check_permissions=False)
    guild = context.guild
    channels = await api.list_channels(guild_id)
    roles = {int(r.id): r for r in context.roles}

    category_type = discord.ChannelType.category.value
    parents = sorted((c for c in channels if c.type == category_type), key=lambda c: c.position)
    children: Dict[Optional[int], List[ChannelResponse]] = {}
    for channel in channels:
        if channel.type == category_type:
            continue
        parent = int(channel.parent_id) if channel.parent_id else None
        children.setdefault(parent, []).append(channel)

    def specs(parent: Optional[int]):
        return tuple(
            _channel_spec(c, guild_id, roles)
            for c in sorted(children.get(parent, ()), key=lambda c: c.position)
        )

    categories = [CategorySpec(name=c.name, channels=specs(int(c.id))) for c in parents]
    if children.get(None):
        categories.insert(0, CategorySpec(name=UNCATEGORIZED, channels=specs(None)))

    template_roles = tuple(
        RoleSpec(
            name=r.name,
            color=f"#{r.color:06x}",
            hoist=r.hoist,
            mentionable=r.mentionable,
            position=r.position,
            permissions=tuple(permission_names(discord.Permissions(int(r.permissions)))),
        )
        for r in sorted(roles.values(), key=lambda r: r.position)
        if int(r.id) != guild_id and not r.managed
    )

    template = ServerTemplate(
        id=f"backup-{_slug(guild.name)}",
        name=f"{guild.name} (Backup)",
        description=guild.description or f"Backup of {guild.name}",
        categories=tuple(categories),
        roles=template_roles,
        settings=GuildSettings(
            verification_level=guild.verification_level,
            default_notifications=guild.default_message_notifications,
            explicit_content_filter=guild.explicit_content_filter,
        ),
    )
    log.info(
        "Exported guild %s: %d categories, %d channels, %d roles",
        guild_id, len(template.categories), template.channel_count, len(template.roles),
    )
    return template
