from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, TYPE_CHECKING

import discord

if TYPE_CHECKING:
    from .template import RoleSpec

log = logging.getLogger("guildforge.permissions")


# Template vocabulary, normalised to discord.Permissions flag names
PERMISSION_NAMES = frozenset({
    "create_instant_invite",
    "kick_members",
    "ban_members",
    "administrator",
    "manage_channels",
    "manage_guild",
    "add_reactions",
    "view_audit_log",
    "priority_speaker",
    "stream",
    "view_channel",
    "send_messages",
    "send_tts_messages",
    "manage_messages",
    "embed_links",
    "attach_files",
    "read_message_history",
    "mention_everyone",
    "use_external_emojis",
    "view_guild_insights",
    "connect",
    "speak",
    "mute_members",
    "deafen_members",
    "move_members",
    "use_voice_activation",
    "change_nickname",
    "manage_nicknames",
    "manage_roles",
    "manage_webhooks",
    "manage_expressions",
    "use_application_commands",
    "request_to_speak",
    "manage_events",
    "manage_threads",
    "create_public_threads",
    "create_private_threads",
    "use_external_stickers",
    "send_messages_in_threads",
    "moderate_members",
})

ALIASES = {
    "read_messages": "view_channel",
    "moderate_messages": "manage_messages",
    "kick": "kick_members",
    "ban": "ban_members",
    "timeout_members": "moderate_members",
    "manage_emojis": "manage_expressions",
    "manage_emojis_and_stickers": "manage_expressions",
    "use_slash_commands": "use_application_commands",
    "manage_server": "manage_guild",
    "manage_permissions": "manage_roles",
}

STAFF_POSITION = 12


def normalize_permission_name(name: str) -> str | None:
    """Return the canonical flag name, or None when the name is not in the vocabulary."""
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    key = ALIASES.get(key, key)
    return key if key in PERMISSION_NAMES else None


def unknown_permission_names(names: Iterable[str]) -> List[str]:
    return [n for n in names if normalize_permission_name(n) is None]


def resolve_permissions(names: Iterable[str]) -> discord.Permissions:
    """OR together the bits of every known name. Unknown names are ignored."""
    value = 0
    for name in names:
        flag = normalize_permission_name(name)
        if flag is None:
            log.debug("Ignoring unknown permission name %r", name)
            continue
        value |= getattr(discord.Permissions, flag).flag
    return discord.Permissions(value)


def permission_names(permissions: discord.Permissions) -> List[str]:
    """Inverse of resolve_permissions, upper-cased the way templates spell them."""
    return sorted(
        name.upper()
        for name in PERMISSION_NAMES
        if getattr(permissions, name)
    )


def is_staff(role: "RoleSpec") -> bool:
    """Staff: high rank, or administrator / manage-guild capability."""
    if role.position >= STAFF_POSITION:
        return True
    permissions = resolve_permissions(role.permissions)
    return permissions.administrator or permissions.manage_guild


def staff_roles(roles: Sequence["RoleSpec"]) -> List["RoleSpec"]:
    return [role for role in roles if is_staff(role)]


def effective_guild_permissions(
    member_role_ids: Iterable[int],
    guild_roles: Iterable[tuple[int, int]],
    everyone_id: int,
) -> discord.Permissions:
    """Union of @everyone and every role the member holds. guild_roles is (id, permissions)."""
    held = set(member_role_ids)
    held.add(everyone_id)
    value = 0
    for role_id, bits in guild_roles:
        if role_id in held:
            value |= bits
    permissions = discord.Permissions(value)
    if permissions.administrator:
        return discord.Permissions.all()
    return permissions


def missing_setup_permissions(permissions: discord.Permissions) -> List[str]:
    """Guild-level capabilities a run needs. Administrator bypasses individual checks."""
    if permissions.administrator:
        return []
    required = ("manage_roles", "manage_channels", "manage_guild")
    return [perm for perm in required if not getattr(permissions, perm)]
