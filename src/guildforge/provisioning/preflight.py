from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import discord

from .api import GuildApi
from .errors import FatalRemoteError, PerItemError
from .payloads import GuildResponse, RoleResponse
from .permissions import effective_guild_permissions, missing_setup_permissions

log = logging.getLogger("guildforge.preflight")


@dataclass
class GuildContext:
    """What a run learns about the target before it changes anything."""
    guild_id: int
    guild_name: str
    bot_id: int
    is_owner: bool
    permissions: discord.Permissions
    top_role_position: int
    roles: List[RoleResponse] = field(default_factory=list)
    guild: Optional[GuildResponse] = None

    @property
    def everyone_id(self) -> int:
        # The @everyone role shares the guild's id
        return self.guild_id

    def role_names(self) -> Dict[int, str]:
        return {int(r.id): r.name for r in self.roles}


async def run_preflight(api: GuildApi, guild_id: int, *, check_permissions: bool = True) -> GuildContext:
    """Fetch the bot's identity, the guild and its roles, and check capabilities.

    Every failure in here is fatal: nothing has been created yet, and a run
    that cannot see the guild cannot do anything useful.
    """
    try:
        user = await api.get_current_user()
        guild = await api.get_guild(guild_id)
        member = await api.get_member(guild_id, int(user.id))
        roles = await api.list_roles(guild_id)
    except PerItemError as exc:
        raise FatalRemoteError(exc.operation, str(exc), status=exc.status, code=exc.code) from exc

    held = {int(role_id) for role_id in member.roles}
    permissions = effective_guild_permissions(
        held,
        ((int(r.id), int(r.permissions)) for r in roles),
        guild_id,
    )
    top_position = max((r.position for r in roles if int(r.id) in held), default=0)
    is_owner = str(guild.owner_id) == str(user.id)

    context = GuildContext(
        guild_id=guild_id,
        guild_name=guild.name,
        bot_id=int(user.id),
        is_owner=is_owner,
        permissions=permissions,
        top_role_position=top_position,
        roles=roles,
        guild=guild,
    )

    if check_permissions and not is_owner:
        missing = missing_setup_permissions(permissions)
        if missing:
            log.error("Missing guild permissions in %s: %s", guild_id, ", ".join(missing))
            raise FatalRemoteError("preflight", f"bot is missing permissions: {', '.join(missing)}", status=403)

    log.info(
        "Preflight ok for %s (%s): owner=%s top_role_position=%d roles=%d",
        guild.name, guild_id, is_owner, top_position, len(roles),
    )
    return context
