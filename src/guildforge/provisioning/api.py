from __future__ import annotations

import logging
from typing import List, Optional

from .payloads import (
    AutoModRuleResponse,
    ChannelResponse,
    CreateAutoModRuleRequest,
    CreateChannelRequest,
    CreateMessageRequest,
    CreateRoleRequest,
    GuildResponse,
    MemberResponse,
    MessageResponse,
    ModifyGuildRequest,
    ModifyOnboardingRequest,
    RoleResponse,
    UserResponse,
)
from .rate_limiter import RateLimitedClient
from .transport import Transport

log = logging.getLogger("guildforge.api")

AUDIT_REASON = "guildforge template setup"


class GuildApi:
    """The REST routes a provisioning run touches, one typed method each.

    All calls go through the run's RateLimitedClient.
    """

    def __init__(self, transport: Transport, limiter: RateLimitedClient, *, reason: str = AUDIT_REASON):
        self._transport = transport
        self._limiter = limiter
        self._reason = reason

    async def _call(self, operation: str, method: str, path: str, payload: object = None):
        return await self._limiter.execute(
            operation,
            self._transport.request,
            method,
            path,
            payload=payload,
            reason=self._reason if method != "GET" else None,
        )

    # Identity / guild

    async def get_current_user(self) -> UserResponse:
        return UserResponse.from_payload(await self._call("get_current_user", "GET", "/users/@me"))

    async def get_guild(self, guild_id: int, *, with_counts: bool = False) -> GuildResponse:
        query = "?with_counts=true" if with_counts else ""
        return GuildResponse.from_payload(await self._call("get_guild", "GET", f"/guilds/{guild_id}{query}"))

    async def get_member(self, guild_id: int, user_id: int) -> MemberResponse:
        data = await self._call("get_member", "GET", f"/guilds/{guild_id}/members/{user_id}")
        return MemberResponse.from_payload(data)

    async def modify_guild(self, guild_id: int, request: ModifyGuildRequest) -> GuildResponse:
        data = await self._call("modify_guild", "PATCH", f"/guilds/{guild_id}", request.to_payload())
        return GuildResponse.from_payload(data)

    # Roles

    async def list_roles(self, guild_id: int) -> List[RoleResponse]:
        data = await self._call("list_roles", "GET", f"/guilds/{guild_id}/roles")
        return [RoleResponse.from_payload(r) for r in data]

    async def create_role(self, guild_id: int, request: CreateRoleRequest) -> RoleResponse:
        data = await self._call("create_role", "POST", f"/guilds/{guild_id}/roles", request.to_payload())
        return RoleResponse.from_payload(data)

    async def delete_role(self, guild_id: int, role_id: int) -> None:
        await self._call("delete_role", "DELETE", f"/guilds/{guild_id}/roles/{role_id}")

    # Channels

    async def list_channels(self, guild_id: int) -> List[ChannelResponse]:
        data = await self._call("list_channels", "GET", f"/guilds/{guild_id}/channels")
        return [ChannelResponse.from_payload(c) for c in data]

    async def create_channel(self, guild_id: int, request: CreateChannelRequest) -> ChannelResponse:
        data = await self._call("create_channel", "POST", f"/guilds/{guild_id}/channels", request.to_payload())
        return ChannelResponse.from_payload(data)

    async def delete_channel(self, channel_id: int) -> None:
        await self._call("delete_channel", "DELETE", f"/channels/{channel_id}")

    # Messages

    async def create_message(self, channel_id: int, request: CreateMessageRequest) -> MessageResponse:
        data = await self._call("create_message", "POST", f"/channels/{channel_id}/messages", request.to_payload())
        return MessageResponse.from_payload(data)

    # Auto moderation

    async def list_automod_rules(self, guild_id: int) -> List[AutoModRuleResponse]:
        data = await self._call("list_automod_rules", "GET", f"/guilds/{guild_id}/auto-moderation/rules")
        return [AutoModRuleResponse.from_payload(r) for r in data]

    async def create_automod_rule(self, guild_id: int, request: CreateAutoModRuleRequest) -> AutoModRuleResponse:
        data = await self._call(
            "create_automod_rule", "POST", f"/guilds/{guild_id}/auto-moderation/rules", request.to_payload()
        )
        return AutoModRuleResponse.from_payload(data)

    async def delete_automod_rule(self, guild_id: int, rule_id: int) -> None:
        await self._call("delete_automod_rule", "DELETE", f"/guilds/{guild_id}/auto-moderation/rules/{rule_id}")

    # Onboarding

    async def modify_onboarding(self, guild_id: int, request: ModifyOnboardingRequest) -> Optional[dict]:
        return await self._call("modify_onboarding", "PUT", f"/guilds/{guild_id}/onboarding", request.to_payload())
