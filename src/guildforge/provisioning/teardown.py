from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import discord

from .api import GuildApi
from .automod import is_managed_rule
from .errors import FatalRemoteError, PerItemError
from .preflight import GuildContext, run_preflight
from .progress import Phase, ProgressThrottle
from .rate_limiter import Clock

log = logging.getLogger("guildforge.teardown")


@dataclass
class TeardownResult:
    channels_deleted: int = 0
    categories_deleted: int = 0
    roles_deleted: int = 0
    automod_rules_deleted: int = 0
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors

    def counts(self) -> Dict[str, int]:
        return {
            "channels": self.channels_deleted,
            "categories": self.categories_deleted,
            "roles": self.roles_deleted,
            "automod_rules": self.automod_rules_deleted,
        }


class TeardownPipeline:
    """Delete every channel, category and deletable role in a guild.

    Channels go before categories so nothing is orphaned mid-run. Roles that
    are @everyone, managed by an integration, or at or above the bot's top
    role are skipped, since Discord would refuse them anyway.
    """

    def __init__(self, api: GuildApi, guild_id: int, progress: ProgressThrottle, *, clock: Clock = time.monotonic):
        self.api = api
        self.guild_id = guild_id
        self.progress = progress
        self._clock = clock
        self.result = TeardownResult()
        self.context: Optional[GuildContext] = None

    def _record(self, label: str, exc: PerItemError) -> None:
        message = f"{label}: {exc}"
        log.warning("Guild %s: %s", self.guild_id, message)
        self.result.errors.append(message)

    async def run(self) -> TeardownResult:
        started = self._clock()
        try:
            await self.progress.update(Phase.PREFLIGHT, 0, 1)
            context = await run_preflight(self.api, self.guild_id)
            self.context = context
            await self.progress.update(Phase.PREFLIGHT, 1, 1)
            await self._delete_channels()
            await self._delete_roles(context)
            await self._delete_automod_rules()
            await self.progress.update(Phase.DONE, 1, 1)
        except FatalRemoteError as exc:
            self.result.elapsed = self._clock() - started
            exc.result = self.result
            log.error("Teardown of guild %s aborted: %s", self.guild_id, exc)
            raise

        self.result.elapsed = self._clock() - started
        log.info(
            "Teardown of guild %s finished in %.1fs: %s, %d errors",
            self.guild_id, self.result.elapsed, self.result.counts(), len(self.result.errors),
        )
        return self.result

    async def _delete_channels(self) -> None:
        try:
            channels = await self.api.list_channels(self.guild_id)
        except PerItemError as exc:
            self._record("Listing channels", exc)
            return

        category_type = discord.ChannelType.category.value
        plain = [c for c in channels if c.type != category_type]
        categories = [c for c in channels if c.type == category_type]

        await self.progress.update(Phase.DELETE_CHANNELS, 0, len(plain))
        for index, channel in enumerate(plain, start=1):
            try:
                await self.api.delete_channel(int(channel.id))
            except PerItemError as exc:
                self._record(f'Channel "{channel.name}"', exc)
            else:
                self.result.channels_deleted += 1
            await self.progress.update(Phase.DELETE_CHANNELS, index, len(plain))

        await self.progress.update(Phase.DELETE_CATEGORIES, 0, len(categories))
        for index, category in enumerate(categories, start=1):
            try:
                await self.api.delete_channel(int(category.id))
            except PerItemError as exc:
                self._record(f'Category "{category.name}"', exc)
            else:
                self.result.categories_deleted += 1
            await self.progress.update(Phase.DELETE_CATEGORIES, index, len(categories))

    async def _delete_roles(self, context: GuildContext) -> None:
        eligible = []
        for role in context.roles:
            if int(role.id) == context.everyone_id:
                continue
            if role.managed:
                self.result.skipped.append(f'Role "{role.name}" (managed)')
            elif role.position >= context.top_role_position and not context.is_owner:
                self.result.skipped.append(f'Role "{role.name}" (above bot)')
            else:
                eligible.append(role)

        eligible.sort(key=lambda r: r.position, reverse=True)
        await self.progress.update(Phase.DELETE_ROLES, 0, len(eligible))
        for index, role in enumerate(eligible, start=1):
            try:
                await self.api.delete_role(self.guild_id, int(role.id))
            except PerItemError as exc:
                self._record(f'Role "{role.name}"', exc)
            else:
                self.result.roles_deleted += 1
            await self.progress.update(Phase.DELETE_ROLES, index, len(eligible))

    async def _delete_automod_rules(self) -> None:
        try:
            rules = await self.api.list_automod_rules(self.guild_id)
        except PerItemError as exc:
            self._record("Listing AutoMod rules", exc)
            return

        ours = [r for r in rules if is_managed_rule(r.name)]
        await self.progress.update(Phase.DELETE_AUTOMOD, 0, len(ours))
        for index, rule in enumerate(ours, start=1):
            try:
                await self.api.delete_automod_rule(self.guild_id, int(rule.id))
            except PerItemError as exc:
                self._record(f'AutoMod rule "{rule.name}"', exc)
            else:
                self.result.automod_rules_deleted += 1
            await self.progress.update(Phase.DELETE_AUTOMOD, index, len(ours))
