from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import discord
from discord.ext import commands

from .catalog import TemplateCatalog
from .config import Settings
from .provisioning.engine import Provisioner
from .provisioning.registry import RunRegistry

log = logging.getLogger("guildforge.bot")


class _CommandSyncManager:
    def __init__(self, bot: "GuildForgeBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        if self.bot.settings.sync_guild_id:
            await self.sync_guild(self.bot.settings.sync_guild_id)
        else:
            await self.sync_global()

    async def sync_global(self) -> None:
        async with self._lock:
            await self.bot.tree.sync()
            log.info("Commands synced globally")
            self._log_tree()

    async def sync_guild(self, guild_id: int) -> None:
        async with self._lock:
            guild = discord.Object(id=guild_id)
            self.bot.tree.copy_global_to(guild=guild)
            await self.bot.tree.sync(guild=guild)
            log.info("Commands synced to guild %d", guild_id)
            self._log_tree()

    def _log_tree(self) -> None:
        cmds = self.bot.tree.get_commands()
        log.info("Tree commands loaded: %d", len(cmds))
        for c in cmds:
            log.info(" - /%s", c.name)


class GuildForgeBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
            help_command=None,
        )

        self.settings = settings
        self.registry = RunRegistry()
        self.provisioner = Provisioner(
            self.registry,
            settings.rate_policy(),
            api_base_url=settings.api_base_url,
            progress_interval=settings.progress_interval_seconds,
        )
        self.catalog = TemplateCatalog(Path(settings.templates_dir) if settings.templates_dir else None)
        self._sync_mgr = _CommandSyncManager(self)

    async def setup_hook(self) -> None:
        from .cogs.forge import ForgeCog

        await self.add_cog(ForgeCog(self))
        log.info("Loaded cog: ForgeCog")
        await self._sync_mgr.sync_startup()

    async def on_ready(self) -> None:
        log.info(
            "Logged in as %s (%s) in %d guilds; %d templates available",
            self.user, self.user.id if self.user else "?", len(self.guilds), len(self.catalog.ids()),
        )
