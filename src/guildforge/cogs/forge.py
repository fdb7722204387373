"""
Forge Cog

Slash commands that collect parameters and hand them to the Provisioner.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..catalog import TemplateNotFoundError
from ..provisioning.errors import FatalRemoteError, RunInProgressError, TemplateValidationError
from ..provisioning.progress import Phase
from ..provisioning.reporting import (
    format_abort,
    format_analysis,
    format_errors,
    format_progress,
    format_setup_summary,
    format_teardown_summary,
    render_preview,
    send_safe_followup,
    truncate_message,
)

if TYPE_CHECKING:
    from ..bot import GuildForgeBot

log = logging.getLogger("guildforge.cogs.forge")


class ConfirmationView(discord.ui.View):
    """Confirm / cancel buttons, usable only by the member who ran the command."""

    def __init__(self, author_id: int, *, timeout: float = 60):
        super().__init__(timeout=timeout)
        self.author_id = author_id
        self.value: Optional[bool] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.author_id:
            await interaction.response.send_message("❌ Only the person who ran the command can answer.", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.value = True
        await interaction.response.edit_message(content="Confirmed, starting...", embed=None, view=None)
        self.stop()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.value = False
        await interaction.response.edit_message(content="Cancelled.", embed=None, view=None)
        self.stop()


class FollowupProgress:
    """Progress callback that edits one followup message in place."""

    def __init__(self, message: discord.WebhookMessage, title: str):
        self.message = message
        self.title = title
        self.start_time = time.monotonic()

    async def __call__(self, phase: Phase, index: int, total: int) -> None:
        content = format_progress(phase, index, total, time.monotonic() - self.start_time, title=self.title)
        try:
            await self.message.edit(content=truncate_message(content))
        except discord.HTTPException as e:
            log.warning("Failed to update progress message: %s", e)


class ForgeCog(commands.Cog):
    """Server setup from templates."""

    forge = app_commands.Group(
        name="forge",
        description="Build this server from a template",
        default_permissions=discord.Permissions(administrator=True),
        guild_only=True,
    )

    def __init__(self, bot: "GuildForgeBot"):
        self.bot = bot

    async def _template_autocomplete(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        current = current.lower()
        return [
            app_commands.Choice(name=f"{entry.name} ({entry.id})"[:100], value=entry.id)
            for entry in self.bot.catalog.entries()
            if current in entry.id.lower() or current in entry.name.lower()
        ][:25]

    @forge.command(name="templates", description="List the available server templates")
    async def templates(self, interaction: discord.Interaction) -> None:
        entries = self.bot.catalog.entries()
        if not entries:
            await interaction.response.send_message("No templates are installed.", ephemeral=True)
            return

        embed = discord.Embed(title="Server templates", color=discord.Color.blurple())
        for entry in entries[:25]:
            embed.add_field(
                name=f"{entry.name} (`{entry.id}`)",
                value=f"{entry.description}\n{entry.categories} categories, {entry.channels} channels, {entry.roles} roles"[:1024],
                inline=False,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @forge.command(name="preview", description="Show what a template would create")
    @app_commands.describe(template="Template id", include_staff="Include staff categories")
    async def preview(self, interaction: discord.Interaction, template: str, include_staff: Optional[bool] = None) -> None:
        staff = self.bot.settings.include_staff_default if include_staff is None else include_staff
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            loaded = self.bot.catalog.load(template, include_staff=staff)
        except (TemplateNotFoundError, TemplateValidationError) as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return
        await send_safe_followup(interaction, render_preview(loaded, include_staff=staff), filename=f"{loaded.id}_preview.txt")

    @forge.command(name="status", description="Score this server's layout and suggest improvements")
    async def server_status(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message("❌ This command can only be used in a server.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            analytics = await self.bot.provisioner.analyze(guild.id, self.bot.settings.token)
        except FatalRemoteError as e:
            await send_safe_followup(interaction, format_abort(e))
            return
        await send_safe_followup(interaction, format_analysis(analytics), filename="guildforge_status.txt")

    @forge.command(name="setup", description="Create roles, channels and settings from a template")
    @app_commands.describe(template="Template id", include_staff="Include staff categories")
    async def setup_server(self, interaction: discord.Interaction, template: str, include_staff: Optional[bool] = None) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message("❌ This command can only be used in a server.", ephemeral=True)
            return
        if self.bot.registry.is_running(guild.id):
            await interaction.response.send_message("⏳ A run is already in progress for this server.", ephemeral=True)
            return

        staff = self.bot.settings.include_staff_default if include_staff is None else include_staff
        try:
            loaded = self.bot.catalog.load(template, include_staff=staff)
        except TemplateNotFoundError as e:
            await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            return
        except TemplateValidationError as e:
            lines = [f"❌ Template `{template}` is invalid:"]
            lines.extend(format_errors([f"{i.field}: {i.message}" for i in e.result.errors]))
            await interaction.response.send_message(truncate_message("\n".join(lines)), ephemeral=True)
            return

        embed = discord.Embed(
            title=f"Set up {loaded.name}?",
            description=(
                f"{loaded.description}\n\n"
                f"This adds **{len(loaded.roles)} roles**, **{len(loaded.categories)} categories** and "
                f"**{loaded.channel_count} channels** to this server. Existing channels and roles are kept; "
                "running it twice creates everything twice."
            ),
            color=discord.Color.orange(),
        )
        view = ConfirmationView(interaction.user.id, timeout=self.bot.settings.confirm_timeout_seconds)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)
        if await view.wait() or view.value is not True:
            if view.value is None:
                await interaction.edit_original_response(content="⌛ Confirmation timed out.", embed=None, view=None)
            return

        status = await interaction.followup.send("🔨 **Server setup starting...**", ephemeral=True, wait=True)
        progress = FollowupProgress(status, f"Server setup: {loaded.name}")
        try:
            result = await self.bot.provisioner.run(
                guild.id, loaded, self.bot.settings.token, progress, include_staff=staff
            )
        except RunInProgressError as e:
            await send_safe_followup(interaction, f"⏳ {e}")
            return
        except FatalRemoteError as e:
            await send_safe_followup(interaction, format_abort(e, e.result))
            return

        await send_safe_followup(interaction, format_setup_summary(result, loaded.name))

    @preview.autocomplete("template")
    async def _preview_template(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        return await self._template_autocomplete(interaction, current)

    @setup_server.autocomplete("template")
    async def _setup_template(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        return await self._template_autocomplete(interaction, current)

    @forge.command(name="reset", description="Delete every channel and deletable role in this server")
    async def reset_server(self, interaction: discord.Interaction) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message("❌ This command can only be used in a server.", ephemeral=True)
            return
        if self.bot.registry.is_running(guild.id):
            await interaction.response.send_message("⏳ A run is already in progress for this server.", ephemeral=True)
            return

        embed = discord.Embed(
            title="⚠️ Reset this server?",
            description=(
                "This **deletes every channel and category** and every role below the bot's top role "
                "(managed roles and @everyone are kept), plus the AutoMod rules this bot created.\n\n"
                "**This cannot be undone.**"
            ),
            color=discord.Color.red(),
        )
        view = ConfirmationView(interaction.user.id, timeout=self.bot.settings.confirm_timeout_seconds)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)
        if await view.wait() or view.value is not True:
            if view.value is None:
                await interaction.edit_original_response(content="⌛ Confirmation timed out.", embed=None, view=None)
            return

        status = await interaction.followup.send("🧹 **Reset starting...**", ephemeral=True, wait=True)
        progress = FollowupProgress(status, "Server reset")
        try:
            result = await self.bot.provisioner.teardown(guild.id, self.bot.settings.token, progress)
        except RunInProgressError as e:
            await send_safe_followup(interaction, f"⏳ {e}")
            return
        except FatalRemoteError as e:
            await send_safe_followup(interaction, format_abort(e, e.result))
            return

        # The channel the command ran in is gone by now; the ephemeral followup still reaches the user
        await send_safe_followup(interaction, format_teardown_summary(result))
