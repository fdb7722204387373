"""
Provisioning Engine

Turns a validated ServerTemplate into a configured guild. A run is one
sequential coroutine that walks the phases in order:

    Preflight -> Roles -> Categories & Channels -> Embeds -> Settings -> Done

Each phase is a barrier: nothing from a later phase starts until the earlier
one has finished, which is what lets channel overwrites refer to role ids.
Per-item failures are collected in the SetupResult and the run moves on;
a FatalRemoteError stops the run with whatever was created left in place.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import discord

from .analytics import ServerAnalytics, analyze_guild
from .api import GuildApi
from .automod import build_automod_rules
from .backup import export_guild
from .errors import FatalRemoteError, PerItemError, TemplateValidationError
from .onboarding import build_onboarding
from .overwrites import build_overwrites
from .payloads import CreateChannelRequest, CreateMessageRequest, CreateRoleRequest, ModifyGuildRequest
from .permissions import resolve_permissions
from .preflight import GuildContext, run_preflight
from .progress import Phase, ProgressCallback, ProgressThrottle
from .rate_limiter import RateLimitedClient, RatePolicy, Sleep, Clock
from .registry import RunRegistry
from .teardown import TeardownPipeline, TeardownResult
from .template import ChannelKind, ChannelSpec, EmbedSpec, GuildSettings, ServerTemplate
from .transport import DEFAULT_API_BASE, HttpTransport, Transport
from .validation import BITRATE_RANGE, SETTINGS_RANGES, SLOWMODE_RANGE, USER_LIMIT_RANGE, TemplateValidator

log = logging.getLogger("guildforge.engine")

MAX_FORUM_TAGS = 20
MAX_EMBED_FIELDS = 25

TransportFactory = Callable[[str], Transport]


@dataclass
class SetupResult:
    roles_created: int = 0
    categories_created: int = 0
    channels_created: int = 0
    embeds_sent: int = 0
    automod_rules_created: int = 0
    settings_applied: bool = False
    onboarding_applied: bool = False
    errors: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors

    def counts(self) -> Dict[str, int]:
        return {
            "roles": self.roles_created,
            "categories": self.categories_created,
            "channels": self.channels_created,
            "embeds": self.embeds_sent,
            "automod_rules": self.automod_rules_created,
        }


def _clamp(value: Any, bounds: Tuple[int, int]) -> Optional[int]:
    """Clamp an integer into bounds. Non-integers are dropped."""
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        return None
    low, high = bounds
    return min(max(value, low), high)


def build_channel_request(
    spec: ChannelSpec,
    *,
    parent_id: Optional[int],
    overwrites: List[Dict[str, object]],
) -> CreateChannelRequest:
    """Request body for one channel, carrying only the fields its kind accepts."""
    kind = spec.kind
    request = CreateChannelRequest(
        name=spec.name,
        type=kind.channel_type.value,
        parent_id=str(parent_id) if parent_id is not None else None,
        permission_overwrites=overwrites or None,
    )

    if kind in (ChannelKind.TEXT, ChannelKind.ANNOUNCEMENT, ChannelKind.FORUM) and spec.topic:
        request.topic = spec.topic
    if kind is not ChannelKind.ANNOUNCEMENT:
        slowmode = _clamp(spec.slowmode, SLOWMODE_RANGE)
        if slowmode:
            request.rate_limit_per_user = slowmode
    if spec.nsfw and kind is not ChannelKind.STAGE:
        request.nsfw = True
    if kind is ChannelKind.VOICE:
        user_limit = _clamp(spec.user_limit, USER_LIMIT_RANGE)
        if user_limit is not None:
            request.user_limit = user_limit
    if kind.is_voice:
        request.bitrate = _clamp(spec.bitrate, BITRATE_RANGE)
    if kind is ChannelKind.FORUM and spec.tags:
        request.available_tags = [{"name": tag[:20]} for tag in spec.tags[:MAX_FORUM_TAGS]]
    return request


def build_embed(spec: EmbedSpec) -> discord.Embed:
    embed = discord.Embed(title=spec.title, description=spec.description)
    if spec.color:
        try:
            embed.colour = discord.Colour.from_str(spec.color)
        except ValueError:
            log.debug("Ignoring malformed embed color %r", spec.color)
    for embed_field in spec.fields[:MAX_EMBED_FIELDS]:
        embed.add_field(name=embed_field.name, value=embed_field.value, inline=embed_field.inline)
    if spec.footer:
        embed.set_footer(text=spec.footer)
    if spec.thumbnail:
        embed.set_thumbnail(url=spec.thumbnail)
    if spec.image:
        embed.set_image(url=spec.image)
    return embed


def build_settings_request(settings: GuildSettings) -> ModifyGuildRequest:
    """Settings values outside their enum range are left out."""
    def pick(key: str) -> Optional[int]:
        value = getattr(settings, key)
        low, high = SETTINGS_RANGES[key]
        if isinstance(value, int) and not isinstance(value, bool) and low <= value <= high:
            return value
        return None

    return ModifyGuildRequest(
        verification_level=pick("verification_level"),
        default_message_notifications=pick("default_notifications"),
        explicit_content_filter=pick("explicit_content_filter"),
    )


class ProvisioningPipeline:
    """One run against one guild. Not reusable."""

    def __init__(
        self,
        api: GuildApi,
        template: ServerTemplate,
        guild_id: int,
        progress: ProgressThrottle,
        *,
        include_staff: bool = True,
        clock: Clock = time.monotonic,
    ):
        self.api = api
        self.template = template
        self.guild_id = guild_id
        self.progress = progress
        self.include_staff = include_staff
        self._clock = clock

        self.result = SetupResult()
        self.context: Optional[GuildContext] = None
        # Filled during Roles, read-only afterwards
        self.role_map: Dict[str, int] = {}
        self.channel_map: Dict[str, int] = {}
        self._embed_queue: List[Tuple[int, str, EmbedSpec]] = []

    async def run(self) -> SetupResult:
        started = self._clock()
        try:
            await self._preflight()
            await self._create_roles()
            await self._create_categories_and_channels()
            await self._send_embeds()
            await self._apply_settings()
            await self.progress.update(Phase.DONE, 1, 1)
        except FatalRemoteError as exc:
            self.result.elapsed = self._clock() - started
            exc.result = self.result
            log.error("Run for guild %s aborted: %s", self.guild_id, exc)
            raise

        self.result.elapsed = self._clock() - started
        log.info(
            "Run for guild %s finished in %.1fs: %s, %d errors",
            self.guild_id, self.result.elapsed, self.result.counts(), len(self.result.errors),
        )
        return self.result

    def _record(self, label: str, exc: PerItemError) -> None:
        message = f"{label}: {exc}"
        log.warning("Guild %s: %s", self.guild_id, message)
        self.result.errors.append(message)

    async def _preflight(self) -> None:
        log.info("Phase %s for guild %s", Phase.PREFLIGHT.label, self.guild_id)
        await self.progress.update(Phase.PREFLIGHT, 0, 1)
        self.context = await run_preflight(self.api, self.guild_id)
        await self.progress.update(Phase.PREFLIGHT, 1, 1)

    async def _create_roles(self) -> None:
        # sorted() is stable, so equal positions keep document order
        roles = sorted(self.template.roles, key=lambda r: r.position)
        total = len(roles)
        log.info("Phase %s: %d roles", Phase.ROLES.label, total)
        await self.progress.update(Phase.ROLES, 0, total)

        for index, role in enumerate(roles, start=1):
            try:
                color = role.color_value
            except ValueError:
                color = 0
            request = CreateRoleRequest(
                name=role.name,
                color=color,
                hoist=role.hoist,
                mentionable=role.mentionable,
                permissions=str(resolve_permissions(role.permissions).value) if role.permissions else None,
            )
            try:
                created = await self.api.create_role(self.guild_id, request)
            except PerItemError as exc:
                self._record(f'Role "{role.name}"', exc)
            else:
                self.role_map[role.name] = int(created.id)
                self.result.roles_created += 1
            await self.progress.update(Phase.ROLES, index, total)

    async def _create_categories_and_channels(self) -> None:
        categories = [
            c for c in self.template.categories
            if self.include_staff or not c.is_staff_category
        ]
        skipped = len(self.template.categories) - len(categories)
        if skipped:
            log.info("Skipping %d staff categories", skipped)

        total = sum(1 + len(c.channels) for c in categories)
        done = 0
        log.info("Phase %s: %d categories, %d items", Phase.CHANNELS.label, len(categories), total)
        await self.progress.update(Phase.CHANNELS, 0, total)

        everyone_id = self.guild_id
        roles = self.template.roles

        for position, category in enumerate(categories):
            overwrites = [o.to_payload() for o in build_overwrites(category.permissions, self.role_map, roles, everyone_id)]
            request = CreateChannelRequest(
                name=category.name,
                type=discord.ChannelType.category.value,
                position=position,
                permission_overwrites=overwrites or None,
            )
            try:
                created = await self.api.create_channel(self.guild_id, request)
            except PerItemError as exc:
                self._record(f'Category "{category.name}"', exc)
                # Its channels are not created; count them as handled
                done += 1 + len(category.channels)
                await self.progress.update(Phase.CHANNELS, done, total)
                continue

            self.result.categories_created += 1
            parent_id = int(created.id)
            done += 1
            await self.progress.update(Phase.CHANNELS, done, total)

            for channel in category.channels:
                await self._create_channel(channel, parent_id)
                done += 1
                await self.progress.update(Phase.CHANNELS, done, total)

    async def _create_channel(self, channel: ChannelSpec, parent_id: int) -> None:
        entries = build_overwrites(channel.permissions, self.role_map, self.template.roles, self.guild_id)
        request = build_channel_request(channel, parent_id=parent_id, overwrites=[e.to_payload() for e in entries])
        try:
            created = await self.api.create_channel(self.guild_id, request)
        except PerItemError as exc:
            self._record(f'Channel "{channel.name}"', exc)
            return

        channel_id = int(created.id)
        self.channel_map[channel.name] = channel_id
        self.result.channels_created += 1
        if channel.embed is not None:
            self._embed_queue.append((channel_id, channel.name, channel.embed))

    async def _send_embeds(self) -> None:
        total = len(self._embed_queue)
        log.info("Phase %s: %d embeds", Phase.EMBEDS.label, total)
        await self.progress.update(Phase.EMBEDS, 0, total)

        for index, (channel_id, channel_name, spec) in enumerate(self._embed_queue, start=1):
            request = CreateMessageRequest(embeds=[build_embed(spec).to_dict()])
            try:
                await self.api.create_message(channel_id, request)
            except PerItemError as exc:
                self._record(f'Embed in "{channel_name}"', exc)
            else:
                self.result.embeds_sent += 1
            await self.progress.update(Phase.EMBEDS, index, total)

    async def _apply_settings(self) -> None:
        template = self.template
        settings_request = build_settings_request(template.settings) if template.settings else None
        if settings_request is not None and settings_request.is_empty():
            settings_request = None
        rules = build_automod_rules(template.automod, self.channel_map) if template.automod else []
        onboarding = template.onboarding if template.onboarding and template.onboarding.enabled else None

        total = (1 if settings_request else 0) + len(rules) + (1 if onboarding else 0)
        done = 0
        log.info("Phase %s: %d items", Phase.SETTINGS.label, total)
        await self.progress.update(Phase.SETTINGS, 0, total)

        if settings_request is not None:
            try:
                await self.api.modify_guild(self.guild_id, settings_request)
            except PerItemError as exc:
                self._record("Server settings", exc)
            else:
                self.result.settings_applied = True
            done += 1
            await self.progress.update(Phase.SETTINGS, done, total)

        for rule in rules:
            try:
                await self.api.create_automod_rule(self.guild_id, rule)
            except PerItemError as exc:
                self._record(f'AutoMod rule "{rule.name}"', exc)
            else:
                self.result.automod_rules_created += 1
            done += 1
            await self.progress.update(Phase.SETTINGS, done, total)

        if onboarding is not None:
            request = build_onboarding(self.guild_id, onboarding, self.role_map, self.channel_map)
            try:
                await self.api.modify_onboarding(self.guild_id, request)
            except PerItemError as exc:
                self._record("Onboarding", exc)
            else:
                self.result.onboarding_applied = True
            done += 1
            await self.progress.update(Phase.SETTINGS, done, total)


class Provisioner:
    """Entry point for setup, teardown, export and analysis runs.

    Holds the shared RunRegistry; everything else is created per run, so two
    runs against different guilds never share pacing state.
    """

    def __init__(
        self,
        registry: Optional[RunRegistry] = None,
        policy: Optional[RatePolicy] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        api_base_url: str = DEFAULT_API_BASE,
        progress_interval: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.registry = registry or RunRegistry()
        self.policy = policy or RatePolicy()
        self._transport_factory = transport_factory or (lambda token: HttpTransport(token, base_url=api_base_url))
        self.progress_interval = progress_interval
        self._sleep = sleep
        self._clock = clock

    def _open_api(self, credential: str) -> Tuple[Transport, GuildApi]:
        transport = self._transport_factory(credential)
        limiter = RateLimitedClient(self.policy, sleep=self._sleep, clock=self._clock)
        return transport, GuildApi(transport, limiter)

    def _throttle(self, progress: Optional[ProgressCallback]) -> ProgressThrottle:
        return ProgressThrottle(progress, self.progress_interval, clock=self._clock)

    def prepare(self, template: Union[ServerTemplate, Mapping[str, Any]], *, include_staff: bool = True) -> ServerTemplate:
        """Validate a template document and parse it. Raises TemplateValidationError."""
        document = template.to_dict() if isinstance(template, ServerTemplate) else template
        result = TemplateValidator(include_staff=include_staff).validate(document)
        for warning in result.warnings:
            log.warning("Template warning at %s: %s", warning.field, warning.message)
        if not result.ok:
            raise TemplateValidationError(result)
        return template if isinstance(template, ServerTemplate) else ServerTemplate.from_dict(document)

    async def run(
        self,
        guild_id: int,
        template: Union[ServerTemplate, Mapping[str, Any]],
        credential: str,
        progress: Optional[ProgressCallback] = None,
        *,
        include_staff: bool = True,
    ) -> SetupResult:
        parsed = self.prepare(template, include_staff=include_staff)

        async with self.registry.hold(guild_id):
            log.info("Starting setup of %r in guild %s (include_staff=%s)", parsed.id, guild_id, include_staff)
            transport, api = self._open_api(credential)
            try:
                pipeline = ProvisioningPipeline(
                    api, parsed, guild_id, self._throttle(progress),
                    include_staff=include_staff, clock=self._clock,
                )
                return await pipeline.run()
            finally:
                await transport.close()

    async def teardown(self, guild_id: int, credential: str, progress: Optional[ProgressCallback] = None) -> TeardownResult:
        async with self.registry.hold(guild_id):
            log.info("Starting teardown of guild %s", guild_id)
            transport, api = self._open_api(credential)
            try:
                pipeline = TeardownPipeline(api, guild_id, self._throttle(progress), clock=self._clock)
                return await pipeline.run()
            finally:
                await transport.close()

    async def export(self, guild_id: int, credential: str) -> ServerTemplate:
        transport, api = self._open_api(credential)
        try:
            return await export_guild(api, guild_id)
        finally:
            await transport.close()

    async def analyze(self, guild_id: int, credential: str) -> ServerAnalytics:
        """Read-only health report. Runs alongside setup or teardown without holding the guild."""
        transport, api = self._open_api(credential)
        try:
            return await analyze_guild(api, guild_id)
        finally:
            await transport.close()
