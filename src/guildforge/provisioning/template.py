"""
Server Template Model

Typed, immutable view of a server template document. Documents are plain
JSON objects; validation happens on the raw mapping (see validation.py)
before it is parsed into these dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import discord


class ChannelKind(Enum):
    """Channel kinds a template may declare."""
    TEXT = "text"
    VOICE = "voice"
    STAGE = "stage"
    FORUM = "forum"
    ANNOUNCEMENT = "announcement"

    @property
    def channel_type(self) -> discord.ChannelType:
        return _CHANNEL_TYPES[self]

    @property
    def is_voice(self) -> bool:
        return self in (ChannelKind.VOICE, ChannelKind.STAGE)

    @classmethod
    def from_channel_type(cls, value: int) -> Optional["ChannelKind"]:
        for kind, channel_type in _CHANNEL_TYPES.items():
            if channel_type.value == value:
                return kind
        return None


_CHANNEL_TYPES = {
    ChannelKind.TEXT: discord.ChannelType.text,
    ChannelKind.VOICE: discord.ChannelType.voice,
    ChannelKind.STAGE: discord.ChannelType.stage_voice,
    ChannelKind.FORUM: discord.ChannelType.forum,
    ChannelKind.ANNOUNCEMENT: discord.ChannelType.news,
}

CHANNEL_KINDS = tuple(kind.value for kind in ChannelKind)


def _flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _names(value: Any) -> Tuple[str, ...]:
    """A list of names as a tuple. Anything that is not a list yields no names."""
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class EveryoneRule:
    send_messages: Optional[bool] = None
    view_channel: Optional[bool] = None


@dataclass(frozen=True)
class PermissionRule:
    """Symbolic access rule. Resolved per run by overwrites.build_overwrites."""
    everyone: Optional[EveryoneRule] = None
    staff_only: bool = False
    role_locked: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PermissionRule":
        everyone = data.get("everyone")
        locked = data.get("role_locked")
        return cls(
            everyone=EveryoneRule(
                send_messages=_flag(everyone.get("send_messages")),
                view_channel=_flag(everyone.get("view_channel")),
            ) if isinstance(everyone, Mapping) else None,
            staff_only=data.get("staff_only") is True,
            role_locked=locked if isinstance(locked, str) and locked else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.everyone is not None:
            everyone = {}
            if self.everyone.send_messages is not None:
                everyone["send_messages"] = self.everyone.send_messages
            if self.everyone.view_channel is not None:
                everyone["view_channel"] = self.everyone.view_channel
            if everyone:
                data["everyone"] = everyone
        if self.staff_only:
            data["staff_only"] = True
        if self.role_locked:
            data["role_locked"] = self.role_locked
        return data


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class EmbedSpec:
    title: str
    description: Optional[str] = None
    color: Optional[str] = None
    fields: Tuple[EmbedField, ...] = ()
    footer: Optional[str] = None
    thumbnail: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmbedSpec":
        return cls(
            title=str(data.get("title", "")),
            description=data.get("description"),
            color=data.get("color"),
            fields=tuple(
                EmbedField(name=str(f.get("name", "")), value=str(f.get("value", "")), inline=bool(f.get("inline", False)))
                for f in data.get("fields") or ()
                if isinstance(f, Mapping)
            ),
            footer=data.get("footer"),
            thumbnail=data.get("thumbnail"),
            image=data.get("image"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title}
        for key in ("description", "color", "footer", "thumbnail", "image"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.fields:
            data["fields"] = [{"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields]
        return data


@dataclass(frozen=True)
class ChannelSpec:
    name: str
    kind: ChannelKind
    topic: Optional[str] = None
    slowmode: Optional[int] = None
    nsfw: bool = False
    user_limit: Optional[int] = None
    bitrate: Optional[int] = None
    permissions: Optional[PermissionRule] = None
    embed: Optional[EmbedSpec] = None
    tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChannelSpec":
        permissions = data.get("permissions")
        embed = data.get("embed")
        return cls(
            name=str(data["name"]),
            kind=ChannelKind(data["type"]),
            topic=data.get("topic"),
            slowmode=data.get("slowmode"),
            nsfw=bool(data.get("nsfw", False)),
            user_limit=data.get("user_limit"),
            bitrate=data.get("bitrate"),
            permissions=PermissionRule.from_dict(permissions) if isinstance(permissions, Mapping) else None,
            embed=EmbedSpec.from_dict(embed) if isinstance(embed, Mapping) else None,
            tags=_names(data.get("tags")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "type": self.kind.value}
        for key in ("topic", "slowmode", "user_limit", "bitrate"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.nsfw:
            data["nsfw"] = True
        if self.permissions is not None:
            rule = self.permissions.to_dict()
            if rule:
                data["permissions"] = rule
        if self.embed is not None:
            data["embed"] = self.embed.to_dict()
        if self.tags:
            data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class CategorySpec:
    name: str
    channels: Tuple[ChannelSpec, ...]
    permissions: Optional[PermissionRule] = None

    @property
    def is_staff_category(self) -> bool:
        return "staff" in self.name.lower()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CategorySpec":
        permissions = data.get("permissions")
        return cls(
            name=str(data["name"]),
            channels=tuple(ChannelSpec.from_dict(c) for c in data.get("channels") or ()),
            permissions=PermissionRule.from_dict(permissions) if isinstance(permissions, Mapping) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "channels": [c.to_dict() for c in self.channels]}
        if self.permissions is not None and self.permissions.to_dict():
            data["permissions"] = self.permissions.to_dict()
        return data


@dataclass(frozen=True)
class RoleSpec:
    name: str
    color: str
    hoist: bool = False
    mentionable: bool = False
    position: int = 0
    permissions: Tuple[str, ...] = ()

    @property
    def color_value(self) -> int:
        return discord.Colour.from_str(self.color).value

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoleSpec":
        return cls(
            name=str(data["name"]),
            color=str(data["color"]),
            hoist=bool(data.get("hoist", False)),
            mentionable=bool(data.get("mentionable", False)),
            position=int(data.get("position", 0)),
            permissions=tuple(str(p) for p in data.get("permissions") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "color": self.color,
            "hoist": self.hoist,
            "mentionable": self.mentionable,
            "position": self.position,
        }
        if self.permissions:
            data["permissions"] = list(self.permissions)
        return data


@dataclass(frozen=True)
class GuildSettings:
    verification_level: Optional[int] = None
    default_notifications: Optional[int] = None
    explicit_content_filter: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GuildSettings":
        return cls(
            verification_level=data.get("verification_level"),
            default_notifications=data.get("default_notifications"),
            explicit_content_filter=data.get("explicit_content_filter"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: getattr(self, key)
            for key in ("verification_level", "default_notifications", "explicit_content_filter")
            if getattr(self, key) is not None
        }

    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass(frozen=True)
class AutoModConfig:
    spam_filter: bool = False
    keyword_filter: Tuple[str, ...] = ()
    mention_limit: Optional[int] = None
    invite_filter: bool = False
    link_filter: bool = False
    # Channel name that receives alert messages
    alert_channel: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AutoModConfig":
        return cls(
            spam_filter=bool(data.get("spam_filter", False)),
            keyword_filter=_names(data.get("keyword_filter")),
            mention_limit=data.get("mention_limit"),
            invite_filter=bool(data.get("invite_filter", False)),
            link_filter=bool(data.get("link_filter", False)),
            alert_channel=data.get("alert_channel"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.spam_filter:
            data["spam_filter"] = True
        if self.keyword_filter:
            data["keyword_filter"] = list(self.keyword_filter)
        if self.mention_limit is not None:
            data["mention_limit"] = self.mention_limit
        if self.invite_filter:
            data["invite_filter"] = True
        if self.link_filter:
            data["link_filter"] = True
        if self.alert_channel:
            data["alert_channel"] = self.alert_channel
        return data


@dataclass(frozen=True)
class OnboardingOption:
    title: str
    emoji: Optional[str] = None
    description: Optional[str] = None
    roles: Tuple[str, ...] = ()
    channels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OnboardingPrompt:
    title: str
    options: Tuple[OnboardingOption, ...]
    single_select: bool = False
    required: bool = True


@dataclass(frozen=True)
class OnboardingConfig:
    enabled: bool = False
    prompts: Tuple[OnboardingPrompt, ...] = ()
    default_channels: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OnboardingConfig":
        return cls(
            enabled=bool(data.get("enabled", False)),
            prompts=tuple(
                OnboardingPrompt(
                    title=str(p.get("title", "")),
                    options=tuple(
                        OnboardingOption(
                            title=str(o.get("title", "")),
                            emoji=o.get("emoji"),
                            description=o.get("description"),
                            roles=_names(o.get("roles")),
                            channels=_names(o.get("channels")),
                        )
                        for o in p.get("options") or ()
                    ),
                    single_select=bool(p.get("single_select", False)),
                    required=bool(p.get("required", True)),
                )
                for p in data.get("prompts") or ()
            ),
            default_channels=_names(data.get("default_channels")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "prompts": [
                {
                    "title": p.title,
                    "single_select": p.single_select,
                    "required": p.required,
                    "options": [
                        {
                            k: v for k, v in (
                                ("title", o.title),
                                ("emoji", o.emoji),
                                ("description", o.description),
                                ("roles", list(o.roles)),
                                ("channels", list(o.channels)),
                            ) if v is not None
                        }
                        for o in p.options
                    ],
                }
                for p in self.prompts
            ],
            "default_channels": list(self.default_channels),
        }


@dataclass(frozen=True)
class ServerTemplate:
    id: str
    name: str
    description: str
    categories: Tuple[CategorySpec, ...]
    roles: Tuple[RoleSpec, ...]
    settings: Optional[GuildSettings] = None
    automod: Optional[AutoModConfig] = None
    onboarding: Optional[OnboardingConfig] = None

    @property
    def channel_count(self) -> int:
        return sum(len(c.channels) for c in self.categories)

    def iter_channels(self):
        for category in self.categories:
            for channel in category.channels:
                yield category, channel

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServerTemplate":
        """Parse an already-validated document."""
        settings = data.get("settings")
        automod = data.get("automod")
        onboarding = data.get("onboarding")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description", "")),
            categories=tuple(CategorySpec.from_dict(c) for c in data["categories"]),
            roles=tuple(RoleSpec.from_dict(r) for r in data["roles"]),
            settings=GuildSettings.from_dict(settings) if isinstance(settings, Mapping) else None,
            automod=AutoModConfig.from_dict(automod) if isinstance(automod, Mapping) else None,
            onboarding=OnboardingConfig.from_dict(onboarding) if isinstance(onboarding, Mapping) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "categories": [c.to_dict() for c in self.categories],
            "roles": [r.to_dict() for r in self.roles],
        }
        if self.settings is not None and not self.settings.is_empty():
            data["settings"] = self.settings.to_dict()
        if self.automod is not None:
            data["automod"] = self.automod.to_dict()
        if self.onboarding is not None:
            data["onboarding"] = self.onboarding.to_dict()
        return data


def summarize(template: ServerTemplate) -> Dict[str, int]:
    return {
        "categories": len(template.categories),
        "channels": template.channel_count,
        "roles": len(template.roles),
    }
