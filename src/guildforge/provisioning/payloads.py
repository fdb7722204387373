"""
Typed request and response bodies for the REST routes the engine uses.

Requests are built from keyword arguments, so an unknown field is a
TypeError at the call site. Responses keep only the fields declared here;
everything else Discord sends back is dropped at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

T = TypeVar("T", bound="_Response")


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class _Request:
    def to_payload(self) -> Dict[str, Any]:
        return _compact({f.name: getattr(self, f.name) for f in fields(self)})


class _Response:
    @classmethod
    def from_payload(cls: Type[T], data: Mapping[str, Any]) -> T:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# Requests

@dataclass
class CreateRoleRequest(_Request):
    name: str
    color: int = 0
    hoist: bool = False
    mentionable: bool = False
    # Bitmask as a decimal string, as the API expects
    permissions: Optional[str] = None


@dataclass
class CreateChannelRequest(_Request):
    name: str
    type: int
    parent_id: Optional[str] = None
    position: Optional[int] = None
    topic: Optional[str] = None
    rate_limit_per_user: Optional[int] = None
    nsfw: Optional[bool] = None
    user_limit: Optional[int] = None
    bitrate: Optional[int] = None
    permission_overwrites: Optional[List[Dict[str, Any]]] = None
    available_tags: Optional[List[Dict[str, Any]]] = None


@dataclass
class CreateMessageRequest(_Request):
    content: Optional[str] = None
    embeds: Optional[List[Dict[str, Any]]] = None


@dataclass
class ModifyGuildRequest(_Request):
    verification_level: Optional[int] = None
    default_message_notifications: Optional[int] = None
    explicit_content_filter: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.to_payload()


@dataclass
class CreateAutoModRuleRequest(_Request):
    name: str
    event_type: int
    trigger_type: int
    actions: List[Dict[str, Any]]
    trigger_metadata: Optional[Dict[str, Any]] = None
    enabled: bool = True
    exempt_roles: Optional[List[str]] = None
    exempt_channels: Optional[List[str]] = None


@dataclass
class ModifyOnboardingRequest(_Request):
    prompts: List[Dict[str, Any]]
    default_channel_ids: List[str]
    enabled: bool = True
    mode: int = 0


# Responses

@dataclass
class UserResponse(_Response):
    id: str
    username: str = ""
    bot: bool = False


@dataclass
class GuildResponse(_Response):
    id: str
    name: str
    owner_id: str = ""
    description: Optional[str] = None
    verification_level: int = 0
    default_message_notifications: int = 0
    explicit_content_filter: int = 0
    premium_tier: int = 0
    premium_subscription_count: int = 0
    # Only present when fetched with counts
    approximate_member_count: int = 0
    approximate_presence_count: int = 0

@dataclass
class MemberResponse(_Response):
    roles: List[str]
    user: Optional[Dict[str, Any]] = None
    nick: Optional[str] = None


@dataclass
class RoleResponse(_Response):
    id: str
    name: str
    color: int = 0
    hoist: bool = False
    mentionable: bool = False
    position: int = 0
    permissions: str = "0"
    managed: bool = False


@dataclass
class OverwriteResponse(_Response):
    id: str
    type: int
    allow: str = "0"
    deny: str = "0"


@dataclass
class ChannelResponse(_Response):
    id: str
    name: str
    type: int
    parent_id: Optional[str] = None
    position: int = 0
    topic: Optional[str] = None
    nsfw: bool = False
    rate_limit_per_user: int = 0
    user_limit: int = 0
    bitrate: int = 0
    permission_overwrites: Optional[List[Dict[str, Any]]] = None
    available_tags: Optional[List[Dict[str, Any]]] = None

    @property
    def overwrites(self) -> List[OverwriteResponse]:
        return [OverwriteResponse.from_payload(o) for o in self.permission_overwrites or ()]


@dataclass
class MessageResponse(_Response):
    id: str
    channel_id: str


@dataclass
class AutoModRuleResponse(_Response):
    id: str
    name: str
    trigger_type: int = 0
    enabled: bool = True
