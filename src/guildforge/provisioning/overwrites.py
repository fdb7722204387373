from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Mapping, Optional, Sequence

import discord

from .permissions import staff_roles
from .template import PermissionRule, RoleSpec

VIEW = discord.Permissions(view_channel=True)
SEND = discord.Permissions(send_messages=True)
VIEW_AND_SEND = VIEW | SEND


class OverwriteKind(IntEnum):
    ROLE = 0
    MEMBER = 1


@dataclass
class OverwriteEntry:
    """One concrete allow/deny pair for a channel, keyed by role (or member) id."""
    target_id: int
    kind: OverwriteKind = OverwriteKind.ROLE
    allow: discord.Permissions = field(default_factory=discord.Permissions.none)
    deny: discord.Permissions = field(default_factory=discord.Permissions.none)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": str(self.target_id),
            "type": int(self.kind),
            "allow": str(self.allow.value),
            "deny": str(self.deny.value),
        }


class _OverwriteSet:
    """Collects entries, merging repeats for the same target. First appearance fixes order."""

    def __init__(self) -> None:
        self._entries: Dict[int, OverwriteEntry] = {}

    def deny(self, target_id: int, permissions: discord.Permissions) -> None:
        entry = self._entries.setdefault(target_id, OverwriteEntry(target_id))
        entry.deny = entry.deny | permissions

    def allow(self, target_id: int, permissions: discord.Permissions) -> None:
        entry = self._entries.setdefault(target_id, OverwriteEntry(target_id))
        entry.allow = entry.allow | permissions

    def entries(self) -> List[OverwriteEntry]:
        return list(self._entries.values())


def build_overwrites(
    rule: Optional[PermissionRule],
    role_map: Mapping[str, int],
    roles: Sequence[RoleSpec],
    everyone_id: int,
) -> List[OverwriteEntry]:
    """Resolve a symbolic rule into concrete overwrites.

    Each clause is applied independently. Role names missing from role_map
    produce no entry. Clauses that touch the same target are merged into a
    single entry with the union of their bits.
    """
    if rule is None:
        return []

    result = _OverwriteSet()
    staff_ids = [role_map[r.name] for r in staff_roles(roles) if r.name in role_map]

    if rule.everyone is not None:
        if rule.everyone.send_messages is False:
            result.deny(everyone_id, SEND)
        if rule.everyone.view_channel is False:
            result.deny(everyone_id, VIEW)

    if rule.staff_only:
        result.deny(everyone_id, VIEW)
        for role_id in staff_ids:
            result.allow(role_id, VIEW_AND_SEND)

    if rule.role_locked:
        result.deny(everyone_id, VIEW)
        locked_id = role_map.get(rule.role_locked)
        if locked_id is not None:
            result.allow(locked_id, VIEW)
        for role_id in staff_ids:
            result.allow(role_id, VIEW)

    return result.entries()
