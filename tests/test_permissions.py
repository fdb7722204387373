from __future__ import annotations

import discord

from guildforge.provisioning.permissions import (
    effective_guild_permissions,
    is_staff,
    missing_setup_permissions,
    normalize_permission_name,
    permission_names,
    resolve_permissions,
    staff_roles,
)
from guildforge.provisioning.template import RoleSpec


def test_resolve_is_case_insensitive():
    assert resolve_permissions(["SEND_MESSAGES"]) == resolve_permissions(["send_messages"])
    assert resolve_permissions(["Send_Messages"]).send_messages


def test_resolve_ors_every_known_name():
    perms = resolve_permissions(["VIEW_CHANNEL", "SEND_MESSAGES", "KICK_MEMBERS"])
    assert perms.view_channel and perms.send_messages and perms.kick_members
    assert not perms.ban_members


def test_unknown_names_are_ignored():
    assert resolve_permissions(["NOT_A_THING"]) == discord.Permissions.none()
    assert resolve_permissions(["NOT_A_THING", "SPEAK"]) == discord.Permissions(speak=True)


def test_resolution_is_order_independent_and_idempotent():
    names = ["MANAGE_ROLES", "CONNECT", "MANAGE_ROLES"]
    assert resolve_permissions(names) == resolve_permissions(list(reversed(names)))
    assert resolve_permissions(names) == resolve_permissions(["MANAGE_ROLES", "CONNECT"])


def test_aliases():
    assert normalize_permission_name("MODERATE_MESSAGES") == "manage_messages"
    assert normalize_permission_name("read_messages") == "view_channel"
    assert normalize_permission_name("MANAGE_SERVER") == "manage_guild"
    assert normalize_permission_name("bogus") is None


def test_permission_names_round_trip():
    perms = resolve_permissions(["ADMINISTRATOR", "SPEAK"])
    assert permission_names(perms) == ["ADMINISTRATOR", "SPEAK"]


def test_staff_predicate():
    assert is_staff(RoleSpec(name="Senior", color="#000000", position=12))
    assert is_staff(RoleSpec(name="Admin", color="#000000", position=0, permissions=("ADMINISTRATOR",)))
    assert is_staff(RoleSpec(name="Manager", color="#000000", position=3, permissions=("MANAGE_GUILD",)))
    assert not is_staff(RoleSpec(name="Member", color="#000000", position=11, permissions=("KICK_MEMBERS",)))


def test_staff_roles_keeps_roster_order():
    roles = [
        RoleSpec(name="Admin", color="#000000", position=14),
        RoleSpec(name="Member", color="#000000", position=1),
        RoleSpec(name="Mod", color="#000000", position=12),
    ]
    assert [r.name for r in staff_roles(roles)] == ["Admin", "Mod"]


def test_effective_permissions_include_everyone_and_held_roles():
    guild_roles = [
        (1, discord.Permissions(view_channel=True).value),
        (2, discord.Permissions(manage_roles=True).value),
        (3, discord.Permissions(ban_members=True).value),
    ]
    perms = effective_guild_permissions([2], guild_roles, everyone_id=1)
    assert perms.view_channel and perms.manage_roles
    assert not perms.ban_members


def test_administrator_grants_everything():
    guild_roles = [(1, 0), (2, discord.Permissions(administrator=True).value)]
    assert effective_guild_permissions([2], guild_roles, everyone_id=1) == discord.Permissions.all()


def test_missing_setup_permissions():
    assert missing_setup_permissions(discord.Permissions(manage_roles=True)) == ["manage_channels", "manage_guild"]
    assert missing_setup_permissions(discord.Permissions(administrator=True)) == []
    full = discord.Permissions(manage_roles=True, manage_channels=True, manage_guild=True)
    assert missing_setup_permissions(full) == []
