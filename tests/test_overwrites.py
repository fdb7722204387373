from __future__ import annotations

import discord

from guildforge.provisioning.overwrites import SEND, VIEW, VIEW_AND_SEND, OverwriteKind, build_overwrites
from guildforge.provisioning.template import EveryoneRule, PermissionRule, RoleSpec

EVERYONE = 1000
ROLES = (
    RoleSpec(name="Member", color="#000000", position=0),
    RoleSpec(name="Admin", color="#000000", position=12, permissions=("ADMINISTRATOR",)),
)
ROLE_MAP = {"Member": 1, "Admin": 2}


def by_target(entries):
    return {e.target_id: e for e in entries}


def test_no_rule_means_no_overwrites():
    assert build_overwrites(None, ROLE_MAP, ROLES, EVERYONE) == []
    assert build_overwrites(PermissionRule(), ROLE_MAP, ROLES, EVERYONE) == []


def test_read_only_denies_send_to_everyone():
    rule = PermissionRule(everyone=EveryoneRule(send_messages=False))
    entries = build_overwrites(rule, ROLE_MAP, ROLES, EVERYONE)
    assert len(entries) == 1
    assert entries[0].target_id == EVERYONE
    assert entries[0].deny == SEND
    assert entries[0].allow == discord.Permissions.none()


def test_hidden_denies_view_to_everyone():
    rule = PermissionRule(everyone=EveryoneRule(view_channel=False, send_messages=False))
    entries = build_overwrites(rule, ROLE_MAP, ROLES, EVERYONE)
    assert entries[0].deny == VIEW_AND_SEND


def test_staff_only():
    entries = build_overwrites(PermissionRule(staff_only=True), ROLE_MAP, ROLES, EVERYONE)
    targets = by_target(entries)
    assert targets[EVERYONE].deny == VIEW
    assert targets[2].allow == VIEW_AND_SEND
    assert 1 not in targets


def test_role_locked_to_staff_role_appears_once():
    entries = build_overwrites(PermissionRule(role_locked="Admin"), ROLE_MAP, ROLES, EVERYONE)
    assert [e.target_id for e in entries] == [EVERYONE, 2]
    assert entries[0].deny.view_channel
    assert entries[1].allow == VIEW
    assert entries[1].kind is OverwriteKind.ROLE


def test_role_locked_to_member_role_also_admits_staff():
    entries = build_overwrites(PermissionRule(role_locked="Member"), ROLE_MAP, ROLES, EVERYONE)
    targets = by_target(entries)
    assert targets[1].allow == VIEW
    assert targets[2].allow == VIEW


def test_role_locked_to_unknown_role_is_dropped():
    entries = build_overwrites(PermissionRule(role_locked="Ghost"), ROLE_MAP, ROLES, EVERYONE)
    assert [e.target_id for e in entries] == [EVERYONE, 2]


def test_staff_only_and_role_locked_merge():
    rule = PermissionRule(staff_only=True, role_locked="Member")
    entries = build_overwrites(rule, ROLE_MAP, ROLES, EVERYONE)
    targets = by_target(entries)
    assert len(entries) == 3
    assert targets[EVERYONE].deny == VIEW
    assert targets[2].allow == VIEW_AND_SEND
    assert targets[1].allow == VIEW


def test_staff_roles_missing_from_role_map_are_skipped():
    entries = build_overwrites(PermissionRule(staff_only=True), {"Member": 1}, ROLES, EVERYONE)
    assert [e.target_id for e in entries] == [EVERYONE]


def test_payload_shape():
    entries = build_overwrites(PermissionRule(role_locked="Admin"), ROLE_MAP, ROLES, EVERYONE)
    assert entries[0].to_payload() == {"id": "1000", "type": 0, "allow": "0", "deny": str(VIEW.value)}
    assert entries[1].to_payload()["allow"] == str(VIEW.value)


def test_rule_values_of_the_wrong_type_grant_nothing():
    rule = PermissionRule.from_dict({
        "staff_only": "false",
        "role_locked": ["Member"],
        "everyone": {"view_channel": "no", "send_messages": False},
    })
    assert rule.staff_only is False
    assert rule.role_locked is None
    assert rule.everyone == EveryoneRule(send_messages=False, view_channel=None)

    entries = build_overwrites(rule, ROLE_MAP, ROLES, EVERYONE)
    assert [(e.target_id, e.deny) for e in entries] == [(EVERYONE, SEND)]
