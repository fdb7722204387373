from __future__ import annotations

from guildforge.provisioning.validation import TemplateValidator, validate_template


def fields(issues):
    return [issue.field for issue in issues]


def test_minimal_document_is_valid(minimal_doc):
    result = validate_template(minimal_doc)
    assert result.ok
    assert not result.has_warnings()


def test_not_an_object():
    result = validate_template(["nope"])
    assert not result.ok
    assert fields(result.errors) == ["$"]


def test_missing_required_fields():
    result = validate_template({"id": "x"})
    assert not result.ok
    for name in ("name", "description", "categories", "roles"):
        assert name in fields(result.errors)


def test_zero_categories_and_zero_roles(minimal_doc):
    minimal_doc["categories"] = []
    minimal_doc["roles"] = []
    result = validate_template(minimal_doc)
    assert fields(result.errors).count("categories") == 1
    assert fields(result.errors).count("roles") == 1


def test_channel_kind_must_be_in_closed_set(minimal_doc):
    minimal_doc["categories"][0]["channels"].append({"name": "x", "type": "thread"})
    result = validate_template(minimal_doc)
    assert "categories[0].channels[1].type" in fields(result.errors)


def test_channel_without_name_or_kind(minimal_doc):
    minimal_doc["categories"][0]["channels"].append({})
    result = validate_template(minimal_doc)
    assert "categories[0].channels[1].name" in fields(result.errors)
    assert "categories[0].channels[1].type" in fields(result.errors)


def test_category_without_channel_list(minimal_doc):
    minimal_doc["categories"].append({"name": "Empty"})
    result = validate_template(minimal_doc)
    assert "categories[1].channels" in fields(result.errors)


def test_role_color_and_position(minimal_doc):
    minimal_doc["roles"] += [
        {"name": "NoColor", "position": 1},
        {"name": "BadColor", "color": "red", "position": 2},
        {"name": "BadPos", "color": "#FFFFFF", "position": "high"},
    ]
    result = validate_template(minimal_doc)
    errors = fields(result.errors)
    assert "roles[1].color" in errors
    assert "roles[2].color" in errors
    assert "roles[3].position" in errors


def test_staff_category_needs_staff_role(minimal_doc):
    minimal_doc["categories"].append({"name": "Staff Room", "channels": [{"name": "mods", "type": "text"}]})
    result = validate_template(minimal_doc)
    assert not result.ok
    assert "roles" in fields(result.errors)

    assert TemplateValidator(include_staff=False).validate(minimal_doc).ok

    minimal_doc["roles"].append({"name": "Admin", "color": "#FF0000", "position": 2, "permissions": ["ADMINISTRATOR"]})
    assert validate_template(minimal_doc).ok


def test_out_of_range_numbers_warn_but_do_not_block(minimal_doc):
    minimal_doc["categories"][0]["channels"] += [
        {"name": "slow", "type": "text", "slowmode": 30000},
        {"name": "negative", "type": "text", "slowmode": -1},
        {"name": "crowd", "type": "voice", "user_limit": 150},
    ]
    result = validate_template(minimal_doc)
    assert result.ok
    assert fields(result.warnings) == [
        "categories[0].channels[1].slowmode",
        "categories[0].channels[2].slowmode",
        "categories[0].channels[3].user_limit",
    ]


def test_bitrate_and_tags_on_wrong_kinds_warn(minimal_doc):
    minimal_doc["categories"][0]["channels"] += [
        {"name": "chat", "type": "text", "bitrate": 64000, "tags": ["a"]},
        {"name": "loud", "type": "voice", "bitrate": 1_000_000},
    ]
    result = validate_template(minimal_doc)
    assert result.ok
    warned = fields(result.warnings)
    assert "categories[0].channels[1].bitrate" in warned
    assert "categories[0].channels[1].tags" in warned
    assert "categories[0].channels[2].bitrate" in warned


def test_roster_warnings(minimal_doc):
    minimal_doc["roles"] += [
        {"name": "Member", "color": "#000000", "position": 1},
        {"name": "Helper", "color": "#000000", "position": 2, "permissions": ["HELP_PEOPLE"]},
    ]
    result = validate_template(minimal_doc)
    assert result.ok
    assert "roles[1].name" in fields(result.warnings)
    assert "roles[2].permissions" in fields(result.warnings)


def test_permission_rule_warnings(minimal_doc):
    minimal_doc["categories"][0]["channels"] += [
        {"name": "ghost", "type": "text", "permissions": {"role_locked": "Ghost"}},
        {"name": "both", "type": "text", "permissions": {"role_locked": "Member", "staff_only": True}},
    ]
    result = validate_template(minimal_doc)
    assert result.ok
    assert "categories[0].channels[1].permissions.role_locked" in fields(result.warnings)
    assert "categories[0].channels[2].permissions" in fields(result.warnings)


def test_embed_checks(minimal_doc):
    channels = minimal_doc["categories"][0]["channels"]
    channels[0]["embed"]["color"] = "blue"
    channels.append({"name": "notitle", "type": "text", "embed": {"description": "no title"}})
    result = validate_template(minimal_doc)
    assert "categories[0].channels[0].embed.color" in fields(result.warnings)
    assert "categories[0].channels[1].embed.title" in fields(result.errors)


def test_settings_out_of_enum_warn(minimal_doc):
    minimal_doc["settings"] = {"verification_level": 9, "explicit_content_filter": 1}
    result = validate_template(minimal_doc)
    assert result.ok
    assert fields(result.warnings) == ["settings.verification_level"]


def test_onboarding_prompt_needs_options(minimal_doc):
    minimal_doc["onboarding"] = {"enabled": True, "prompts": [{"title": "Pick"}]}
    result = validate_template(minimal_doc)
    assert "onboarding.prompts[0].options" in fields(result.errors)


def test_summary():
    result = validate_template({})
    assert "errors" in result.get_summary()


def test_role_locked_must_be_a_single_name(minimal_doc):
    minimal_doc["categories"][0]["channels"].append(
        {"name": "vip", "type": "text", "permissions": {"role_locked": ["Member", "VIP"]}},
    )
    result = validate_template(minimal_doc)
    assert not result.ok
    assert fields(result.errors) == ["categories[0].channels[1].permissions.role_locked"]


def test_rule_flags_must_be_booleans(minimal_doc):
    minimal_doc["categories"][0]["permissions"] = {"everyone": {"view_channel": "no"}}
    minimal_doc["categories"][0]["channels"] += [
        {"name": "open", "type": "text", "permissions": {"staff_only": "false"}},
        {"name": "broken", "type": "text", "permissions": {"everyone": True}},
        {"name": "listed", "type": "text", "permissions": ["staff_only"]},
    ]
    result = validate_template(minimal_doc)
    assert fields(result.errors) == [
        "categories[0].permissions.everyone.view_channel",
        "categories[0].channels[1].permissions.staff_only",
        "categories[0].channels[2].permissions.everyone",
        "categories[0].channels[3].permissions",
    ]


def test_embed_fields_must_be_objects_with_text(minimal_doc):
    channels = minimal_doc["categories"][0]["channels"]
    channels[0]["embed"]["fields"] = ["oops", {"name": "Rules", "value": 3}, {"name": "Ok", "value": "fine", "inline": "yes"}]
    channels.append({"name": "notes", "type": "text", "embed": {"title": "Notes", "fields": {"name": "a", "value": "b"}}})
    result = validate_template(minimal_doc)
    assert fields(result.errors) == [
        "categories[0].channels[0].embed.fields[0]",
        "categories[0].channels[0].embed.fields[1]",
        "categories[0].channels[0].embed.fields[2].inline",
        "categories[0].channels[1].embed.fields",
    ]


def test_name_lists_must_be_lists(minimal_doc):
    minimal_doc["categories"][0]["channels"].append({"name": "help", "type": "forum", "tags": "Bug"})
    minimal_doc["onboarding"] = {
        "enabled": True,
        "default_channels": "welcome",
        "prompts": [{"title": "Pick", "options": [{"title": "Member", "roles": "Member", "channels": "welcome"}]}],
    }
    result = validate_template(minimal_doc)
    assert fields(result.errors) == [
        "categories[0].channels[1].tags",
        "onboarding.default_channels",
        "onboarding.prompts[0].options[0].roles",
        "onboarding.prompts[0].options[0].channels",
    ]


def test_mention_limit_must_be_a_whole_number(minimal_doc):
    minimal_doc["automod"] = {"mention_limit": "5", "spam_filter": "yes"}
    result = validate_template(minimal_doc)
    assert fields(result.errors) == ["automod.spam_filter", "automod.mention_limit"]


def test_role_name_must_be_text(minimal_doc):
    minimal_doc["roles"].append({"name": ["VIP"], "color": "#000000"})
    result = validate_template(minimal_doc)
    assert fields(result.errors) == ["roles[1].name"]
