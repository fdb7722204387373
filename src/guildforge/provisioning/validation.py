from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping

from .permissions import resolve_permissions, unknown_permission_names, STAFF_POSITION
from .template import CHANNEL_KINDS

log = logging.getLogger("guildforge.validation")

REQUIRED_FIELDS = ("id", "name", "description", "categories", "roles")
KNOWN_FIELDS = frozenset(REQUIRED_FIELDS + ("settings", "automod", "onboarding"))
HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

SLOWMODE_RANGE = (0, 21600)
USER_LIMIT_RANGE = (0, 99)
BITRATE_RANGE = (8000, 384000)
MENTION_LIMIT_RANGE = (1, 50)

SETTINGS_RANGES = {
    "verification_level": (0, 4),
    "default_notifications": (0, 1),
    "explicit_content_filter": (0, 2),
}


@dataclass
class ValidationIssue:
    """Validation issue information."""
    field: str
    message: str
    severity: str  # "error" or "warning"


class ValidationResult:
    """Result of validation with errors and warnings."""

    def __init__(self) -> None:
        self.errors: List[ValidationIssue] = []
        self.warnings: List[ValidationIssue] = []

    def add_error(self, field: str, message: str) -> None:
        self.errors.append(ValidationIssue(field, message, "error"))

    def add_warning(self, field: str, message: str) -> None:
        self.warnings.append(ValidationIssue(field, message, "warning"))

    @property
    def ok(self) -> bool:
        return not self.errors

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def get_summary(self) -> str:
        if not self.errors and not self.warnings:
            return "✅ Validation passed with no issues"

        parts = []
        if self.errors:
            parts.append(f"❌ {len(self.errors)} errors")
        if self.warnings:
            parts.append(f"⚠️ {len(self.warnings)} warnings")
        return f"Validation complete: {', '.join(parts)}"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_name_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _check_flags(data: Mapping[str, Any], flags: tuple[str, ...], path: str, result: "ValidationResult") -> None:
    for flag in flags:
        value = data.get(flag)
        if value is not None and not isinstance(value, bool):
            result.add_error(f"{path}.{flag}", f"{flag} must be true or false, got {value!r}")


def _check_names(data: Mapping[str, Any], key: str, path: str, result: "ValidationResult") -> None:
    value = data.get(key)
    if value is not None and not _is_name_list(value):
        result.add_error(f"{path}.{key}", f"{key} must be a list of names")


def _is_staff_document(role: Mapping[str, Any]) -> bool:
    position = role.get("position")
    if _is_int(position) and position >= STAFF_POSITION:
        return True
    names = role.get("permissions") or []
    if not isinstance(names, list):
        return False
    permissions = resolve_permissions(str(n) for n in names)
    return permissions.administrator or permissions.manage_guild


class TemplateValidator:
    """Structural and range checks over a raw template document.

    Never talks to Discord. Errors block a run; warnings are reported and the
    run proceeds (out-of-range numeric values are clamped when requests are built).
    """

    def __init__(self, *, include_staff: bool = True) -> None:
        self.include_staff = include_staff

    def validate(self, document: Any) -> ValidationResult:
        result = ValidationResult()

        if not isinstance(document, Mapping):
            result.add_error("$", "Template must be a JSON object")
            return result

        for name in REQUIRED_FIELDS:
            if name not in document or document[name] is None or document[name] == "":
                result.add_error(name, f"Missing required field: {name}")

        for name in document:
            if name not in KNOWN_FIELDS:
                result.add_warning(name, f"Unknown top-level field is ignored: {name}")

        role_names = self._validate_roles(document.get("roles"), result)
        self._validate_categories(document.get("categories"), role_names, result)
        self._validate_settings(document.get("settings"), result)
        self._validate_automod(document.get("automod"), result)
        self._validate_onboarding(document.get("onboarding"), result)

        if self.include_staff and isinstance(document.get("categories"), list):
            wants_staff = any(
                isinstance(c, Mapping) and "staff" in str(c.get("name", "")).lower()
                for c in document["categories"]
            )
            roles = document.get("roles") if isinstance(document.get("roles"), list) else []
            if wants_staff and not any(isinstance(r, Mapping) and _is_staff_document(r) for r in roles):
                result.add_error(
                    "roles",
                    "Staff categories are included but no role qualifies as staff "
                    f"(position >= {STAFF_POSITION}, ADMINISTRATOR or MANAGE_GUILD)",
                )

        log.debug("Validated template %r: %s", document.get("id"), result.get_summary())
        return result

    def _validate_roles(self, roles: Any, result: ValidationResult) -> set[str]:
        names: set[str] = set()
        if roles is None:
            return names
        if not isinstance(roles, list):
            result.add_error("roles", "roles must be a list")
            return names
        if not roles:
            result.add_error("roles", "Template must declare at least one role")
            return names

        for i, role in enumerate(roles):
            path = f"roles[{i}]"
            if not isinstance(role, Mapping):
                result.add_error(path, "Role must be an object")
                continue

            name = role.get("name")
            if not name:
                result.add_error(f"{path}.name", "Role name is required")
            elif not isinstance(name, str):
                result.add_error(f"{path}.name", f"Role name must be text, got {name!r}")
            elif name in names:
                result.add_warning(f"{path}.name", f"Duplicate role name: {name} (later role wins in lookups)")
            else:
                names.add(name)

            color = role.get("color")
            if not color:
                result.add_error(f"{path}.color", f"Role {name!r} is missing a color")
            elif not isinstance(color, str) or not HEX_COLOR.match(color):
                result.add_error(f"{path}.color", f"Role {name!r} has an invalid color: {color}")

            if "position" in role and not _is_int(role["position"]):
                result.add_error(f"{path}.position", "position must be an integer")

            _check_flags(role, ("hoist", "mentionable"), path, result)

            permissions = role.get("permissions")
            if permissions is not None:
                if not isinstance(permissions, list):
                    result.add_error(f"{path}.permissions", "permissions must be a list of names")
                else:
                    unknown = unknown_permission_names(str(p) for p in permissions)
                    if unknown:
                        result.add_warning(f"{path}.permissions", f"Unknown permission names are ignored: {', '.join(unknown)}")
        return names

    def _validate_categories(self, categories: Any, role_names: set[str], result: ValidationResult) -> None:
        if categories is None:
            return
        if not isinstance(categories, list):
            result.add_error("categories", "categories must be a list")
            return
        if not categories:
            result.add_error("categories", "Template must declare at least one category")
            return

        for i, category in enumerate(categories):
            path = f"categories[{i}]"
            if not isinstance(category, Mapping):
                result.add_error(path, "Category must be an object")
                continue
            if not category.get("name"):
                result.add_error(f"{path}.name", "Category name is required")

            self._validate_rule(category.get("permissions"), f"{path}.permissions", role_names, result)

            channels = category.get("channels")
            if not isinstance(channels, list):
                result.add_error(f"{path}.channels", f"Category {category.get('name')!r} is missing a channels list")
                continue
            for j, channel in enumerate(channels):
                self._validate_channel(channel, f"{path}.channels[{j}]", role_names, result)

    def _validate_channel(self, channel: Any, path: str, role_names: set[str], result: ValidationResult) -> None:
        if not isinstance(channel, Mapping):
            result.add_error(path, "Channel must be an object")
            return

        name = channel.get("name")
        if not name:
            result.add_error(f"{path}.name", "Channel name is required")

        kind = channel.get("type")
        if not kind:
            result.add_error(f"{path}.type", f"Channel {name!r} is missing a type")
        elif kind not in CHANNEL_KINDS:
            result.add_error(f"{path}.type", f"Channel {name!r} has an invalid type: {kind}")

        self._check_range(channel, "slowmode", SLOWMODE_RANGE, path, result)
        self._check_range(channel, "user_limit", USER_LIMIT_RANGE, path, result)

        if channel.get("bitrate") is not None:
            if kind not in ("voice", "stage"):
                result.add_warning(f"{path}.bitrate", f"bitrate only applies to voice and stage channels; ignored on {name!r}")
            else:
                self._check_range(channel, "bitrate", BITRATE_RANGE, path, result)

        _check_names(channel, "tags", path, result)
        if channel.get("tags") and kind != "forum":
            result.add_warning(f"{path}.tags", f"tags only apply to forum channels; ignored on {name!r}")

        _check_flags(channel, ("nsfw",), path, result)
        self._validate_rule(channel.get("permissions"), f"{path}.permissions", role_names, result)

        embed = channel.get("embed")
        if embed is not None:
            if not isinstance(embed, Mapping):
                result.add_error(f"{path}.embed", "embed must be an object")
            else:
                self._validate_embed(embed, f"{path}.embed", name, result)

    def _validate_embed(self, embed: Mapping[str, Any], path: str, channel_name: Any, result: ValidationResult) -> None:
        title = embed.get("title")
        if not title:
            result.add_error(f"{path}.title", f"Embed on {channel_name!r} is missing a title")
        elif not isinstance(title, str):
            result.add_error(f"{path}.title", "Embed title must be text")

        color = embed.get("color")
        if color is not None and (not isinstance(color, str) or not HEX_COLOR.match(color)):
            result.add_warning(f"{path}.color", f"Invalid embed color {color!r}; the default color is used")

        embed_fields = embed.get("fields")
        if embed_fields is None:
            return
        if not isinstance(embed_fields, list):
            result.add_error(f"{path}.fields", "fields must be a list")
            return
        for k, embed_field in enumerate(embed_fields):
            if (
                not isinstance(embed_field, Mapping)
                or not isinstance(embed_field.get("name"), str)
                or not isinstance(embed_field.get("value"), str)
            ):
                result.add_error(f"{path}.fields[{k}]", "Embed field needs a text name and value")
            else:
                _check_flags(embed_field, ("inline",), f"{path}.fields[{k}]", result)

    def _validate_rule(self, rule: Any, path: str, role_names: set[str], result: ValidationResult) -> None:
        if rule is None:
            return
        if not isinstance(rule, Mapping):
            result.add_error(path, "permissions must be an object")
            return

        locked = rule.get("role_locked")
        if locked is not None and not isinstance(locked, str):
            result.add_error(f"{path}.role_locked", f"role_locked must be a single role name, got {locked!r}")
            locked = None

        _check_flags(rule, ("staff_only",), path, result)

        everyone = rule.get("everyone")
        if everyone is not None:
            if not isinstance(everyone, Mapping):
                result.add_error(f"{path}.everyone", "everyone must be an object")
            else:
                _check_flags(everyone, ("send_messages", "view_channel"), f"{path}.everyone", result)

        if locked and locked not in role_names:
            result.add_warning(
                f"{path}.role_locked",
                f"Role {locked!r} is not declared; the channel will only be visible to staff",
            )
        if locked and rule.get("staff_only") is True:
            result.add_warning(
                path,
                "staff_only and role_locked are both set; their overwrites are merged",
            )

    def _check_range(self, data: Mapping[str, Any], key: str, bounds: tuple[int, int], path: str, result: ValidationResult) -> None:
        value = data.get(key)
        if value is None:
            return
        low, high = bounds
        if not _is_int(value):
            result.add_warning(f"{path}.{key}", f"{key} should be an integer; ignored")
        elif not low <= value <= high:
            result.add_warning(f"{path}.{key}", f"{key} {value} out of range ({low}-{high}); it will be clamped")

    def _validate_settings(self, settings: Any, result: ValidationResult) -> None:
        if settings is None:
            return
        if not isinstance(settings, Mapping):
            result.add_error("settings", "settings must be an object")
            return
        for key, (low, high) in SETTINGS_RANGES.items():
            value = settings.get(key)
            if value is None:
                continue
            if not _is_int(value) or not low <= value <= high:
                result.add_warning(f"settings.{key}", f"{key} must be an integer in {low}-{high}; it will not be applied")

    def _validate_automod(self, automod: Any, result: ValidationResult) -> None:
        if automod is None:
            return
        if not isinstance(automod, Mapping):
            result.add_error("automod", "automod must be an object")
            return
        _check_names(automod, "keyword_filter", "automod", result)
        _check_flags(automod, ("spam_filter", "invite_filter", "link_filter"), "automod", result)
        alert = automod.get("alert_channel")
        if alert is not None and not isinstance(alert, str):
            result.add_error("automod.alert_channel", "alert_channel must be a channel name")
        limit = automod.get("mention_limit")
        if limit is not None:
            low, high = MENTION_LIMIT_RANGE
            if not _is_int(limit):
                result.add_error("automod.mention_limit", f"mention_limit must be a whole number, got {limit!r}")
            elif not low <= limit <= high:
                result.add_warning("automod.mention_limit", f"mention_limit should be in {low}-{high}; it will be clamped")

    def _validate_onboarding(self, onboarding: Any, result: ValidationResult) -> None:
        if onboarding is None:
            return
        if not isinstance(onboarding, Mapping):
            result.add_error("onboarding", "onboarding must be an object")
            return
        _check_flags(onboarding, ("enabled",), "onboarding", result)
        _check_names(onboarding, "default_channels", "onboarding", result)
        prompts = onboarding.get("prompts") or []
        if not isinstance(prompts, list):
            result.add_error("onboarding.prompts", "prompts must be a list")
            return
        for i, prompt in enumerate(prompts):
            path = f"onboarding.prompts[{i}]"
            if not isinstance(prompt, Mapping) or not prompt.get("title"):
                result.add_error(path, "Onboarding prompt needs a title")
                continue
            options = prompt.get("options")
            if not isinstance(options, list) or not options:
                result.add_error(f"{path}.options", "Onboarding prompt needs at least one option")
                continue
            _check_flags(prompt, ("single_select", "required"), path, result)
            for j, option in enumerate(options):
                option_path = f"{path}.options[{j}]"
                if not isinstance(option, Mapping) or not option.get("title"):
                    result.add_error(option_path, "Onboarding option needs a title")
                    continue
                _check_names(option, "roles", option_path, result)
                _check_names(option, "channels", option_path, result)


def validate_template(document: Any, *, include_staff: bool = True) -> ValidationResult:
    return TemplateValidator(include_staff=include_staff).validate(document)
