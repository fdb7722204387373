from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .payloads import ModifyOnboardingRequest
from .template import OnboardingConfig

PROMPT_MULTIPLE_CHOICE = 0
MODE_DEFAULT = 0


def _resolve(names, mapping: Mapping[str, int]) -> List[str]:
    return [str(mapping[name]) for name in names if name in mapping]


def build_onboarding(
    guild_id: int,
    config: OnboardingConfig,
    role_map: Mapping[str, int],
    channel_map: Mapping[str, int],
) -> ModifyOnboardingRequest:
    """Build the onboarding PUT body. Role and channel names that were not created are dropped."""
    prompts: List[Dict[str, Any]] = []
    for p_index, prompt in enumerate(config.prompts):
        options = []
        for o_index, option in enumerate(prompt.options):
            body: Dict[str, Any] = {
                "id": f"{guild_id}_opt_{p_index}_{o_index}",
                "title": option.title,
                "role_ids": _resolve(option.roles, role_map),
                "channel_ids": _resolve(option.channels, channel_map),
            }
            if option.emoji:
                body["emoji"] = {"name": option.emoji}
            if option.description:
                body["description"] = option.description
            options.append(body)

        prompts.append({
            "id": f"{guild_id}_prompt_{p_index}",
            "type": PROMPT_MULTIPLE_CHOICE,
            "title": prompt.title,
            "single_select": prompt.single_select,
            "required": prompt.required,
            "in_onboarding": True,
            "options": options,
        })

    return ModifyOnboardingRequest(
        prompts=prompts,
        default_channel_ids=_resolve(config.default_channels, channel_map),
        enabled=True,
        mode=MODE_DEFAULT,
    )
