from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

import discord

from .payloads import CreateAutoModRuleRequest
from .template import AutoModConfig

log = logging.getLogger("guildforge.automod")

# Every rule this tool creates carries this prefix; teardown matches on it
RULE_PREFIX = "GuildForge | "

MENTION_TIMEOUT_SECONDS = 300
MENTION_LIMIT_RANGE = (1, 50)

# AutoModPresets bit positions as the REST API numbers them
PRESET_PROFANITY = 1
PRESET_SLURS = 3

INVITE_PATTERNS = (r"discord\.gg\/\w+", r"discord\.com\/invite\/\w+")
LINK_PATTERNS = (r"https?:\/\/\S+",)

_KEYWORD = discord.AutoModRuleTriggerType.keyword.value
_SPAM = discord.AutoModRuleTriggerType.spam.value
_PRESET = discord.AutoModRuleTriggerType.keyword_preset.value
_MENTION_SPAM = discord.AutoModRuleTriggerType.mention_spam.value

_BLOCK = discord.AutoModRuleActionType.block_message.value
_ALERT = discord.AutoModRuleActionType.send_alert_message.value
_TIMEOUT = discord.AutoModRuleActionType.timeout.value

_MESSAGE_SEND = discord.AutoModRuleEventType.message_send.value


def is_managed_rule(name: str) -> bool:
    return name.startswith(RULE_PREFIX)


def _rule(label: str, trigger_type: int, actions: List[Dict], metadata: Optional[Dict] = None) -> CreateAutoModRuleRequest:
    return CreateAutoModRuleRequest(
        name=f"{RULE_PREFIX}{label}",
        event_type=_MESSAGE_SEND,
        trigger_type=trigger_type,
        actions=actions,
        trigger_metadata=metadata,
    )


def build_automod_rules(config: AutoModConfig, channel_map: Mapping[str, int]) -> List[CreateAutoModRuleRequest]:
    """Translate the template's automod block into rule requests, in creation order.

    The alert channel is looked up by name in channel_map; when it does not
    resolve, rules are created without the alert action.
    """
    alert_id = channel_map.get(config.alert_channel) if config.alert_channel else None
    if config.alert_channel and alert_id is None:
        log.warning("AutoMod alert channel %r was not created; alerts disabled", config.alert_channel)

    def actions(*extra: Dict) -> List[Dict]:
        result = [{"type": _BLOCK}, *extra]
        if alert_id is not None:
            result.append({"type": _ALERT, "metadata": {"channel_id": str(alert_id)}})
        return result

    rules: List[CreateAutoModRuleRequest] = []

    if config.spam_filter:
        rules.append(_rule("Anti-Spam", _SPAM, actions()))

    if config.keyword_filter:
        rules.append(_rule("Keyword Filter", _KEYWORD, actions(), {"keyword_filter": list(config.keyword_filter)}))

    if config.keyword_filter or config.spam_filter:
        rules.append(_rule("Content Filter", _PRESET, actions(), {"presets": [PRESET_PROFANITY, PRESET_SLURS]}))

    mention_limit = config.mention_limit
    if isinstance(mention_limit, int) and not isinstance(mention_limit, bool) and mention_limit > 0:
        low, high = MENTION_LIMIT_RANGE
        limit = min(max(mention_limit, low), high)
        rules.append(
            _rule(
                "Anti-Mention Spam",
                _MENTION_SPAM,
                actions({"type": _TIMEOUT, "metadata": {"duration_seconds": MENTION_TIMEOUT_SECONDS}}),
                {"mention_total_limit": limit},
            )
        )

    if config.invite_filter:
        rules.append(_rule("Anti-Invite Links", _KEYWORD, actions(), {"regex_patterns": list(INVITE_PATTERNS)}))

    if config.link_filter:
        rules.append(_rule("Link Filter", _KEYWORD, actions(), {"regex_patterns": list(LINK_PATTERNS)}))

    return rules
