"""Keyword routing for incoming chat messages.

Routing is an ordered rule table so it can be audited and tested in isolation.
The first rule whose phrase occurs in the lower-cased message wins; when none
match the message goes to plain chat.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Pattern, Sequence, Tuple

from models.conversation_models import Route, RoutingDecision


@dataclass(frozen=True)
class RoutingRule:
    phrase: str
    route: Route
    lifestyle: bool = False

    def matches(self, lowered_message: str) -> bool:
        return self.phrase in lowered_message


def _rules(route: Route, phrases: Sequence[str], *, lifestyle: bool = False) -> Tuple[RoutingRule, ...]:
    return tuple(RoutingRule(phrase, route, lifestyle) for phrase in phrases)


LIFESTYLE_PHRASES: Tuple[str, ...] = (
    "woman holding",
    "person holding",
    "lifestyle",
    "product shot",
    "product image",
    "with a woman",
    "with someone",
    "holding it",
    "holding the",
    "person using",
    "need one with",
    "make one with",
    "create one with",
    "generate one with",
)

# Lifestyle phrases must precede the generic triggers they contain.
ROUTING_RULES: Tuple[RoutingRule, ...] = _rules(Route.IMAGE_GENERATE, LIFESTYLE_PHRASES, lifestyle=True) + _rules(
    Route.IMAGE_GENERATE,
    (
        "generate",
        "create",
        "draw",
        "image",
        "picture",
        "photo",
        "illustration",
        "artwork",
        "design",
        "visual",
        "sketch",
        "show me",
    ),
)

IMAGE_PROMPT_PATTERNS: Tuple[Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"generate (?:an? )?image (?:of )?(.+)",
        r"create (?:an? )?(?:image|picture) (?:of )?(.+)",
        r"draw (?:an? )?(.+)",
        r"show me (?:an? )?(?:image|picture) (?:of )?(.+)",
        r"make (?:an? )?(?:image|picture) (?:of )?(.+)",
        r"need one with (.+)",
        r"make one with (.+)",
        r"create one with (.+)",
        r"generate one with (.+)",
        r"with a (.+)",
        r"with (.+)",
    )
)


def match_rule(message: str, rules: Sequence[RoutingRule] = ROUTING_RULES) -> Optional[RoutingRule]:
    """Return the first rule matching `message`, or None."""
    lowered = message.lower()
    for rule in rules:
        if rule.matches(lowered):
            return rule
    return None


def extract_image_prompt(message: str) -> str:
    """Pull the subject of an image request out of the message text."""
    for pattern in IMAGE_PROMPT_PATTERNS:
        found = pattern.search(message)
        if found and found.group(1).strip():
            return found.group(1).strip()
    return message.strip()


def _has_options(options: Optional[Mapping[str, Any]]) -> bool:
    return bool(options) and any(value not in (None, "", [], {}) for value in options.values())


def classify_message(
    message: str,
    *,
    web_search_options: Optional[Mapping[str, Any]] = None,
    file_search_options: Optional[Mapping[str, Any]] = None,
    rules: Sequence[RoutingRule] = ROUTING_RULES,
) -> RoutingDecision:
    """Decide which capability handles `message`.

    Image triggers take precedence over search options; search options only
    refine the chat route.
    """
    rule = match_rule(message, rules)
    if rule is not None and rule.route is Route.IMAGE_GENERATE:
        return RoutingDecision(
            route=Route.IMAGE_GENERATE,
            matched_rule=rule.phrase,
            image_prompt=extract_image_prompt(message),
            lifestyle=rule.lifestyle,
        )
    if _has_options(file_search_options):
        return RoutingDecision(route=Route.FILE_SEARCH)
    if _has_options(web_search_options):
        return RoutingDecision(route=Route.WEB_SEARCH)
    return RoutingDecision(route=Route.CHAT)


def search_flags(
    web_search_options: Optional[Mapping[str, Any]], file_search_options: Optional[Mapping[str, Any]]
) -> Tuple[bool, bool]:
    """Return `(web_search_enabled, file_search_enabled)` for a request."""
    return _has_options(web_search_options), _has_options(file_search_options)
