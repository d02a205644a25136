"""Message intent routing.

Inbound message events are matched against an ordered list of rules; the
first rule whose predicate accepts the message decides the intent. Exactly
one handler runs per message, and unmatched messages are dropped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)

Intent = Literal["veto", "pics", "spot"]

# Subtypes that carry a real user message. Everything else (edits, deletes,
# joins, bot posts) never reaches a handler.
ROUTABLE_SUBTYPES = frozenset({None, "file_share", "thread_broadcast"})

VETO_RE = re.compile(r"^veto$", re.IGNORECASE)
PICS_RE = re.compile(r"pics", re.IGNORECASE)
SPOT_RE = re.compile(r"spot|spotted|<@[A-Z0-9]+(?:\|[^>]*)?>", re.IGNORECASE)


@dataclass(frozen=True)
class Rule:
    """A named predicate over a message event."""

    intent: Intent
    predicate: Callable[[dict[str, Any]], bool]


def _text(message: dict[str, Any]) -> str:
    return message.get("text") or ""


def is_veto(message: dict[str, Any]) -> bool:
    return bool(VETO_RE.match(_text(message).strip()))


def is_pics(message: dict[str, Any]) -> bool:
    return bool(PICS_RE.search(_text(message)))


def is_spot(message: dict[str, Any]) -> bool:
    return bool(SPOT_RE.search(_text(message)))


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule("veto", is_veto),
    Rule("pics", is_pics),
    Rule("spot", is_spot),
)


def is_routable(message: dict[str, Any]) -> bool:
    """True for plain user messages; False for bots, edits and system events."""
    if message.get("subtype") not in ROUTABLE_SUBTYPES:
        return False
    if message.get("bot_id"):
        return False
    return bool(message.get("user"))


class MessageRouter:
    """Evaluates rules in order and returns the first matching intent."""

    def __init__(self, rules: tuple[Rule, ...] = DEFAULT_RULES) -> None:
        self.rules = rules

    def route(self, message: dict[str, Any]) -> Intent | None:
        if not is_routable(message):
            return None
        for rule in self.rules:
            if rule.predicate(message):
                return rule.intent
        logger.debug("message_unrouted channel=%s", message.get("channel"))
        return None
