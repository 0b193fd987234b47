"""Routing predicates.

A router is a pure function ``router(history, capabilities) -> selection``
where ``capabilities`` maps each participating agent id to its capability
tags. The selection may be one agent id, an iterable of ids, or None.
The workflow engine requires exactly one id after de-duplication.
"""

import re
from typing import Any, Iterable, Mapping, Sequence

from ..types import ConversationTurn, RoutingPredicate, TurnRole


def latest_user_text(history: Sequence[ConversationTurn]) -> str:
    for turn in reversed(history):
        if turn.role == TurnRole.USER:
            return turn.text
    return ""


def normalize_selection(selection: Any) -> list[str]:
    """Turn a router's return value into an ordered list of unique ids."""
    if selection is None:
        return []
    if isinstance(selection, str):
        return [selection]
    selected: list[str] = []
    for agent_id in selection:
        if agent_id not in selected:
            selected.append(agent_id)
    return selected


def _mentions(text: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase.lower())}(?!\w)", text) is not None


def route_by_capability(tag: str | None = None) -> RoutingPredicate:
    """Select agents by capability tag.

    With ``tag``, select every agent carrying it. Without, select every
    agent with a tag mentioned in the latest user turn.
    """

    def router(history: Sequence[ConversationTurn], capabilities: Mapping[str, tuple[str, ...]]) -> list[str]:
        if tag is not None:
            return [agent_id for agent_id, tags in capabilities.items() if tag in tags]
        text = latest_user_text(history).lower()
        return [
            agent_id
            for agent_id, tags in capabilities.items()
            if any(_mentions(text, t) for t in tags)
        ]

    return router


def route_by_keywords(routes: Mapping[str, Iterable[str]], default: str | None = None) -> RoutingPredicate:
    """Select agents whose trigger keywords appear in the latest user turn.

    Args:
        routes: Agent id to trigger keywords. The agent id itself also
            counts as a trigger.
        default: Agent selected when nothing matches.
    """
    triggers = {agent_id: [agent_id, *keywords] for agent_id, keywords in routes.items()}

    def router(history: Sequence[ConversationTurn], capabilities: Mapping[str, tuple[str, ...]]) -> list[str]:
        text = latest_user_text(history).lower()
        matched = [
            agent_id
            for agent_id, words in triggers.items()
            if any(_mentions(text, w) for w in words)
        ]
        if not matched and default is not None:
            return [default]
        return matched

    return router
