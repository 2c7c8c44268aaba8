"""
Find the leaderboard entry list inside an arbitrary JSON payload.

Upstream sources wrap their entries differently (a bare list, {"data": [...]},
{"data": {"leaderboard": [...]}}, {"raw_response": {"affiliates": [...]}}),
so lookup goes:

1. a bare list that looks like leaderboard entries
2. a well-known property name holding a list
3. a bounded-depth search through nested values
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Set

from .extractors import RANK_KEYS

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 6

ENTRY_ARRAY_KEYS: Sequence[str] = (
    "leaderboard",
    "rows",
    "data",
    "items",
    "result",
    "list",
    "entries",
    "top",
    "users",
    "results",
    "leaders",
    "players",
    "affiliates",
    "standings",
)

# Containers that hold prize tiers rather than participants.
PRIZE_CONTAINER_KEYS = frozenset({"prizes", "prize_tiers", "prizeTiers", "rewards"})

_IDENTITY_KEYS: Sequence[str] = ("username", "userName", "user", "player", "name")


def _mostly_mappings(items: List[Any]) -> bool:
    if not items:
        return False
    mappings = sum(1 for item in items if isinstance(item, Mapping))
    return mappings * 2 > len(items)


def is_plausible_entry_list(items: Any) -> bool:
    """
    A majority of elements are objects and at least one of them carries a
    rank-like or username-like key.
    """
    if not isinstance(items, list) or not _mostly_mappings(items):
        return False
    marker_keys = tuple(RANK_KEYS) + tuple(_IDENTITY_KEYS)
    return any(
        isinstance(item, Mapping) and any(key in item for key in marker_keys)
        for item in items
    )


def _accept_named_list(items: List[Any]) -> bool:
    # An empty list under a known key means zero participants this cycle.
    return not items or _mostly_mappings(items)


def _search(node: Any, depth: int, max_depth: int, seen: Set[int]) -> Optional[List[Any]]:
    if id(node) in seen:
        return None

    if isinstance(node, list):
        seen.add(id(node))
        if is_plausible_entry_list(node):
            return node
        if depth >= max_depth:
            return None
        for item in node:
            if isinstance(item, (Mapping, list)):
                found = _search(item, depth + 1, max_depth, seen)
                if found is not None:
                    return found
        return None

    if not isinstance(node, Mapping):
        return None

    seen.add(id(node))

    for key in ENTRY_ARRAY_KEYS:
        value = node.get(key)
        if isinstance(value, list) and _accept_named_list(value):
            return value

    if depth >= max_depth:
        return None

    named = [key for key in ENTRY_ARRAY_KEYS if key in node]
    others = [key for key in node if key not in ENTRY_ARRAY_KEYS]
    for key in named + others:
        if key in PRIZE_CONTAINER_KEYS:
            continue
        value = node[key]
        if isinstance(value, (Mapping, list)):
            found = _search(value, depth + 1, max_depth, seen)
            if found is not None:
                return found

    return None


def locate(payload: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[List[Any]]:
    """
    Return the list of raw leaderboard entries, or None when the payload has
    no recognizable entry list. None is not an error: callers treat it as an
    empty leaderboard.
    """
    found = _search(payload, 0, max_depth, set())
    if found is None:
        logger.debug("No leaderboard array found in payload of type %s", type(payload).__name__)
    return found
