from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Sequence

from ..api_fetcher.schema import PrizeEntry, WagerUnits
from .coercion import coerce_number, coerce_string


# Candidate keys, highest priority first.
USERNAME_KEYS: Sequence[str] = (
    "username",
    "userName",
    "user_name",
    "name",
    "displayName",
    "player",
    "playerName",
    "nickname",
    "alias",
    "handle",
    "user",
)

WAGERED_KEYS: Sequence[str] = (
    "wagered",
    "wager",
    "wagered_amount",
    "wageredAmount",
    "wager_amount",
    "wagerAmount",
    "total_wagered",
    "totalWagered",
    "totalAmount",
    "amount",
    "value",
    "volume",
    "total",
    "points",
    "score",
    "real_amount",
)

WAGERED_NESTED_KEYS: Sequence[str] = ("stats", "totals", "metrics")

RANK_KEYS: Sequence[str] = ("rank", "position", "place", "order", "index")

PRIZE_KEYS: Sequence[str] = ("prize", "reward", "payout", "prizeAmount", "prize_amount")

PRIZE_AMOUNT_KEYS: Sequence[str] = ("amount", "value", "total")

PERIOD_START_KEYS: Sequence[str] = ("start_time", "startTime", "startAt", "start_at", "startDate", "start_date")
PERIOD_END_KEYS: Sequence[str] = ("end_time", "endTime", "endAt", "end_at", "endDate", "end_date")
PERIOD_UPDATED_KEYS: Sequence[str] = (
    "sourceCacheUpdatedAt",
    "cacheUpdatedAt",
    "updatedAt",
    "updated_at",
    "lastUpdated",
    "modifiedAt",
)
# Objects that carry race/tournament metadata next to or around the entries
PERIOD_CONTAINER_KEYS: Sequence[str] = ("data", "race", "tournament", "meta", "metadata")

_CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
_CURRENCY_CODE = re.compile(r"\b([A-Z]{3})\b")


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


# ---------------------------------------------------
# Username
# ---------------------------------------------------
def _lookup_username(entry: Mapping[str, Any], depth: int) -> str:
    for key in USERNAME_KEYS:
        if key not in entry:
            continue
        value = entry[key]
        if _is_mapping(value):
            if depth > 0:
                nested = _lookup_username(value, depth - 1)
                if nested:
                    return nested
            continue
        text = coerce_string(value)
        if text:
            return text
    return ""


def extract_username(entry: Mapping[str, Any], fallback: str) -> str:
    """
    First non-empty username candidate. A nested user/player/account
    object is searched one level down with the same candidate list.
    """
    if not _is_mapping(entry):
        return fallback
    return _lookup_username(entry, depth=1) or fallback


# ---------------------------------------------------
# Wagered amount
# ---------------------------------------------------
def _first_number(entry: Mapping[str, Any], keys: Sequence[str]) -> Optional[float]:
    for key in keys:
        if key not in entry:
            continue
        number = coerce_number(entry[key], None)
        if number is not None:
            return number
    return None


def extract_wagered(
    entry: Mapping[str, Any],
    fallback: float = 0.0,
    units: WagerUnits = WagerUnits.BASE,
) -> float:
    """
    First candidate that coerces to a finite number wins; a present but
    non-numeric field is skipped rather than read as zero. Falls back to
    one level of nesting under stats/totals/metrics.
    """
    if not _is_mapping(entry):
        return fallback

    number = _first_number(entry, WAGERED_KEYS)
    if number is None:
        for container in WAGERED_NESTED_KEYS:
            nested = entry.get(container)
            if _is_mapping(nested):
                number = _first_number(nested, WAGERED_KEYS)
                if number is not None:
                    break

    if number is None:
        return fallback

    if WagerUnits(units) is WagerUnits.CENTS:
        number = number / 100

    return max(number, 0.0)


# ---------------------------------------------------
# Rank
# ---------------------------------------------------
def extract_rank(entry: Mapping[str, Any], index: int) -> int:
    """Explicit 1-based rank if the entry carries one, else index + 1."""
    if _is_mapping(entry):
        for key in RANK_KEYS:
            if key not in entry:
                continue
            number = coerce_number(entry[key], None)
            if number is not None and number >= 1 and float(number).is_integer():
                return int(number)
    return index + 1


# ---------------------------------------------------
# Prize
# ---------------------------------------------------
def _currency_from_text(text: str) -> Optional[str]:
    for symbol, code in _CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    match = _CURRENCY_CODE.search(text.upper())
    return match.group(1) if match else None


def parse_prize_value(value: Any, rank: int) -> Optional[PrizeEntry]:
    """
    Read a prize given as a number, a string such as "$250" / "250 USD",
    or an object {amount|value|total, currency?, label?}.

    Only a positive amount counts as an explicit prize.
    """
    currency: Optional[str] = None
    label: Optional[str] = None

    if _is_mapping(value):
        amount = _first_number(value, PRIZE_AMOUNT_KEYS)
        currency = coerce_string(value.get("currency")) or None
        label = coerce_string(value.get("label")) or None
    elif isinstance(value, str):
        amount = coerce_number(value, None)
        currency = _currency_from_text(value)
    else:
        amount = coerce_number(value, None)

    if amount is None or amount <= 0:
        return None

    return PrizeEntry(rank=rank, amount=amount, currency=currency, label=label)


def extract_prize(entry: Mapping[str, Any], rank: int) -> Optional[PrizeEntry]:
    if not _is_mapping(entry):
        return None
    for key in PRIZE_KEYS:
        if key not in entry:
            continue
        prize = parse_prize_value(entry[key], rank)
        if prize is not None:
            return prize
    return None


# ---------------------------------------------------
# Period
# ---------------------------------------------------
def _first_text(node: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        if key in node:
            text = coerce_string(node[key])
            if text:
                return text
    return ""


def extract_period(payload: Any) -> Dict[str, str]:
    """
    Competition window reported by the upstream itself: start/end of a race
    or tournament and the upstream cache timestamp, read from the payload
    root or one level down (data, race, tournament, meta, metadata).

    Only keys that were found are returned.
    """
    if not _is_mapping(payload):
        return {}

    nodes = [payload] + [
        payload[key] for key in PERIOD_CONTAINER_KEYS if _is_mapping(payload.get(key))
    ]
    period: Dict[str, str] = {}
    for name, keys in (
        ("start", PERIOD_START_KEYS),
        ("end", PERIOD_END_KEYS),
        ("updatedAt", PERIOD_UPDATED_KEYS),
    ):
        for node in nodes:
            text = _first_text(node, keys)
            if text:
                period[name] = text
                break
    return period
