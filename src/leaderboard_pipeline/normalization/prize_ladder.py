from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..api_fetcher.schema import PrizeEntry
from .coercion import coerce_number, coerce_string


logger = logging.getLogger(__name__)


TIER_CONTAINER_KEYS: Sequence[str] = ("prizes", "prize_tiers", "prizeTiers")
TIER_NESTED_PARENTS: Sequence[str] = ("metadata", "meta")
TIER_RANK_KEYS: Sequence[str] = ("rank", "position", "place")
TIER_AMOUNT_KEYS: Sequence[str] = ("amount", "value", "payout", "prize")
# Amounts some sources report in cents only
TIER_CENTS_KEYS: Sequence[str] = ("amount_cents", "value_cents", "payout_cents", "prize_cents")


class PrizeLadder:
    """
    Immutable rank -> prize table for one source.

    Static ladders come from configuration; payload-provided tiers can be
    layered on top with `merge`.
    """

    def __init__(self, entries: Iterable[PrizeEntry] = ()) -> None:
        self._by_rank: Dict[int, PrizeEntry] = {}
        for entry in entries:
            self._by_rank[entry.rank] = entry

    @classmethod
    def from_amounts(cls, amounts: Union[Sequence[float], Mapping[int, float]]) -> "PrizeLadder":
        """Build from [105, 65, 40] (rank = position + 1) or {1: 105, 2: 65}."""
        if isinstance(amounts, Mapping):
            items = amounts.items()
        else:
            items = enumerate(amounts, start=1)
        return cls(PrizeEntry(rank=int(rank), amount=float(amount)) for rank, amount in items)

    @classmethod
    def from_entries(cls, entries: Iterable[Union[PrizeEntry, Mapping[str, Any]]]) -> "PrizeLadder":
        return cls(
            entry if isinstance(entry, PrizeEntry) else PrizeEntry.model_validate(entry)
            for entry in entries
        )

    def get(self, rank: int) -> Optional[PrizeEntry]:
        return self._by_rank.get(rank)

    def amount_for(self, rank: int) -> float:
        entry = self._by_rank.get(rank)
        return entry.amount if entry is not None else 0.0

    def merge(self, dynamic: Iterable[PrizeEntry]) -> "PrizeLadder":
        """Dynamic entries win for the ranks they cover; this ladder fills the rest."""
        merged = dict(self._by_rank)
        for entry in dynamic:
            merged[entry.rank] = entry
        return PrizeLadder(merged.values())

    def entries(self) -> List[PrizeEntry]:
        return [self._by_rank[rank] for rank in sorted(self._by_rank)]

    def __len__(self) -> int:
        return len(self._by_rank)

    def __bool__(self) -> bool:
        return bool(self._by_rank)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrizeLadder):
            return NotImplemented
        return self.entries() == other.entries()

    def __repr__(self) -> str:
        return f"PrizeLadder({[(e.rank, e.amount) for e in self.entries()]})"


def as_ladder(value: Any) -> PrizeLadder:
    """Accept a PrizeLadder, {rank: amount}, [amount, ...] or [PrizeEntry | dict, ...]."""
    if value is None:
        return PrizeLadder()
    if isinstance(value, PrizeLadder):
        return value
    if isinstance(value, Mapping):
        return PrizeLadder.from_amounts(value)
    items = list(value)
    if all(isinstance(item, (int, float)) and not isinstance(item, bool) for item in items):
        return PrizeLadder.from_amounts(items)
    return PrizeLadder.from_entries(items)


def _find_tier_list(payload: Any) -> Optional[List[Any]]:
    if not isinstance(payload, Mapping):
        return None
    for key in TIER_CONTAINER_KEYS:
        tiers = payload.get(key)
        if isinstance(tiers, list) and tiers:
            return tiers
    for parent in TIER_NESTED_PARENTS:
        nested = payload.get(parent)
        if isinstance(nested, Mapping):
            tiers = nested.get("prizes")
            if isinstance(tiers, list) and tiers:
                return tiers
    return None


def _tier_number(tier: Mapping[str, Any], keys: Sequence[str]) -> Optional[float]:
    for key in keys:
        if key in tier:
            number = coerce_number(tier[key], None)
            if number is not None:
                return number
    return None


def parse_prize_tiers(payload: Any) -> List[PrizeEntry]:
    """
    Prize tiers carried by a payload (or race/tournament metadata).

    Accepts [{"rank": 1, "amount": 500}, ...] style objects and bare
    numeric lists where the position gives the rank. Tiers without a
    usable rank or with a negative amount are dropped. Cents-only amounts
    (amount_cents, value_cents, ...) are converted to base units.
    """
    tiers = _find_tier_list(payload)
    if not tiers:
        return []

    parsed: Dict[int, PrizeEntry] = {}
    for index, tier in enumerate(tiers):
        currency = label = None
        if isinstance(tier, Mapping):
            rank = _tier_number(tier, TIER_RANK_KEYS)
            amount = _tier_number(tier, TIER_AMOUNT_KEYS)
            if amount is None:
                cents = _tier_number(tier, TIER_CENTS_KEYS)
                amount = cents / 100 if cents is not None else None
            currency = coerce_string(tier.get("currency")) or None
            label = coerce_string(tier.get("label")) or None
        else:
            rank = float(index + 1)
            amount = coerce_number(tier, None)

        if rank is None or rank < 1 or not rank.is_integer():
            logger.debug("Dropping prize tier %d: no usable rank (%r)", index, tier)
            continue
        if amount is None or amount < 0:
            logger.debug("Dropping prize tier %d: no usable amount (%r)", index, tier)
            continue
        if int(rank) in parsed:
            logger.debug("Dropping prize tier %d: rank %d already set", index, int(rank))
            continue
        parsed[int(rank)] = PrizeEntry(
            rank=int(rank), amount=amount, currency=currency, label=label
        )

    return [parsed[rank] for rank in sorted(parsed)]
