from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..api_fetcher.schema import (
    CanonicalRow,
    NormalizedLeaderboard,
    PrizeEntry,
    PrizePolicy,
    WagerUnits,
)
from .extractors import extract_prize, extract_rank, extract_username, extract_wagered
from .locator import locate
from .prize_ladder import PrizeLadder, as_ladder, parse_prize_tiers


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class NormalizeOptions:
    """Per-source normalization policy."""

    units: WagerUnits = WagerUnits.BASE
    prize_policy: PrizePolicy = PrizePolicy.LADDER
    trust_entry_prizes: bool = True
    rerank_by_wagered: bool = False
    limit: Optional[int] = None
    pad_to: Optional[int] = None
    placeholder_username: Optional[str] = None


@dataclasses.dataclass
class _ResolvedEntry:
    rank: int
    username: Optional[str]
    wagered: float
    explicit_prize: Optional[PrizeEntry]


def _placeholder_name(rank: int) -> str:
    return f"Player {rank}"


def effective_ladder(
    payload: Any, ladder: PrizeLadder, options: NormalizeOptions
) -> PrizeLadder:
    """Static ladder, with payload prize tiers layered on top under MERGE."""
    if options.prize_policy == PrizePolicy.MERGE:
        tiers = parse_prize_tiers(payload)
        if tiers:
            return ladder.merge(tiers)
    return ladder


def _resolve_entries(entries: List[Any], options: NormalizeOptions) -> List[_ResolvedEntry]:
    resolved: List[_ResolvedEntry] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            logger.debug("Skipping non-object leaderboard entry at index %d", index)
            continue
        rank = extract_rank(entry, index)
        resolved.append(
            _ResolvedEntry(
                rank=rank,
                username=extract_username(entry, "") or None,
                wagered=extract_wagered(entry, 0.0, options.units),
                explicit_prize=extract_prize(entry, rank) if options.trust_entry_prizes else None,
            )
        )
    return resolved


def _rerank_by_wagered(resolved: List[_ResolvedEntry]) -> List[_ResolvedEntry]:
    ordered = sorted(resolved, key=lambda r: -r.wagered)
    for position, item in enumerate(ordered, start=1):
        item.rank = position
        if item.explicit_prize is not None:
            item.explicit_prize = item.explicit_prize.model_copy(update={"rank": position})
    return ordered


def _dedupe_first_stable(resolved: List[_ResolvedEntry]) -> List[_ResolvedEntry]:
    """
    Stable sort by rank, then keep the first entry (in original array order)
    for each rank and drop the rest.
    """
    kept: List[_ResolvedEntry] = []
    seen_ranks = set()
    for item in sorted(resolved, key=lambda r: r.rank):
        if item.rank in seen_ranks:
            logger.debug(
                "Dropping duplicate rank %d (username=%r)", item.rank, item.username
            )
            continue
        seen_ranks.add(item.rank)
        kept.append(item)
    return kept


def pad_rows(
    rows: List[CanonicalRow], size: int, ladder: PrizeLadder, options: NormalizeOptions
) -> List[CanonicalRow]:
    """
    Fill every empty slot in ranks 1..`size` with a zero-wagered placeholder
    row. Existing rows keep their ranks; the result is sorted by rank.
    """
    taken = {row.rank for row in rows}
    padded = list(rows)
    for rank in range(1, size + 1):
        if rank in taken:
            continue
        padded.append(
            CanonicalRow(
                rank=rank,
                username=options.placeholder_username or _placeholder_name(rank),
                wagered=0.0,
                prize=ladder.amount_for(rank),
            )
        )
    padded.sort(key=lambda row: row.rank)
    return padded


def _prize_table(ladder: PrizeLadder, overrides: Dict[int, PrizeEntry]) -> List[PrizeEntry]:
    table: Dict[int, PrizeEntry] = {entry.rank: entry for entry in ladder.entries()}
    table.update(overrides)
    return [table[rank] for rank in sorted(table)]


def normalize(
    payload: Any,
    ladder: Any = None,
    options: Optional[NormalizeOptions] = None,
) -> NormalizedLeaderboard:
    """
    Turn an arbitrary upstream payload into canonical rows plus the resolved
    prize table.

    Deterministic for identical inputs. Missing or unrecognized data degrades
    to defaults; a payload without any entry list yields an empty leaderboard
    with the ladder as the prize table.
    """
    options = options or NormalizeOptions()
    ladder = effective_ladder(payload, as_ladder(ladder), options)

    entries = locate(payload)
    if entries is None:
        return NormalizedLeaderboard(rows=[], prizes=ladder.entries(), total_entries=0)

    resolved = _resolve_entries(entries, options)
    if options.rerank_by_wagered:
        resolved = _rerank_by_wagered(resolved)
    resolved = _dedupe_first_stable(resolved)

    if options.limit is not None:
        resolved = resolved[: max(options.limit, 0)]

    rows: List[CanonicalRow] = []
    overrides: Dict[int, PrizeEntry] = {}
    for item in resolved:
        if item.explicit_prize is not None:
            prize = item.explicit_prize.amount
            overrides[item.rank] = item.explicit_prize
        else:
            prize = ladder.amount_for(item.rank)
        rows.append(
            CanonicalRow(
                rank=item.rank,
                username=item.username or _placeholder_name(item.rank),
                wagered=item.wagered,
                prize=prize,
            )
        )

    if options.pad_to is not None:
        rows = pad_rows(rows, options.pad_to, ladder, options)
        if options.limit is not None:
            # filled gaps can push trailing real rows past the limit
            rows = rows[: max(options.limit, 0)]
            kept = {row.rank for row in rows}
            overrides = {rank: entry for rank, entry in overrides.items() if rank in kept}

    return NormalizedLeaderboard(
        rows=rows,
        prizes=_prize_table(ladder, overrides),
        total_entries=len(entries),
    )
