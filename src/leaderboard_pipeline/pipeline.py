"""
Batch orchestration: fetch, normalize and write every configured source.

Sources run concurrently and independently. Each source is wrapped at its
own boundary, so a failing upstream produces an error snapshot for that
source only and never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .api_fetcher.schema import PrizePolicy, Snapshot, utc_now_iso
from .api_fetcher.source_adapter import FetchResult, SourceAdapter, SourceFetchError
from .api_fetcher.source_config import SourceConfig
from .normalization import (
    NormalizeOptions,
    PrizeLadder,
    as_ladder,
    extract_period,
    locate,
    normalize,
    pad_rows,
    parse_prize_tiers,
)
from .snapshots.writer import SnapshotWriter, build_error_snapshot, build_snapshot


logger = logging.getLogger(__name__)

DEBUG_FETCH_ENV = "LEADERBOARD_DEBUG_FETCH"


@dataclasses.dataclass
class SourceResult:
    name: str
    ok: bool
    started_at: str
    finished_at: str
    duration_s: float
    rows: int = 0
    url: str = ""
    output_file: Optional[str] = None
    error: Optional[str] = None


def options_for(config: SourceConfig) -> NormalizeOptions:
    return NormalizeOptions(
        units=config.units,
        prize_policy=config.prize_policy,
        trust_entry_prizes=config.trust_entry_prizes,
        rerank_by_wagered=config.rerank_by_wagered,
        limit=config.limit,
        pad_to=config.pad_to,
        placeholder_username=config.placeholder_username,
    )


def debug_fetch_enabled() -> bool:
    return os.getenv(DEBUG_FETCH_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def has_entries(payload: Any) -> bool:
    return locate(payload) is not None


def snapshot_period(fetched: FetchResult, tiers_payload: Any = None) -> Optional[Dict[str, Any]]:
    """
    Requested date range, overridden by whatever window the upstream reports
    (race metadata first, then the leaderboard payload).
    """
    period: Dict[str, Any] = fetched.date_range.as_period() if fetched.date_range else {}
    period.update(extract_period(tiers_payload))
    period.update(extract_period(fetched.payload))
    return period or None


async def _fetch_and_normalize(
    config: SourceConfig,
    adapter: SourceAdapter,
    writer: SnapshotWriter,
    ladder: PrizeLadder,
    options: NormalizeOptions,
    now: Optional[datetime],
    debug_raw: bool,
) -> Snapshot:
    fetched = await adapter.afetch_payload(now)
    if debug_raw:
        writer.write_raw(config.name, fetched.url, fetched.payload)

    tiers_payload: Any = None
    if config.prize_policy == PrizePolicy.MERGE and config.prizes_url:
        tiers_payload = await adapter.afetch_prize_tiers_payload()
        tiers = parse_prize_tiers(tiers_payload)
        if tiers:
            ladder = ladder.merge(tiers)

    result = normalize(fetched.payload, ladder, options)
    logger.info(
        "%s: normalized %d rows from %d located entries",
        config.name,
        len(result.rows),
        result.total_entries,
    )
    return build_snapshot(
        config.name,
        result,
        url=fetched.url,
        period=snapshot_period(fetched, tiers_payload),
    )


async def run_source(
    config: SourceConfig,
    writer: SnapshotWriter,
    now: Optional[datetime] = None,
    debug_raw: Optional[bool] = None,
) -> SourceResult:
    """
    Run one source end to end. Never raises: any failure becomes an error
    snapshot plus a failed SourceResult.
    """
    t0 = time.time()
    started_at = utc_now_iso()
    debug_raw = debug_fetch_enabled() if debug_raw is None else debug_raw
    ladder = as_ladder(config.prize_ladder)
    options = options_for(config)

    logger.info("==== START source=%s ====", config.name)
    error: Optional[str] = None
    adapter: Optional[SourceAdapter] = None
    try:
        adapter = SourceAdapter(config, has_entries=has_entries)
        snapshot = await _fetch_and_normalize(
            config, adapter, writer, ladder, options, now, debug_raw
        )
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        logger.error("Source failed: %s | %s", config.name, error)
        logger.debug("Exception details", exc_info=True)
        placeholders = pad_rows([], config.pad_to, ladder, options) if config.pad_to else []
        snapshot = build_error_snapshot(
            config.name,
            error,
            prizes=ladder.entries(),
            url=e.tried[0] if isinstance(e, SourceFetchError) and e.tried else "",
            tried=e.tried if isinstance(e, SourceFetchError) else None,
            placeholder_rows=placeholders,
        )
    finally:
        if adapter is not None:
            adapter.close()

    output_file: Optional[Path] = None
    try:
        output_file = writer.write(config.name, snapshot)
    except OSError as e:
        write_error = f"{type(e).__name__}: {e}"
        logger.error("Could not write snapshot for %s | %s", config.name, write_error)
        error = f"{error}; {write_error}" if error else write_error

    t1 = time.time()
    ok = error is None
    logger.info(
        "==== END source=%s ok=%s rows=%d duration=%.3fs ====",
        config.name,
        ok,
        len(snapshot.rows),
        (t1 - t0),
    )
    return SourceResult(
        name=config.name,
        ok=ok,
        started_at=started_at,
        finished_at=utc_now_iso(),
        duration_s=round(t1 - t0, 3),
        rows=len(snapshot.rows) if ok else 0,
        url=snapshot.metadata.url,
        output_file=str(output_file) if output_file else None,
        error=error,
    )


async def run_all(
    configs: Sequence[SourceConfig],
    writer: SnapshotWriter,
    now: Optional[datetime] = None,
    debug_raw: Optional[bool] = None,
) -> List[SourceResult]:
    """Run every source concurrently and wait for all of them to settle."""
    if not configs:
        logger.warning("No sources configured; nothing to fetch.")
        return []

    outcomes = await asyncio.gather(
        *(run_source(config, writer, now=now, debug_raw=debug_raw) for config in configs),
        return_exceptions=True,
    )

    results: List[SourceResult] = []
    for config, outcome in zip(configs, outcomes):
        if isinstance(outcome, BaseException):
            # CancelledError and other BaseExceptions bypass run_source
            logger.error("Source task crashed: %s | %r", config.name, outcome)
            now_iso = utc_now_iso()
            results.append(
                SourceResult(
                    name=config.name,
                    ok=False,
                    started_at=now_iso,
                    finished_at=now_iso,
                    duration_s=0.0,
                    error=f"{type(outcome).__name__}: {outcome}",
                )
            )
            continue
        results.append(outcome)
    return results
