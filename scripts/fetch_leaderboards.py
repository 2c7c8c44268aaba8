#!/usr/bin/env python3
"""
Leaderboard Pipeline - Fetch all affiliate leaderboards

Acceptance criteria:
- Single command refreshes every configured source.
- One failing source never blocks or corrupts the others.
- Every source always ends up with a valid snapshot file (live data or an
  error snapshot).
- Fetch status clearly logged (console + optional log file).
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Make "src/" importable when running as: python3 scripts/fetch_leaderboards.py
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from leaderboard_pipeline.api_fetcher.source_config import (  # noqa: E402
    SourceConfigError,
    load_source_configs,
)
from leaderboard_pipeline.pipeline import SourceResult, run_all  # noqa: E402
from leaderboard_pipeline.snapshots.writer import SnapshotWriter  # noqa: E402


def setup_logging(log_level: str, log_file: Optional[Path]) -> logging.Logger:
    logger = logging.getLogger("leaderboard_pipeline")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(fmt)
    ch.setLevel(logger.level)
    logger.addHandler(ch)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        fh.setLevel(logger.level)
        logger.addHandler(fh)

    return logger


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Fetch affiliate leaderboards and write normalized snapshots"
    )
    p.add_argument(
        "--config",
        default="",
        help="Path to a sources YAML file (default: bundled sources_config.yaml).",
    )
    p.add_argument(
        "--sources",
        default="all",
        help="Comma-separated list of source names, or 'all'.",
    )
    p.add_argument(
        "--out-dir",
        default="public/data",
        help="Directory the snapshot files are written to.",
    )
    p.add_argument(
        "--debug-raw",
        action="store_true",
        help="Also dump raw upstream payloads under <out-dir>/_debug/.",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    p.add_argument(
        "--log-file",
        default="",
        help="Optional log file path (e.g., logs/fetch_leaderboards.log).",
    )
    return p.parse_args(argv)


def resolve_sources(arg: str) -> Optional[List[str]]:
    s = [x.strip().lower() for x in arg.split(",") if x.strip()]
    if not s or s == ["all"]:
        return None
    return s


def log_summary(logger: logging.Logger, results: List[SourceResult]) -> None:
    for r in results:
        if r.ok:
            logger.info("  %-12s ok    rows=%d file=%s", r.name, r.rows, r.output_file)
        else:
            logger.error("  %-12s FAIL  %s", r.name, r.error)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    log_file = Path(args.log_file) if args.log_file.strip() else None
    logger = setup_logging(args.log_level, log_file)

    try:
        configs = load_source_configs(
            args.config.strip() or None, only=resolve_sources(args.sources)
        )
    except SourceConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    out_dir = Path(args.out_dir).resolve()
    logger.info("Selected sources: %s", [c.name for c in configs])
    logger.info("Output directory: %s", out_dir)

    writer = SnapshotWriter(out_dir)
    results = asyncio.run(
        run_all(configs, writer, debug_raw=True if args.debug_raw else None)
    )

    log_summary(logger, results)

    failed = [r.name for r in results if not r.ok]
    if failed:
        logger.error(
            "%d of %d source(s) failed: %s. Error snapshots were written for them.",
            len(failed),
            len(results),
            failed,
        )
        return 1

    logger.info("Done. All sources succeeded.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
