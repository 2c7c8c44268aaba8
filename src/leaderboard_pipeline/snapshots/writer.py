from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from ..api_fetcher.schema import (
    CanonicalRow,
    NormalizedLeaderboard,
    PrizeEntry,
    Snapshot,
    SnapshotMetadata,
    utc_now_iso,
)


logger = logging.getLogger(__name__)

DEBUG_DIR_NAME = "_debug"


def snapshot_filename(source: str) -> str:
    return f"{source}-leaderboard.json"


def atomic_write_bytes(dest: Path, data: bytes) -> None:
    """
    Atomic file write: write to temp file in same directory then os.replace.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=str(dest.parent), delete=False) as tf:
        tmp_path = Path(tf.name)
        tf.write(data)
        tf.flush()
        os.fsync(tf.fileno())
    os.replace(str(tmp_path), str(dest))


def atomic_write_json(dest: Path, obj: Any) -> None:
    atomic_write_bytes(
        dest, (json.dumps(obj, indent=2, ensure_ascii=False) + "\n").encode("utf-8")
    )


def build_snapshot(
    source: str,
    result: NormalizedLeaderboard,
    url: str,
    fetched_at: Optional[str] = None,
    period: Optional[Dict[str, Any]] = None,
) -> Snapshot:
    return Snapshot(
        rows=result.rows,
        prizes=result.prizes,
        metadata=SnapshotMetadata(
            source=source,
            fetched_at=fetched_at or utc_now_iso(),
            url=url,
            period=period,
            total_entries=result.total_entries,
        ),
    )


def build_error_snapshot(
    source: str,
    error: Union[str, BaseException],
    prizes: Iterable[PrizeEntry] = (),
    url: str = "",
    tried: Optional[Iterable[str]] = None,
    placeholder_rows: Iterable[CanonicalRow] = (),
    period: Optional[Dict[str, Any]] = None,
) -> Snapshot:
    """
    Snapshot written when a source could not be fetched: no live rows
    (placeholders only, for sources that always show N slots), the
    configured prizes and a readable error.
    """
    message = str(error) or type(error).__name__
    return Snapshot(
        rows=list(placeholder_rows),
        prizes=list(prizes),
        metadata=SnapshotMetadata(
            source=source,
            url=url,
            error=message,
            tried=list(tried) if tried else None,
            period=period,
        ),
    )


class SnapshotWriter:
    """
    Persists one JSON document per source under a shared directory that
    the front-end serves statically. Each write replaces the previous file.
    """

    def __init__(self, out_dir: Union[str, Path]) -> None:
        self.out_dir = Path(out_dir)

    def path_for(self, source: str) -> Path:
        return self.out_dir / snapshot_filename(source)

    def write(self, source: str, snapshot: Snapshot) -> Path:
        path = self.path_for(source)
        atomic_write_json(path, snapshot.to_document())
        logger.info("Wrote %s (%d rows)", path, len(snapshot.rows))
        return path

    def write_raw(self, source: str, url: str, payload: Any) -> Path:
        """Debug dump of the untouched upstream payload."""
        path = self.out_dir / DEBUG_DIR_NAME / f"{source}-raw.json"
        atomic_write_json(path, {"url": url, "fetchedAt": utc_now_iso(), "payload": payload})
        logger.debug("Wrote raw payload for %s to %s", source, path)
        return path
