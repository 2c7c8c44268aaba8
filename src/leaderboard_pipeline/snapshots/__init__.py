from .writer import (
    SnapshotWriter,
    atomic_write_json,
    build_error_snapshot,
    build_snapshot,
    snapshot_filename,
)

__all__ = [
    "SnapshotWriter",
    "atomic_write_json",
    "build_error_snapshot",
    "build_snapshot",
    "snapshot_filename",
]
