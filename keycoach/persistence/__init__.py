"""Engine snapshot persistence."""

from .snapshot_store import DEFAULT_PATH, SnapshotStore

__all__ = ["DEFAULT_PATH", "SnapshotStore"]
