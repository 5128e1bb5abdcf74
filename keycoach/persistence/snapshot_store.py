"""
Snapshot persistence for the weakness engine.

The engine's state is stored as one JSON document, by default at
~/.keycoach/weakness_snapshot.json. Writes go to a temporary file that is
then renamed over the target, so a crash mid-save never leaves a
half-written snapshot behind.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from keycoach.engine.snapshot import EngineSnapshot

DEFAULT_PATH = Path.home() / ".keycoach" / "weakness_snapshot.json"


class SnapshotStore:
    """
    Reads and writes engine snapshots.

    Load failures are never fatal: a missing, unreadable or malformed file
    yields ``None`` and the caller starts with an empty engine.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else DEFAULT_PATH
        self._pending: set[asyncio.Task] = set()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> EngineSnapshot | None:
        """Load the stored snapshot, or None if there is nothing usable."""
        if not self.path.exists():
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
            snapshot = EngineSnapshot.model_validate_json(raw)
        except OSError as e:
            logger.warning(f"Could not read snapshot {self.path}: {e}")
            return None
        except ValidationError as e:
            logger.warning(f"Ignoring malformed snapshot {self.path} ({e.error_count()} errors)")
            return None

        logger.debug(f"Loaded snapshot from {self.path}")
        return snapshot

    def save(self, snapshot: EngineSnapshot) -> Path:
        """Write the snapshot atomically and return its path."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.tmp")

        with open(tmp, "w", encoding="utf-8") as f:
            f.write(snapshot.model_dump_json())
        os.replace(tmp, self.path)

        logger.debug(f"Saved snapshot to {self.path}")
        return self.path

    def clear(self) -> bool:
        """Delete the stored snapshot; False if there was none or it could not be removed."""
        if not self.path.exists():
            return False
        try:
            self.path.unlink()
        except OSError as exc:
            logger.error(f"Failed to delete snapshot {self.path}: {exc}")
            return False
        logger.info(f"Deleted snapshot {self.path}")
        return True

    def save_in_background(self, snapshot: EngineSnapshot) -> asyncio.Task | None:
        """
        Fire-and-forget save.

        Inside a running event loop the write happens on a worker thread and
        failures are logged. Without a loop the snapshot is saved inline.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                self.save(snapshot)
            except OSError as e:
                logger.error(f"Snapshot save failed: {e}")
            return None

        task = loop.create_task(asyncio.to_thread(self.save, snapshot))
        self._pending.add(task)
        task.add_done_callback(self._on_saved)
        return task

    def _on_saved(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background snapshot save failed: {exc}")

    async def flush(self) -> None:
        """Wait for every background save started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
