"""
Engine construction and shared lifetime.

``create_engine`` wires an engine from Settings. ``EngineProvider`` owns
the single engine instance of a process: the first ``get()`` loads the
persisted snapshot, and concurrent callers during that load all await the
same initialization instead of starting their own.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from config import Settings, get_settings
from keycoach.inference.sampling import RandomSource, default_rng
from keycoach.persistence.snapshot_store import SnapshotStore

from .config import EngineConfig
from .detector import WeaknessEngine


def create_engine(
    settings: Settings | None = None,
    rng: RandomSource | None = None,
    clock: Callable[[], float] | None = None,
    store: SnapshotStore | None = None,
) -> WeaknessEngine:
    """Build an empty engine configured from settings."""
    settings = settings or get_settings()
    return WeaknessEngine(
        config=EngineConfig.from_settings(settings),
        rng=rng or default_rng(settings.random_seed),
        clock=clock,
        store=store,
    )


class EngineProvider:
    """
    Lazily initialized, process-wide engine.

    Args:
        factory: Builds an empty engine
        store: Where the snapshot is loaded from (None = start empty)
    """

    def __init__(
        self,
        factory: Callable[[], WeaknessEngine] | None = None,
        store: SnapshotStore | None = None,
    ):
        self._factory = factory or create_engine
        self.store = store
        self._engine: WeaknessEngine | None = None
        self._init_task: asyncio.Task | None = None

    @property
    def engine(self) -> WeaknessEngine | None:
        """The engine if initialization has finished."""
        return self._engine

    @property
    def is_ready(self) -> bool:
        return self._engine is not None

    async def get(self) -> WeaknessEngine:
        if self._engine is not None:
            return self._engine
        return await self.initialize()

    async def initialize(self) -> WeaknessEngine:
        """Initialize once; concurrent callers share the in-flight load."""
        if self._engine is not None:
            return self._engine
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load())
        try:
            return await asyncio.shield(self._init_task)
        except asyncio.CancelledError:
            if self._init_task.cancelled():
                self._init_task = None
            raise

    async def _load(self) -> WeaknessEngine:
        engine = self._factory()
        if self.store is not None and engine.store is None:
            engine.store = self.store

        if self.store is not None:
            try:
                snapshot = await asyncio.to_thread(self.store.load)
            except Exception as e:
                logger.error(f"Snapshot load failed, starting empty: {e}")
                snapshot = None
            if snapshot is not None:
                engine.from_snapshot(snapshot)
            else:
                logger.info("No snapshot found, starting with an empty engine")

        self._engine = engine
        return engine

    def reset(self) -> None:
        """Forget the engine so the next ``get()`` reloads it."""
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None
        self._engine = None
