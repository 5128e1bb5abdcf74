"""
Per-key debouncing of expensive calls.

Every request for a key cancels that key's pending timer and schedules a
fresh single-shot one. When the timer finally fires, the function from
the *last* request runs once and every caller that joined the window
receives its result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class _Pending:
    handle: asyncio.TimerHandle
    future: asyncio.Future


class Debouncer:
    """
    Trailing-edge debounce keyed by an arbitrary hashable.

    Args:
        delay_ms: Default quiet period before the call runs
    """

    def __init__(self, delay_ms: float = 50.0):
        self.delay_ms = delay_ms
        self._pending: dict[Hashable, _Pending] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def call(
        self,
        key: Hashable,
        fn: Callable[[], Any],
        delay_ms: float | None = None,
    ) -> asyncio.Future:
        """
        Schedule ``fn`` for ``key``, replacing any pending call.

        Must be called from a running event loop.

        Returns:
            Future resolved with the result of the call that finally runs
        """
        loop = asyncio.get_running_loop()
        delay = (self.delay_ms if delay_ms is None else delay_ms) / 1000.0

        pending = self._pending.get(key)
        if pending is not None and not pending.future.done():
            pending.handle.cancel()
            future = pending.future
        else:
            future = loop.create_future()

        handle = loop.call_later(delay, self._fire, key, fn)
        self._pending[key] = _Pending(handle=handle, future=future)
        return future

    def _fire(self, key: Hashable, fn: Callable[[], Any]) -> None:
        pending = self._pending.pop(key, None)
        if pending is None or pending.future.done():
            return
        try:
            result = fn()
        except Exception as exc:
            logger.warning(f"Debounced call for {key!r} failed: {exc}")
            pending.future.set_exception(exc)
        else:
            pending.future.set_result(result)

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending call for ``key``; its waiters see CancelledError."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending.handle.cancel()
        pending.future.cancel()
        return True

    def cancel_all(self) -> int:
        keys = list(self._pending)
        for key in keys:
            self.cancel(key)
        return len(keys)
