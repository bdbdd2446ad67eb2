"""Event queue between the watchers and the reconciler.

Unbounded FIFO: producers call ``add`` and never block, a single consumer
awaits ``get``. ``add_rate_limited`` re-enqueues an item after a per-key
exponential back-off (5 ms doubling up to 1000 s); the reconciler itself
never re-enqueues, the method exists for callers that want retry semantics.

Shutdown makes ``get`` return None. Items still queued at that point are
discarded and their count is logged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable

import structlog

from kubenotify.models.events import WatchEvent
from kubenotify.observability.metrics import queue_depth

_log = structlog.get_logger(component="reconciler.queue")

_BASE_DELAY_S = 0.005
_MAX_DELAY_S = 1000.0


class EventQueue:
    def __init__(self, base_delay: float = _BASE_DELAY_S, max_delay: float = _MAX_DELAY_S) -> None:
        self._queue: asyncio.Queue[WatchEvent | None] = asyncio.Queue()
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: dict[Hashable, int] = {}
        self._retry_handles: set[asyncio.TimerHandle] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        if self._shutting_down:
            return 0
        return self._queue.qsize()

    def add(self, event: WatchEvent) -> bool:
        """Enqueue *event*. Returns False (and logs) once the queue is shut down."""
        if self._shutting_down:
            _log.warning(
                "event_rejected_after_shutdown",
                resource=event.display_name,
                event_type=event.event_type.value,
            )
            return False
        self._queue.put_nowait(event)
        queue_depth.set(self._queue.qsize())
        return True

    def add_rate_limited(self, event: WatchEvent, key: Hashable) -> float:
        """Re-enqueue *event* after the back-off for *key*; returns the delay used."""
        failures = self._failures.get(key, 0)
        delay = min(self._base_delay * (2**failures), self._max_delay)
        self._failures[key] = failures + 1

        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._retry_handles.discard(handle)
            self.add(event)

        handle = loop.call_later(delay, _fire)
        self._retry_handles.add(handle)
        return delay

    def forget(self, key: Hashable) -> None:
        """Reset the back-off for *key*."""
        self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> WatchEvent | None:
        """Next event in FIFO order, or None once the queue is shut down."""
        if self._shutting_down:
            return None
        item = await self._queue.get()
        queue_depth.set(self._queue.qsize())
        if item is None or self._shutting_down:
            return None
        return item

    def shut_down(self) -> int:
        """Stop the queue. Returns the number of events discarded."""
        if self._shutting_down:
            return 0
        self._shutting_down = True
        for handle in self._retry_handles:
            handle.cancel()
        pending = len(self._retry_handles)
        self._retry_handles.clear()

        while not self._queue.empty():
            if self._queue.get_nowait() is not None:
                pending += 1
        # Wake a consumer blocked in get().
        self._queue.put_nowait(None)
        queue_depth.set(0)
        if pending:
            _log.warning("queue_discarded_on_shutdown", count=pending)
        return pending
