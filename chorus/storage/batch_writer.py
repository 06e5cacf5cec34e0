"""Coalescing writer for rapid partial updates."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from chorus.utils.logging import get_logger

logger = get_logger(__name__)

UpdateFn = Callable[[str, dict[str, Any]], Awaitable[None]]


class BatchWriter:
    """Merges updates to the same record and writes them after a short delay.

    Later fields overwrite earlier ones, so only the newest state of each
    record is written. ``flush`` drains pending updates immediately and must be
    awaited before a final commit so no stale batched write lands after it.
    """

    def __init__(self, write: UpdateFn, delay: float = 0.18):
        """Initialize the writer.

        Args:
            write: Persists one record's merged fields, e.g. ``update_message``
            delay: Seconds to wait before draining a batch
        """
        self._write = write
        self._delay = delay
        self._pending: dict[str, dict[str, Any]] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._lock = asyncio.Lock()
        self._drains: set[asyncio.Task[None]] = set()

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def update(self, record_id: str, fields: dict[str, Any]) -> None:
        """Queue fields for ``record_id``, merging with anything already queued."""
        self._pending.setdefault(record_id, {}).update(fields)
        if self._timer is None:
            self._timer = asyncio.get_running_loop().call_later(self._delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.create_task(self._drain_in_background())
        self._drains.add(task)
        task.add_done_callback(self._drains.discard)

    async def _drain_in_background(self) -> None:
        try:
            await self._drain(None)
        except Exception as e:
            logger.error(f"Batched write failed: {e}", exc_info=True)

    async def _drain(self, record_ids: Iterable[str] | None) -> None:
        # Pop under the lock: a record's older fields never land after newer ones
        async with self._lock:
            ids = list(self._pending) if record_ids is None else list(record_ids)
            for record_id in ids:
                fields = self._pending.pop(record_id, None)
                if fields:
                    await self._write(record_id, fields)

    async def flush(self, record_ids: Iterable[str] | None = None) -> None:
        """Write pending updates now.

        Waits for any background drain holding the writer, so writes land in
        the order they were queued.

        Args:
            record_ids: Records to drain; all pending records when None
        """
        await self._drain(record_ids)

        if not self._pending and self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def aclose(self) -> None:
        await self.flush()
