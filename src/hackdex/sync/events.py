"""Sync progress payloads and the channel that carries them.

The external sync job pushes ``{stage, message, progress, total}`` payloads
into a bounded ``ProgressChannel``. A dispatcher task on the event loop
forwards them to whoever is subscribed at that moment; payloads published
with nobody listening are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

STARTING_MESSAGE = "Starting sync..."


class SyncStage(str, Enum):
    FETCHING = "fetching"
    PROCESSING = "processing"
    COMPLETE = "complete"


class SyncProgress(BaseModel):
    """One progress report from the sync job.

    ``total`` is 0 while the job does not yet know how much work there is.
    """

    stage: SyncStage
    message: str = ""
    progress: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @classmethod
    def starting(cls) -> SyncProgress:
        """Synthetic record shown before the job has reported anything."""
        return cls(stage=SyncStage.FETCHING, message=STARTING_MESSAGE, progress=0, total=0)

    @property
    def fraction(self) -> float | None:
        if self.total <= 0:
            return None
        return min(self.progress / self.total, 1.0)


class ProgressChannel:
    """Bounded push channel from the sync job to its observers.

    Usage::

        channel = ProgressChannel()
        unsubscribe = channel.subscribe(on_progress)
        channel.emit({"stage": "fetching", "message": "...", "progress": 1, "total": 4})
        await channel.drain()
        unsubscribe()

    When the queue is full the oldest pending payload is discarded so the
    most recent state always gets through.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._listeners: list[Callable[[Any], None]] = []
        self._dispatcher: asyncio.Task | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register *callback*; returns a function that removes it again."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def emit(self, payload: Any) -> None:
        """Queue *payload* for delivery. Must be called on the event loop."""
        self._ensure_dispatcher()
        if self._queue.full():
            dropped = self._queue.get_nowait()
            self._queue.task_done()
            logger.warning("Progress channel full, dropped %r", dropped)
        self._queue.put_nowait(payload)

    async def drain(self) -> None:
        """Wait until every queued payload has been delivered."""
        await self._queue.join()

    async def close(self) -> None:
        if self._dispatcher is not None and not self._dispatcher.done():
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
        self._dispatcher = None

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.get_running_loop().create_task(self._dispatch())

    async def _dispatch(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                for callback in list(self._listeners):
                    try:
                        callback(payload)
                    except Exception:
                        logger.exception("Progress listener failed for %r", payload)
            finally:
                self._queue.task_done()
