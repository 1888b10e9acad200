"""Sync orchestrator: trigger, progress session, completion and last-sync time.

The orchestrator never polls. It starts the external job, shows a synthetic
"Starting sync..." record straight away, and from then on mirrors whatever
progress payloads the job pushes. When a payload reports completion it
waits briefly so the final message stays visible, stamps the last-sync
time, notifies dependents, and later clears the progress display.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from hackdex.config import DiscoveryConfig
from hackdex.exceptions import InvalidTransitionError, SyncTriggerError
from hackdex.state import Listenable
from hackdex.storage import LAST_SYNC_TIME_KEY, KeyValueStore, SafeStore
from hackdex.sync.events import ProgressChannel, SyncProgress, SyncStage
from hackdex.sync.fsm import create_sync_fsm, transition
from hackdex.telemetry import Telemetry

logger = logging.getLogger(__name__)

NEVER_SYNCED = "Never synced"


class SyncJob(Protocol):
    """External synchronization capability.

    ``run`` reports progress only through *emit*; its own return or raise
    signals whether the job could be carried out at all.
    """

    async def run(self, emit: Callable[[Any], None]) -> None: ...


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit if count == 1 else unit + 's'} ago"


def format_relative_time(timestamp_ms: int | None, now_ms: int) -> str:
    """Bucketed "time since" text for a last-sync timestamp.

    >>> format_relative_time(0, 5 * 60 * 1000)
    '5 minutes ago'
    >>> format_relative_time(None, 0)
    'Never synced'
    """
    if timestamp_ms is None:
        return NEVER_SYNCED
    seconds = (now_ms - timestamp_ms) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return "just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


class SyncOrchestrator(Listenable["SyncOrchestrator"]):
    """Drives one sync session at a time and tracks the last sync time.

    Listeners registered with ``subscribe()`` are called with the
    orchestrator after every observable change (session, syncing flag,
    error, last-sync text).

    Usage::

        async with SyncOrchestrator(job, store, on_complete=pipeline.refresh) as sync:
            await sync.trigger()

    Starting a sync while one is fetching or processing is a caller error;
    the lifecycle FSM rejects it with InvalidTransitionError.
    """

    def __init__(
        self,
        job: SyncJob,
        store: KeyValueStore | None = None,
        on_complete: Callable[[], Any] | None = None,
        config: DiscoveryConfig | None = None,
        telemetry: Telemetry | None = None,
        clock: Callable[[], float] = time.time,
        channel: ProgressChannel | None = None,
    ) -> None:
        super().__init__()
        self.config = config if config is not None else DiscoveryConfig()
        self.channel = channel if channel is not None else ProgressChannel(self.config.progress_queue_size)
        self._job = job
        self._store = SafeStore(store) if store is not None else None
        self._on_complete = on_complete
        self._telemetry = telemetry if telemetry is not None else Telemetry.noop()
        self._clock = clock
        self._fsm = create_sync_fsm()
        self._unsubscribe: Callable[[], None] | None = None
        self._settle_task: asyncio.Task | None = None
        self._clear_task: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None

        self.syncing = False
        self.session: SyncProgress | None = None
        self.last_error: SyncTriggerError | None = None
        self.last_sync_ms = self._load_timestamp()
        self.last_sync_text = format_relative_time(self.last_sync_ms, self._now_ms())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._fsm.current_state_value

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self) -> None:
        """Start observing progress events. Calling it twice is harmless."""
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self._on_progress)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> SyncOrchestrator:
        self.attach()
        self.start_ticker()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Detach, stop the ticker and cancel pending completion steps."""
        self.detach()
        self.stop_ticker()
        self._cancel_completion()
        await self.channel.close()

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    async def trigger(self) -> bool:
        """Start the sync job and wait for its call to resolve.

        Returns:
            True if the job ran, False if it raised. A failure leaves the
            orchestrator idle with ``last_error`` set and no timestamp
            written.
        """
        transition(self._fsm, "start")
        # A restart inside the settle window supersedes the earlier completion
        self._cancel_completion()
        self.syncing = True
        self.last_error = None
        self.session = SyncProgress.starting()
        self._notify(self)
        logger.info("Sync started")

        with self._telemetry.span("sync.trigger") as span:
            try:
                await self._job.run(self.channel.emit)
            except Exception as exc:
                span.record_exception(exc)
                span.set_attribute("sync.ok", False)
                logger.error("Sync job failed: %r", exc)
                # Payloads queued before the failure are delivered before
                # the session is cleared.
                await self.channel.drain()
                self._cancel_completion()
                self.last_error = SyncTriggerError(str(exc) or type(exc).__name__)
                self.syncing = False
                self.session = None
                self._reset_fsm()
                self._notify(self)
                return False
            span.set_attribute("sync.ok", True)
        return True

    async def wait_settled(self) -> None:
        """Wait until queued progress is delivered and completion has been stamped."""
        await self.channel.drain()
        if self._settle_task is not None:
            await self._settle_task

    def dismiss(self) -> None:
        """Hide the progress display and any error before they clear themselves."""
        self.session = None
        self.last_error = None
        self._notify(self)

    # ------------------------------------------------------------------
    # Progress events
    # ------------------------------------------------------------------

    def _on_progress(self, payload: Any) -> None:
        try:
            progress = payload if isinstance(payload, SyncProgress) else SyncProgress.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Ignoring invalid sync progress payload %r: %s", payload, exc)
            return

        self.session = progress
        self._advance(progress.stage)
        self._notify(self)

        if progress.stage is SyncStage.COMPLETE and (
            self._settle_task is None or self._settle_task.done()
        ):
            self._settle_task = asyncio.get_running_loop().create_task(self._settle())

    def _advance(self, stage: SyncStage) -> None:
        if stage is SyncStage.FETCHING:
            event = "fetch" if self.state == "fetching" else "start"
        elif stage is SyncStage.PROCESSING:
            event = "process"
        else:
            event = "finish"
        try:
            transition(self._fsm, event)
        except InvalidTransitionError as exc:
            logger.warning("Out-of-order sync progress: %s", exc)

    def _cancel_completion(self) -> None:
        """Drop a pending settle or clear step so it never stamps or clears."""
        for task in (self._settle_task, self._clear_task):
            if task is not None and not task.done():
                task.cancel()
        self._settle_task = None
        self._clear_task = None

    def _reset_fsm(self) -> None:
        if self.state != "idle":
            transition(self._fsm, "reset")

    async def _settle(self) -> None:
        await asyncio.sleep(self.config.complete_settle_seconds)
        with self._telemetry.span("sync.complete") as span:
            self.syncing = False
            self.last_sync_ms = self._now_ms()
            if self._store is not None:
                self._store.set(LAST_SYNC_TIME_KEY, str(self.last_sync_ms))
            self.last_sync_text = format_relative_time(self.last_sync_ms, self._now_ms())
            span.set_attribute("sync.timestamp_ms", self.last_sync_ms)
            self._notify(self)
            logger.info("Sync complete at %d", self.last_sync_ms)
            if self._on_complete is not None:
                try:
                    result = self._on_complete()
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    span.record_exception(exc)
                    logger.exception("Sync completion callback failed")
        self._clear_task = asyncio.get_running_loop().create_task(self._clear())

    async def _clear(self) -> None:
        await asyncio.sleep(self.config.progress_clear_seconds)
        self.session = None
        if self.state == "complete":
            self._reset_fsm()
        self._notify(self)

    # ------------------------------------------------------------------
    # Last sync time
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load_timestamp(self) -> int | None:
        if self._store is None:
            return None
        raw = self._store.get(LAST_SYNC_TIME_KEY)
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring unparsable last sync timestamp %r", raw)
            return None

    def refresh_last_sync_text(self) -> str:
        text = format_relative_time(self.last_sync_ms, self._now_ms())
        if text != self.last_sync_text:
            self.last_sync_text = text
            self._notify(self)
        return text

    def start_ticker(self) -> None:
        """Recompute ``last_sync_text`` on a fixed interval until stopped."""
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.get_running_loop().create_task(self._tick())

    def stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.config.relative_time_refresh_seconds)
            self.refresh_last_sync_text()
