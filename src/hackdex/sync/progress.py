"""Rich progress display for a sync session.

Mirrors the orchestrator's current SyncSession into a single Rich progress
task: indeterminate while the job has not reported a total, a bar with
``progress/total`` once it has.
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)

from hackdex.sync.events import SyncProgress, SyncStage
from hackdex.sync.orchestrator import SyncOrchestrator

UNIT_LABELS = {
    SyncStage.FETCHING: "Pages",
    SyncStage.PROCESSING: "Hacks",
    SyncStage.COMPLETE: "Done",
}


class SyncProgressDisplay:
    """Rich progress bar bound to a SyncOrchestrator.

    Usage::

        with SyncProgressDisplay(orchestrator):
            await orchestrator.trigger()
    """

    def __init__(self, orchestrator: SyncOrchestrator, console: Console | None = None) -> None:
        self._orchestrator = orchestrator
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[message]}", style="dim"),
            console=console,
        )
        self._task: TaskID | None = None
        self._unsubscribe = None
        self.last_rendered: SyncProgress | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._progress.start()
        self._task = self._progress.add_task("[green]Sync", total=None, message="")
        self._unsubscribe = self._orchestrator.subscribe(self._on_change)
        self.render(self._orchestrator.session)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._progress.stop()

    def __enter__(self) -> SyncProgressDisplay:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _on_change(self, orchestrator: SyncOrchestrator) -> None:
        self.render(orchestrator.session)

    def render(self, session: SyncProgress | None) -> None:
        """Update the bar from *session*; ``None`` hides it."""
        if self._task is None:
            return
        if session is None:
            self._progress.update(self._task, visible=False)
            return
        self.last_rendered = session
        self._progress.update(
            self._task,
            description=f"[green]{UNIT_LABELS[session.stage]}",
            total=session.total if session.total > 0 else None,
            completed=session.progress,
            message=session.message,
            visible=True,
        )
