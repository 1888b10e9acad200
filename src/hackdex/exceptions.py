"""Exception hierarchy for hackdex."""

from __future__ import annotations


class HackdexError(Exception):
    """Base class for all hackdex errors."""


class CatalogQueryError(HackdexError):
    """The catalog query command rejected or failed."""


class SyncTriggerError(HackdexError):
    """The synchronization job failed before or while running."""


class PersistenceError(HackdexError):
    """A durable key-value slot could not be read or written."""


class InvalidTransitionError(HackdexError):
    """A sync lifecycle transition is not legal from the current state."""

    def __init__(self, event: str, state: str) -> None:
        self.event = event
        self.state = state
        super().__init__(f"Cannot {event!r} from state {state!r}")
