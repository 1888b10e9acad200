"""Sync lifecycle finite state machine.

The orchestrator owns one instance and drives it from two directions: the
explicit trigger (``start``) and the stage of each pushed progress event
(``fetch``, ``process``, ``finish``). ``reset`` returns to idle after the
completion message has been cleared or after the job itself failed.

The FSM only validates transitions; it has no enter/exit callbacks.
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from hackdex.exceptions import InvalidTransitionError


class SyncLifecycleSM(StateMachine):
    """Four-state lifecycle of one sync session.

    States:
        idle       -- No sync running; the initial state.
        fetching   -- Job started, pages being fetched.
        processing -- Fetched records being written to the catalog.
        complete   -- Job reported completion; message still on screen.

    No state has ``final=True``: a completed session returns to idle and a
    new sync may start directly from ``complete``.
    """

    idle = State("idle", initial=True, value="idle")
    fetching = State("fetching", value="fetching")
    processing = State("processing", value="processing")
    complete = State("complete", value="complete")

    start = idle.to(fetching) | complete.to(fetching)
    fetch = fetching.to.itself()
    process = fetching.to(processing) | processing.to.itself()
    finish = fetching.to(complete) | processing.to(complete)
    reset = fetching.to(idle) | processing.to(idle) | complete.to(idle)


def create_sync_fsm(current_state: str = "idle") -> SyncLifecycleSM:
    """Create an FSM positioned at *current_state*."""
    return SyncLifecycleSM(start_value=current_state)


def transition(fsm: SyncLifecycleSM, event: str) -> str:
    """Fire *event* on *fsm* and return the resulting state value.

    Raises:
        InvalidTransitionError: If *event* is not allowed from the current state.
    """
    state = fsm.current_state_value
    try:
        fsm.send(event)
    except TransitionNotAllowed as exc:
        raise InvalidTransitionError(event, state) from exc
    return fsm.current_state_value
