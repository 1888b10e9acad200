"""Bridges between asyncio coroutines and reactivex observables.

``defer_task()`` turns a coroutine factory into a single-value observable
whose disposal cancels the underlying task, which is what ``switch_map``
needs to actually abandon a superseded catalog query.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import reactivex as rx
from reactivex import Observable
from reactivex.disposable import Disposable


def defer_task(
    coro_factory: Callable[[], Awaitable[Any]],
    loop: asyncio.AbstractEventLoop | None = None,
) -> Observable:
    """Wrap a coroutine factory as a cancellable observable.

    Each subscription schedules a new task from ``coro_factory()``. The task
    result is emitted once followed by completion; an exception raised by
    the coroutine is forwarded as ``on_error``. Disposing the subscription
    cancels a task that is still running, and a cancelled task emits
    nothing.

    Args:
        coro_factory: Zero-argument callable returning an awaitable.
        loop: Event loop to schedule on. Defaults to the running loop at
            subscription time.

    Returns:
        Observable emitting the awaited value.
    """

    def subscribe(observer, scheduler=None):
        task_loop = loop or asyncio.get_running_loop()
        task = task_loop.create_task(coro_factory())

        def on_done(t: asyncio.Task) -> None:
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                observer.on_error(exc)
                return
            observer.on_next(t.result())
            observer.on_completed()

        task.add_done_callback(on_done)

        def cancel() -> None:
            if not task.done():
                task.cancel()

        return Disposable(cancel)

    return rx.create(subscribe)
