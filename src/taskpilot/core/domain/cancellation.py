"""Run handles and helpers for racing awaitables against cancellation."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from taskpilot.core.domain.errors import CancelledError


@dataclass
class RunHandle:
    """
    Stop flag and cancellation token owned by one session run.

    The stop flag is checked before the next task or tool call is
    dispatched; the event aborts whatever call is in flight.
    """

    session_id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    stop_requested: bool = False
    task: Optional[asyncio.Task] = None

    def request_stop(self) -> None:
        self.stop_requested = True
        self.cancel_event.set()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


async def run_cancellable(
    awaitable: Awaitable[Any],
    cancel_event: Optional[asyncio.Event],
    message: str = "Operation cancelled",
) -> Any:
    """
    Await ``awaitable`` unless ``cancel_event`` is set first.

    Raises:
        CancelledError: If the event was set before the awaitable finished.
            The awaitable's task is cancelled.
    """
    task = asyncio.ensure_future(awaitable)
    if cancel_event is None:
        return await task
    if cancel_event.is_set():
        task.cancel()
        raise CancelledError(message)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise CancelledError(message)
