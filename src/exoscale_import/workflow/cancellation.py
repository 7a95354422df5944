"""Cooperative cancellation helpers.

The caller cancels an import by setting an :class:`asyncio.Event`. Steps
race every remote call against that event so an in-flight call is cancelled
as soon as the event fires.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from ..observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class StepCancelled(Exception):
    """Raised inside a step when the cancel event fired first."""


async def run_cancellable(aw: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await *aw* unless *cancel* fires first.

    When the event wins, the pending call is cancelled and
    :class:`StepCancelled` is raised once it has unwound. A call backed by a
    worker thread unwinds only after that thread has finished.
    """
    if cancel is None:
        return await aw
    if cancel.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise StepCancelled()

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        waiter.cancel()
        await _cancel_and_settle(task)
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    await _cancel_and_settle(task)
    raise StepCancelled()


async def _cancel_and_settle(task: asyncio.Future) -> None:
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.debug('cancelled_call_failed', error=str(task.exception()))


async def wait_cancellable(cancel: asyncio.Event | None, timeout: float) -> bool:
    """Block for up to *timeout* seconds; return True if cancelled meanwhile."""
    if cancel is None:
        await asyncio.sleep(timeout)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout)
    except asyncio.TimeoutError:
        return False
    return True
