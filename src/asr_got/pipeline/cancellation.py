from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..errors import StageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How long an abandoned phase task gets to unwind after cancellation.
UNWIND_GRACE_S = 1.0


class CancellationToken:
    """One-way flag shared between a phase task and its store writer session."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    async def checkpoint(self) -> None:
        """Yield to the loop; abort the calling phase if it has been abandoned."""
        if self._cancelled:
            raise asyncio.CancelledError()
        await asyncio.sleep(0)
        if self._cancelled:
            raise asyncio.CancelledError()


def _consume(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned phase task ended with %r", task.exception())


async def run_cancellable(
    factory: Callable[[], Awaitable[T]],
    token: CancellationToken,
    timeout_s: float,
    *,
    stage: int,
) -> T:
    """Run ``factory()`` as a task bounded by ``timeout_s``.

    On timeout the token is cancelled before the task, so any write the task
    attempts while unwinding is rejected by its writer session. Raises
    :class:`StageTimeoutError`.
    """
    task = asyncio.ensure_future(factory())
    done, _ = await asyncio.wait({task}, timeout=timeout_s)
    if task in done:
        return task.result()

    token.cancel()
    task.cancel()
    await asyncio.wait({task}, timeout=UNWIND_GRACE_S)
    if task.done():
        _consume(task)
    else:
        logger.warning("Stage %d task did not unwind within %.1fs", stage, UNWIND_GRACE_S)
        task.add_done_callback(_consume)
    raise StageTimeoutError(stage, timeout_s)
