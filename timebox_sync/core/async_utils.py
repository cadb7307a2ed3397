"""Async helpers shared by the synchronization engine.

Single-threaded cooperative model: everything here runs on one event loop and
relies on task cancellation rather than locks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Cancellable delayed task that coalesces bursts of triggers into one call.

    Each ``trigger()`` resets the quiet-period timer. When the timer expires the
    callback runs once with the arguments of the most recent trigger. ``cancel()``
    must be called on teardown so no timer fires after shutdown.
    """

    def __init__(self, callback: Callable[..., Awaitable[Any]], delay_seconds: float) -> None:
        self._callback = callback
        self._delay = max(0.0, float(delay_seconds))
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pending(self) -> bool:
        """True while a delayed call is scheduled and has not started yet."""
        return self._task is not None and not self._task.done()

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        """Schedule the callback after the quiet period, replacing any pending call."""
        if self._closed:
            logger.debug("Debouncer closed, ignoring trigger")
            return
        self._cancel_pending()
        self._task = asyncio.get_running_loop().create_task(self._run_later(args, kwargs))

    async def _run_later(self, args: tuple, kwargs: dict) -> None:
        await asyncio.sleep(self._delay)
        # Detach before running so a trigger from inside the callback schedules a new call
        self._task = None
        try:
            await self._callback(*args, **kwargs)
        except Exception:
            logger.exception("Debounced callback failed")

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def cancel(self) -> None:
        """Cancel any pending call and refuse further triggers."""
        self._closed = True
        task = self._task
        self._cancel_pending()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def gather_settled(*aws: Awaitable[Any]) -> list[Any]:
    """Await all awaitables, returning results and exceptions in order.

    Never short-circuits on the first failure.
    """
    if not aws:
        return []
    return list(await asyncio.gather(*aws, return_exceptions=True))
