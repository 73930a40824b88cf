"""Event-loop timers owned by the objects that arm them.

Both timers run on the current asyncio loop and hold strong references to
their tasks; ``cancel``/``stop`` is idempotent, so owners can call it from
``dispose``/``close`` unconditionally.

- :class:`DebounceTimer`: one-shot, re-arming supersedes the pending shot
- :class:`PeriodicTimer`: fixed or dynamically computed interval
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from docsafe.core.logging import get_logger

logger = get_logger(__name__)

AsyncCallback = Callable[[], Awaitable[Any]]


class DebounceTimer:
    """Fire ``callback`` once after the most recent :meth:`arm` has been quiet for ``delay``.

    Cancelling only affects a shot that is still waiting; a callback that has
    already started runs to completion.
    """

    def __init__(self, callback: AsyncCallback, *, name: str = "debounce") -> None:
        self._callback = callback
        self.name = name
        self._waiting: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def armed(self) -> bool:
        return self._waiting is not None and not self._waiting.done()

    def arm(self, delay: float) -> None:
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._run(delay))
        self._waiting = task
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def cancel(self) -> None:
        if self._waiting is not None:
            self._waiting.cancel()
            self._waiting = None

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._waiting is asyncio.current_task():
            self._waiting = None
        await self._callback()

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "timer.callback_failed",
                timer=self.name,
                error=str(task.exception()),
            )


class PeriodicTimer:
    """Call ``callback`` every ``interval`` seconds until stopped.

    ``interval`` may be a number or a zero-argument callable re-evaluated
    before every sleep, which lets owners adapt the period on the fly.
    A failing callback is logged and the timer keeps running.
    """

    def __init__(
        self,
        callback: AsyncCallback,
        interval: float | Callable[[], float],
        *,
        name: str = "periodic",
    ) -> None:
        self._callback = callback
        self._interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_interval(self) -> float:
        return self._interval() if callable(self._interval) else float(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.current_interval())
            try:
                await self._callback()
            except Exception:
                logger.exception("timer.callback_failed", timer=self.name)


__all__ = ["DebounceTimer", "PeriodicTimer"]
