#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Scheduler -- owns the delayed callbacks and background tasks of one component so that
all of them can be cancelled at once when the component is closed.
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .pkg_logging import logger

class Scheduler:
    name: str
    _timers: Set[asyncio.TimerHandle]
    _tasks: Set[asyncio.Task[Any]]

    def __init__(self, name: str):
        self.name = name
        self._timers = set()
        self._tasks = set()

    @property
    def pending_count(self) -> int:
        return len(self._timers) + len(self._tasks)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        """Schedules callback(*args) after delay seconds. The returned handle may be passed to cancel()."""
        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            assert handle is not None
            self._timers.discard(handle)
            callback(*args)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)
        return handle

    def cancel(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()
            self._timers.discard(handle)

    def create_task(self, coro: Awaitable[Any], name: Optional[str]=None) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        if name is not None:
            task.set_name(f"{self.name}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"{self.name}: background task {task.get_name()} failed: {task.exception()!r}")

    def cancel_all(self) -> None:
        """Cancels every outstanding timer and task. Safe to call from synchronous code."""
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        current = asyncio.current_task() if _loop_running() else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def aclose(self) -> None:
        """Cancels everything and waits for the cancelled tasks to finish."""
        self.cancel_all()
        current = asyncio.current_task()
        tasks = [ task for task in self._tasks if task is not current ]
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"{self.name}: task {task.get_name()} exited with {e!r}")

def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
