#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Minimal publish/subscribe support.

Every subscription point in this package is a HandlerList. Subscribing returns a
Detachable whose detach() removes exactly that subscription.
"""

from __future__ import annotations

import asyncio
import inspect

from .internal_types import *
from .pkg_logging import logger

class Detachable:
    """A handle to a subscription. detach() may be called any number of times."""

    _on_detach: Optional[Callable[[], None]]

    def __init__(self, on_detach: Callable[[], None]):
        self._on_detach = on_detach

    @property
    def attached(self) -> bool:
        return self._on_detach is not None

    def detach(self) -> None:
        on_detach = self._on_detach
        self._on_detach = None
        if on_detach is not None:
            on_detach()

class HandlerList:
    """An ordered set of handlers that are all called with the same arguments.

    Handlers may be plain callables or coroutine functions. Coroutines are started as
    tasks on the running loop; a reference is held until they finish.
    """

    name: str
    handlers: Dict[int, Callable[..., Any]]
    """Registered handlers, indexed by ID number."""

    i_next_handler: int = 0
    """The next handler ID to assign."""

    _background_tasks: Set[asyncio.Task[Any]]

    def __init__(self, name: str):
        self.name = name
        self.handlers = {}
        self._background_tasks = set()

    def __len__(self) -> int:
        return len(self.handlers)

    def add(self, handler: Callable[..., Any]) -> Detachable:
        i = self.i_next_handler
        self.i_next_handler += 1
        self.handlers[i] = handler
        return Detachable(lambda: self.remove(i))

    def remove(self, i: int) -> None:
        self.handlers.pop(i, None)

    def clear(self) -> None:
        self.handlers.clear()

    def notify(self, *args: Any) -> None:
        for handler in list(self.handlers.values()):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._background_tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception as e:
                logger.warning(f"{self.name} handler raised exception: {e!r}")

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"{self.name} handler raised exception: {task.exception()!r}")
