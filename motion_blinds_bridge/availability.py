#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Availability -- a liveness flag with an optional inactivity timeout.

Subscribers are told about changes of the boolean flag only. The most recent error
is always recorded, whether or not the flag changed.
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .events import Detachable, HandlerList

AvailabilityError = Union[str, BaseException, None]
AvailabilityHandler = Callable[[bool, AvailabilityError], Any]
"""Called with (available, error) whenever availability flips."""

class Availability:
    _available: bool
    _error: AvailabilityError = None

    timeout: Optional[float] = None
    """If not None, the number of seconds after which the instance becomes unavailable
       unless set_available(True) is called again."""

    _timer: Optional[asyncio.TimerHandle] = None
    _handlers: HandlerList
    _bindings: List[Detachable]
    _closed: bool = False

    def __init__(self, available: bool, timeout: Optional[float]=None):
        self._available = available
        self.timeout = timeout
        self._handlers = HandlerList("availability")
        self._bindings = []
        if available:
            self._arm_timer()

    @property
    def available(self) -> bool:
        return self._available

    @property
    def error(self) -> AvailabilityError:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    def _arm_timer(self) -> None:
        if self.timeout:
            self._timer = asyncio.get_running_loop().call_later(self.timeout, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        self.set_available(False, f"no message received for {self.timeout:g}s")

    def set_available(self, available: bool, error: AvailabilityError=None) -> None:
        self._cancel_timer()
        if available:
            self._arm_timer()
        changed = self._available != available
        self._available = available
        self._error = error
        if changed:
            self._handlers.notify(available, error)

    def on_change(self, handler: AvailabilityHandler) -> Detachable:
        return self._handlers.add(handler)

    def bind_to(self, other: Availability) -> Detachable:
        """Mirrors other's current and future state. Detaching stops the mirroring."""
        self.set_available(other.available, other.error)
        binding = other.on_change(self.set_available)
        self._bindings.append(binding)
        return binding

    def close(self) -> None:
        if self._closed:
            return
        self.set_available(False, "closed")
        for binding in self._bindings:
            binding.detach()
        self._bindings.clear()
        self._cancel_timer()
        self._handlers.clear()
        self._closed = True

    def __str__(self) -> str:
        return f"Availability(available={self._available}, error={self._error!r})"

    def __repr__(self) -> str:
        return str(self)
