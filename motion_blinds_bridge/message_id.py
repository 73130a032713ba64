#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
MessageIdGenerator -- produces the msgID correlation values sent with every request.

A message ID is the local time formatted as YYYYMMDDHHmmssSSS (e.g. "20200321134209916").
IDs handed out by one generator are strictly increasing even if the clock stalls or moves
backwards.
"""

from __future__ import annotations

import datetime

from .internal_types import *

class MessageIdGenerator:
    _last_id: Optional[int] = None
    """The last ID returned by next(), or None if next() has not been called yet."""

    _clock: Callable[[], datetime.datetime]

    def __init__(self, clock: Optional[Callable[[], datetime.datetime]]=None):
        self._clock = datetime.datetime.now if clock is None else clock

    def next(self) -> str:
        now = self._clock()
        message_id_str = now.strftime('%Y%m%d%H%M%S') + f"{now.microsecond // 1000:03d}"
        message_id = int(message_id_str)
        if self._last_id is not None and message_id <= self._last_id:
            message_id = self._last_id + 1
            message_id_str = str(message_id)
        self._last_id = message_id
        return message_id_str
