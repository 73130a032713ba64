
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package motion_blinds_bridge talks to MOTION motorized blind bridges.

A MOTION bridge (sold under several brands) coordinates a number of radio-controlled
blinds and speaks a JSON-over-UDP protocol on the local network. Requests are sent by
unicast to the bridge and answered to the sender; the bridge also multicasts periodic
heartbeats and unsolicited device reports.

MotionClient implements the protocol: request/response correlation with retries, heartbeat
monitoring, reconnection and authenticated writes. MotionBridge builds on it with a domain
view of the blinds, a device cache and periodic polling.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict

from .exceptions import (
    MotionError,
    ConfigurationError,
    ProtocolVersionMismatchError,
    MotionTimeoutError,
    MotionSocketError,
    NotConnectedError,
    MotionProtocolError,
    MotionRequestError,
    WriteValidationError,
    AuthPreconditionError,
  )
from .constants import MULTICAST_IP, UDP_PORT_SEND, UDP_PORT_RECEIVE, PROTOCOL_VERSION
from .message_id import MessageIdGenerator
from .events import Detachable
from .availability import Availability
from .api import MessageType, BlindType, Operation, access_token, battery_info
from .client import MotionClient, ClientState
from .devices import MotionDevice, DeviceState, WriteState, DeviceStateChange, UpdateType
from .bridge import MotionBridge
from .config import ConfigContext, BridgeConfig, DeviceConfig, PlatformConfig, KeyringKeyConfig

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict',
    'MotionError', 'ConfigurationError', 'ProtocolVersionMismatchError', 'MotionTimeoutError',
    'MotionSocketError', 'NotConnectedError', 'MotionProtocolError', 'MotionRequestError',
    'WriteValidationError', 'AuthPreconditionError',
    'MULTICAST_IP', 'UDP_PORT_SEND', 'UDP_PORT_RECEIVE', 'PROTOCOL_VERSION',
    'MessageIdGenerator',
    'Detachable',
    'Availability',
    'MessageType', 'BlindType', 'Operation', 'access_token', 'battery_info',
    'MotionClient', 'ClientState',
    'MotionDevice', 'DeviceState', 'WriteState', 'DeviceStateChange', 'UpdateType',
    'MotionBridge',
    'ConfigContext', 'BridgeConfig', 'DeviceConfig', 'PlatformConfig', 'KeyringKeyConfig',
]
