#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Message and type definitions for the MOTION bridge JSON-over-UDP protocol.

Requests are sent as JSON objects to the bridge on UDP port 32100 and answered with a
"<msgType>Ack" message to the sending socket:

    {"msgType": "GetDeviceList", "msgID": "20200321134209916"}
    {"msgType": "ReadDevice", "msgID": ..., "mac": ..., "deviceType": ...}
    {"msgType": "WriteDevice", "msgID": ..., "mac": ..., "deviceType": ...,
     "AccessToken": ..., "data": {"operation": 1, "targetPosition": 40}}

The bridge multicasts "Heartbeat" and "Report" notifications to 238.0.0.18:32101.
"""

from __future__ import annotations

import json
import math
from enum import Enum, IntEnum

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .constants import DEVICE_TYPE_BRIDGE
from .exceptions import AuthPreconditionError, MotionProtocolError, WriteValidationError

RawDeviceRecord = JsonableDict
"""A device as returned by ReadDevice/WriteDevice/Report: {"mac", "deviceType", "data": {...}}.
   Never modified after it is received."""

DeviceUpdate = JsonableDict
"""The "data" of a WriteDevice request: {"operation"?: int, "targetPosition"?: int}."""

class MessageType(str, Enum):
    GET_DEVICE_LIST = "GetDeviceList"
    GET_DEVICE_LIST_ACK = "GetDeviceListAck"
    READ_DEVICE = "ReadDevice"
    READ_DEVICE_ACK = "ReadDeviceAck"
    WRITE_DEVICE = "WriteDevice"
    WRITE_DEVICE_ACK = "WriteDeviceAck"
    HEARTBEAT = "Heartbeat"
    REPORT = "Report"

class BlindType(IntEnum):
    RollerBlind = 1
    VenetianBlind = 2
    RomanBlind = 3
    HoneycombBlind = 4
    ShangriLaBlind = 5
    RollerShutter = 6
    RollerGate = 7
    Awning = 8
    TopDownBottomUp = 9
    DayNightBlind = 10
    DimmingBlind = 11
    Curtain = 12
    CurtainLeft = 13
    CurtainRight = 14
    DoubleRoller = 17
    Switch = 43

class Operation(IntEnum):
    CLOSE_DOWN = 0
    OPEN_UP = 1
    STOP = 2
    STATUS_QUERY = 5

OPERATION_MIN = 0
OPERATION_MAX = 5

class VoltageMode(IntEnum):
    AC = 0
    DC = 1

class ChargingState(IntEnum):
    NO = 0
    YES = 1

class LimitsState(IntEnum):
    NO_LIMITS = 0
    TOP_LIMIT_DETECTED = 1
    BOTTOM_LIMIT_DETECTED = 2
    LIMITS_DETECTED = 3
    THIRD_LIMIT_DETECTED = 4

class WirelessMode(IntEnum):
    UNI_DIRECTIONAL = 0
    BI_DIRECTIONAL = 1
    BI_DIRECTIONAL_MECHANICAL_LIMITS = 2
    OTHER = 3

class HeartbeatState(IntEnum):
    WORKING = 1
    PAIRING = 2
    UPDATING = 3

DEVICE_NOT_EXIST = "device not exist"
"""The actionResult the bridge returns for an unknown mac. Treated as "not found", not as an error."""

def request_handle(response_type: Union[MessageType, str], mac: Optional[str]=None) -> str:
    """The key under which a request waits for its response.

    Directory listings are keyed by response type alone; per-device reads and writes by
    "<response type>:<mac>", so requests to different devices resolve independently.
    """
    response_type = MessageType(response_type).value
    return response_type if not mac else f"{response_type}:{mac}"

def response_handle(response: JsonableDict) -> str:
    msg_type = response['msgType']
    assert isinstance(msg_type, str)
    if msg_type == MessageType.GET_DEVICE_LIST_ACK.value:
        return msg_type
    mac = response.get('mac')
    return request_handle(msg_type, mac if isinstance(mac, str) else None)

def get_device_list_request() -> JsonableDict:
    return { 'msgType': MessageType.GET_DEVICE_LIST.value }

def read_device_request(mac: str, device_type: str) -> JsonableDict:
    return {
        'msgType': MessageType.READ_DEVICE.value,
        'mac': mac,
        'deviceType': device_type,
      }

def write_device_request(mac: str, device_type: str, access_token: str, data: DeviceUpdate) -> JsonableDict:
    return {
        'msgType': MessageType.WRITE_DEVICE.value,
        'mac': mac,
        'deviceType': device_type,
        'AccessToken': access_token,
        'data': data,
      }

def access_token(key: str, token: str) -> str:
    """Computes the AccessToken for a write: the session token encrypted with the
       bridge key (AES-128, ECB, no padding), as upper-case hex."""
    key_bytes = key.encode('utf-8')
    token_bytes = token.encode('utf-8')
    if len(token_bytes) % 16 != 0:
        raise AuthPreconditionError(f"Session token length must be a multiple of 16 bytes, got {len(token_bytes)}")
    encryptor = Cipher(algorithms.AES(key_bytes), modes.ECB()).encryptor()
    return (encryptor.update(token_bytes).hex().upper() +
            encryptor.finalize().hex().upper())

BatteryInfo = Tuple[float, int]
"""(voltage, percent)"""

def battery_info(battery_level: Union[int, float]) -> BatteryInfo:
    """Converts a raw battery level (hundredths of a volt) to (voltage, percent).

    The pack's cell count is inferred from the voltage:
        2 cells:  6.2V -  8.4V
        3 cells: 10.4V - 12.6V
        4 cells: 14.6V - 16.8V
    """
    voltage = battery_level / 100.0
    percent = 0.0
    if 0.0 < voltage <= 9.4:
        percent = (voltage - 6.2) / (8.4 - 6.2)
    elif 9.4 < voltage <= 13.6:
        percent = (voltage - 10.4) / (12.6 - 10.4)
    elif voltage > 13.6:
        percent = (voltage - 14.6) / (16.8 - 14.6)
    percent = bound(percent, 0.0, 1.0)
    return (voltage, int(math.floor(percent * 100 + 0.5)))

def bound(value: float, min_value: float, max_value: float) -> float:
    return min(max(min_value, value), max_value)

def validate_device_update(update: DeviceUpdate) -> None:
    target_position = update.get('targetPosition')
    if target_position is not None:
        if not isinstance(target_position, (int, float)) or not 0 <= target_position <= 100:
            raise WriteValidationError(f"Invalid targetPosition {target_position}")
    operation = update.get('operation')
    if operation is not None:
        if not isinstance(operation, int) or not OPERATION_MIN <= operation <= OPERATION_MAX:
            raise WriteValidationError(f"Invalid operation {operation}")

def parse_message(payload: bytes) -> JsonableDict:
    """Decodes a datagram into a protocol message. Raises MotionProtocolError if it is not a
       JSON object with a string msgType."""
    try:
        message = json.loads(payload.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise MotionProtocolError(f"Failed to JSON parse {len(payload)} byte message") from e
    if not isinstance(message, dict) or not isinstance(message.get('msgType'), str):
        raise MotionProtocolError(f"Failed to JSON parse {len(payload)} byte message")
    return message

def encode_message(message: JsonableDict) -> bytes:
    return json.dumps(message, separators=(',', ':')).encode('utf-8')

def device_key(device_type: str, mac: str) -> str:
    return f"{device_type}:{mac}"

def is_bridge(record: JsonableDict) -> bool:
    return record.get('deviceType') == DEVICE_TYPE_BRIDGE

