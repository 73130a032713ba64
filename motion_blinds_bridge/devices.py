#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Domain model of the devices behind a MOTION bridge, and the mapping from raw protocol
records to it.

Only roller blinds are supported; other blind types are left out by MotionBridge.
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .constants import MANUFACTURER
from .api import (
    RawDeviceRecord,
    DeviceUpdate,
    BlindType,
    Operation,
    VoltageMode,
    battery_info,
    bound,
  )

DEVICE_TYPE_BLINDS = "blinds"

OPERATION_OPEN = "open"
OPERATION_CLOSE = "close"
OPERATION_STOP = "stop"
OPERATION_UNKNOWN = "unknown"

OPERATIONS = (OPERATION_OPEN, OPERATION_CLOSE, OPERATION_STOP, OPERATION_UNKNOWN)

_OPERATION_NAMES: Dict[int, str] = {
    Operation.OPEN_UP: OPERATION_OPEN,
    Operation.CLOSE_DOWN: OPERATION_CLOSE,
    Operation.STOP: OPERATION_STOP,
}

_OPERATION_CODES: Dict[str, Operation] = { name: Operation(code) for code, name in _OPERATION_NAMES.items() }

class UpdateType(Enum):
    """Where a device update came from. Consumers use it to decide whether an update may be
       stale with respect to a write they issued themselves."""

    REPORT = "report"
    """Pushed by the bridge when a device changed; always current."""

    POLL = "poll"
    """Fetched by the periodic poll; may predate a write still in progress."""

    FORCE = "force"
    """Fetched by an explicit reconciliation sweep; always applied."""

class WriteState:
    """The writable part of a device's state."""

    operation: Optional[str]
    position: Optional[int]

    def __init__(self, operation: Optional[str]=None, position: Optional[int]=None):
        self.operation = operation
        self.position = position

    def __eq__(self, other: object) -> bool:
        return isinstance(other, WriteState) and (self.operation, self.position) == (other.operation, other.position)

    def __str__(self) -> str:
        return f"WriteState(operation={self.operation!r}, position={self.position!r})"

    def __repr__(self) -> str:
        return str(self)

class DeviceState:
    operation: str
    """One of "open", "close", "stop", "unknown"."""

    position: int
    """0 (closed) - 100 (open)."""

    battery_level: Optional[int] = None
    """Battery charge in percent. Only DC motors have a battery."""

    charging: Optional[bool] = None

    signal_strength: Optional[int] = None
    """RSSI, passed through from the bridge."""

    def __init__(
            self,
            operation: str=OPERATION_UNKNOWN,
            position: int=0,
            battery_level: Optional[int]=None,
            charging: Optional[bool]=None,
            signal_strength: Optional[int]=None,
          ):
        self.operation = operation
        self.position = position
        self.battery_level = battery_level
        self.charging = charging
        self.signal_strength = signal_strength

    def copy(self) -> DeviceState:
        return DeviceState(self.operation, self.position, self.battery_level, self.charging, self.signal_strength)

    def to_jsonable(self) -> JsonableDict:
        result: JsonableDict = { 'operation': self.operation, 'position': self.position }
        if self.battery_level is not None:
            result['batteryLevel'] = self.battery_level
        if self.charging is not None:
            result['charging'] = self.charging
        if self.signal_strength is not None:
            result['signalStrength'] = self.signal_strength
        return result

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DeviceState) and self.to_jsonable() == other.to_jsonable()

    def __str__(self) -> str:
        return f"DeviceState({self.to_jsonable()})"

    def __repr__(self) -> str:
        return str(self)

class MotionDevice:
    id: str
    """The device's mac address."""

    type: str
    name: str
    mac: str
    manufacturer: str
    model: str
    state: DeviceState

    def __init__(self, mac: str, name: str, model: str, state: DeviceState, manufacturer: str=MANUFACTURER):
        self.id = mac
        self.type = DEVICE_TYPE_BLINDS
        self.name = name
        self.mac = mac
        self.manufacturer = manufacturer
        self.model = model
        self.state = state

    def to_jsonable(self) -> JsonableDict:
        return {
            'id': self.id,
            'type': self.type,
            'name': self.name,
            'mac': self.mac,
            'manufacturer': self.manufacturer,
            'model': self.model,
            'state': self.state.to_jsonable(),
          }

    def __str__(self) -> str:
        return f"MotionDevice({self.name}, mac={self.mac}, {self.state})"

    def __repr__(self) -> str:
        return str(self)

class DeviceStateChange:
    device_id: str
    state: DeviceState

    def __init__(self, device_id: str, state: DeviceState):
        self.device_id = device_id
        self.state = state

    def to_jsonable(self) -> JsonableDict:
        return { 'deviceId': self.device_id, 'state': self.state.to_jsonable() }

    def __str__(self) -> str:
        return f"DeviceStateChange({self.device_id}, {self.state})"

    def __repr__(self) -> str:
        return str(self)

DeviceUpdateHandler = Callable[[DeviceStateChange, UpdateType], Any]

def _data(record: RawDeviceRecord) -> JsonableDict:
    data = record.get('data')
    return data if isinstance(data, dict) else {}

def blind_type(record: RawDeviceRecord) -> Optional[BlindType]:
    try:
        return BlindType(_data(record).get('type'))
    except ValueError:
        return None

def is_roller_blind(record: RawDeviceRecord) -> bool:
    return blind_type(record) == BlindType.RollerBlind

def operation_name(code: Any) -> str:
    if isinstance(code, int):
        return _OPERATION_NAMES.get(code, OPERATION_UNKNOWN)
    return OPERATION_UNKNOWN

def to_state(record: RawDeviceRecord) -> DeviceState:
    data = _data(record)
    position = data.get('currentPosition')
    state = DeviceState(
        operation=operation_name(data.get('operation')),
        position=int(bound(position, 0, 100)) if isinstance(position, (int, float)) else 0,
      )
    if data.get('voltageMode') == VoltageMode.DC:
        battery_level = data.get('batteryLevel')
        if isinstance(battery_level, (int, float)):
            state.battery_level = battery_info(battery_level)[1]
        charging_state = data.get('chargingState')
        if charging_state is not None:
            state.charging = bool(charging_state)
    rssi = data.get('RSSI')
    if isinstance(rssi, (int, float)):
        state.signal_strength = int(rssi)
    return state

def to_device(record: RawDeviceRecord, name: Optional[str]=None) -> MotionDevice:
    mac = str(record.get('mac'))
    t = blind_type(record)
    model = t.name if t is not None else str(_data(record).get('type'))
    return MotionDevice(mac=mac, name=name or mac, model=model, state=to_state(record))

def to_device_update(write_state: WriteState) -> DeviceUpdate:
    update: DeviceUpdate = {}
    if write_state.operation is not None:
        code = _OPERATION_CODES.get(write_state.operation)
        if code is not None:
            update['operation'] = code.value
    if write_state.position is not None:
        update['targetPosition'] = write_state.position
    return update

def to_state_change(record: RawDeviceRecord) -> DeviceStateChange:
    return DeviceStateChange(str(record.get('mac')), to_state(record))
