# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration of MOTION bridges and the blinds behind them.

A bridge configuration looks like:

    {
      "ip": "192.168.1.20",
      "key": "${env:MOTION_KEY}",
      "name": "Living room",
      "poll_interval": 120,
      "device_defaults": { "stop_button": true },
      "devices": [
        { "mac": "f0a8b1c2d3e40001", "name": "Left window", "invert_open_close": true }
      ]
    }

"key" may be replaced by "key_cfg", which locates the key in the OS keyring (see KeyringKeyConfig).
"devices" may also be a mapping from mac to device settings.
"""

from typing import Optional, Dict, List
from ..internal_types import JsonableDict

from ..exceptions import ConfigurationError
from .base import Config
from .keyring_key import KeyringKeyConfig

KEY_LENGTH = 16
"""The bridge key is used as an AES-128 key, so it must be exactly 16 characters."""

def normalize_mac(mac: str) -> str:
  return mac.strip().lower()

class DeviceConfig(Config):
  _name: Optional[str] = None
  _stop_button: bool = False
  _invert_open_close: bool = False

  def bake(self):
    super().bake()
    self._name = self.get_cfg_property_str('name', None)
    self._stop_button = self.get_cfg_property_bool('stop_button', False)
    self._invert_open_close = self.get_cfg_property_bool('invert_open_close', False)

  @property
  def name(self) -> Optional[str]:
    return self._name

  @property
  def stop_button(self) -> bool:
    """Expose a "stop" control for the blind."""
    return self._stop_button

  @property
  def invert_open_close(self) -> bool:
    """Swap open and close, for blinds mounted the other way around."""
    return self._invert_open_close

class BridgeConfig(Config):
  _ip: Optional[str] = None
  _key: Optional[str] = None
  _key_cfg: Optional[KeyringKeyConfig] = None
  _id: Optional[str] = None
  _name: Optional[str] = None
  _multicast_interface: Optional[str] = None
  _poll_interval: Optional[float] = None
  _device_defaults: JsonableDict
  _devices: Dict[str, JsonableDict]

  def __init__(self):
    super().__init__()
    self._device_defaults = {}
    self._devices = {}

  def bake(self):
    super().bake()
    self._ip = self.get_cfg_property_str('ip')
    if self._ip == '':
      raise ConfigurationError("BridgeConfig: [ip] must not be empty")

    key = self.get_cfg_property_str('key', None)
    key_cfg_data = self.get_cfg_property_dict('key_cfg', None)
    if key is None and key_cfg_data is None:
      raise ConfigurationError("BridgeConfig: Missing [key] setting")
    if not key is None:
      self._key = self._validate_key(key)
    else:
      assert not key_cfg_data is None
      self._key_cfg = KeyringKeyConfig.from_section(self, key_cfg_data)

    self._id = self.get_cfg_property_str('id', self._ip)
    self._name = self.get_cfg_property_str('name', None)
    self._multicast_interface = self.get_cfg_property_str('multicast_interface', None)
    self._poll_interval = self.get_cfg_property_float('poll_interval', None)
    if not self._poll_interval is None and self._poll_interval <= 0:
      raise ConfigurationError(f"BridgeConfig: [poll_interval] must be positive, got {self._poll_interval}")

    self._device_defaults = self.get_cfg_property_dict('device_defaults', {})
    self._devices = self._bake_devices()

  def _bake_devices(self) -> Dict[str, JsonableDict]:
    devices_data = self.get_cfg_property('devices', None)
    result: Dict[str, JsonableDict] = {}
    if devices_data is None:
      pass
    elif isinstance(devices_data, list):
      for device_data in devices_data:
        if not isinstance(device_data, dict) or not isinstance(device_data.get('mac'), str):
          raise ConfigurationError(f"BridgeConfig: each entry in [devices] needs a \"mac\" string, got {device_data!r}")
        device_data = dict(device_data)
        mac = normalize_mac(device_data.pop('mac'))
        result[mac] = device_data
    elif isinstance(devices_data, dict):
      for mac, device_data in devices_data.items():
        if not isinstance(device_data, dict):
          raise ConfigurationError(f"BridgeConfig: settings for device {mac} must be an object, got {device_data!r}")
        result[normalize_mac(mac)] = dict(device_data)
    else:
      raise ConfigurationError(f"BridgeConfig: [devices] must be a list or an object, got {type(devices_data).__name__}")
    return result

  @staticmethod
  def _validate_key(key: str) -> str:
    if len(key) != KEY_LENGTH:
      raise ConfigurationError(f"BridgeConfig: [key] must be {KEY_LENGTH} characters, got {len(key)}")
    return key

  @property
  def ip(self) -> str:
    assert not self._ip is None
    return self._ip

  @property
  def id(self) -> str:
    assert not self._id is None
    return self._id

  @property
  def name(self) -> str:
    return self._name or self.id

  @property
  def key(self) -> str:
    """The bridge key. Read from the keyring on every access when configured with key_cfg."""
    if self._key is None:
      assert not self._key_cfg is None
      return self._validate_key(self._key_cfg.get_key())
    return self._key

  @property
  def key_cfg(self) -> Optional[KeyringKeyConfig]:
    return self._key_cfg

  @property
  def multicast_interface(self) -> Optional[str]:
    return self._multicast_interface

  @property
  def poll_interval(self) -> Optional[float]:
    return self._poll_interval

  @property
  def device_macs(self) -> List[str]:
    return list(self._devices.keys())

  def device_config(self, mac: str) -> DeviceConfig:
    """Returns the settings for one device, with device_defaults filled in for anything
       the device does not set itself."""
    data: JsonableDict = dict(self._device_defaults)
    data.update(self._devices.get(normalize_mac(mac), {}))
    return DeviceConfig.from_section(self, data)

class PlatformConfig(Config):
  """A set of bridges: {"bridges": [ <BridgeConfig>, ... ]}"""
  _bridges: List[BridgeConfig]

  def __init__(self):
    super().__init__()
    self._bridges = []

  def bake(self):
    super().bake()
    bridges: List[BridgeConfig] = []
    for bridge_data in self.get_cfg_property_list('bridges', []):
      if not isinstance(bridge_data, dict):
        raise ConfigurationError(f"PlatformConfig: each entry in [bridges] must be an object, got {bridge_data!r}")
      bridges.append(BridgeConfig.from_section(self, bridge_data))
    ids = [ b.id for b in bridges ]
    duplicates = sorted(set(x for x in ids if ids.count(x) > 1))
    if len(duplicates) > 0:
      raise ConfigurationError(f"PlatformConfig: duplicate bridge ids: {', '.join(duplicates)}")
    self._bridges = bridges

  @property
  def bridges(self) -> List[BridgeConfig]:
    return list(self._bridges)

  def get_bridge(self, id_or_name: str) -> BridgeConfig:
    for bridge in self._bridges:
      if bridge.id == id_or_name:
        return bridge
    for bridge in self._bridges:
      if bridge.name == id_or_name:
        return bridge
    raise ConfigurationError(f"PlatformConfig: no bridge with id or name '{id_or_name}'")
