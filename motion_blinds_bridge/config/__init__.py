from .base import Config
from .context import ConfigContext
from .keyring_key import KeyringKeyConfig
from .bridge import BridgeConfig, DeviceConfig, PlatformConfig, normalize_mac
