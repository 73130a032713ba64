"""
Unit tests for configuration loading
"""
import json
from unittest.mock import patch

import pytest

from motion_blinds_bridge import ConfigurationError
from motion_blinds_bridge.config import (
    BridgeConfig,
    ConfigContext,
    KeyringKeyConfig,
    PlatformConfig,
)

KEY = "abcdef12-3456-78"


class TestBridgeConfig:
    """Test BridgeConfig validation and defaults"""

    def test_minimal(self):
        cfg = BridgeConfig.from_json_data({"ip": "192.168.1.20", "key": KEY})
        assert cfg.ip == "192.168.1.20"
        assert cfg.key == KEY
        assert cfg.id == "192.168.1.20"
        assert cfg.name == "192.168.1.20"
        assert cfg.multicast_interface is None
        assert cfg.poll_interval is None
        assert cfg.device_macs == []

    def test_full(self):
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key": KEY,
            "id": "living-room",
            "name": "Living room",
            "multicast_interface": "eth0",
            "poll_interval": 120,
        })
        assert cfg.id == "living-room"
        assert cfg.name == "Living room"
        assert cfg.multicast_interface == "eth0"
        assert cfg.poll_interval == 120.0

    @pytest.mark.parametrize("data, match", [
        ({"key": KEY}, r"\[ip\]"),
        ({"ip": "", "key": KEY}, r"\[ip\]"),
        ({"ip": "192.168.1.20"}, r"\[key\]"),
        ({"ip": "192.168.1.20", "key": "too-short"}, "16 characters"),
        ({"ip": 17, "key": KEY}, "str"),
        ({"ip": "192.168.1.20", "key": KEY, "poll_interval": 0}, "positive"),
        ({"ip": "192.168.1.20", "key": KEY, "poll_interval": "often"}, "number"),
        ({"ip": "192.168.1.20", "key": KEY, "devices": "all"}, "list or an object"),
        ({"ip": "192.168.1.20", "key": KEY, "devices": [{"name": "no mac"}]}, "mac"),
    ])
    def test_invalid(self, data, match):
        with pytest.raises(ConfigurationError, match=match):
            BridgeConfig.from_json_data(data)

    def test_devices_list_and_defaults(self):
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key": KEY,
            "device_defaults": {"stop_button": True},
            "devices": [
                {"mac": "F0A8B1C2D3E40001", "name": "Left", "invert_open_close": True},
                {"mac": "f0a8b1c2d3e40002", "stop_button": False},
            ],
        })
        assert sorted(cfg.device_macs) == ["f0a8b1c2d3e40001", "f0a8b1c2d3e40002"]

        left = cfg.device_config("f0a8b1c2d3e40001")
        assert left.name == "Left"
        assert left.stop_button is True
        assert left.invert_open_close is True

        right = cfg.device_config("f0a8b1c2d3e40002")
        assert right.name is None
        assert right.stop_button is False

        other = cfg.device_config("ffffffffffff0000")
        assert other.name is None
        assert other.stop_button is True
        assert other.invert_open_close is False

    def test_devices_mapping(self):
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key": KEY,
            "devices": {"f0a8b1c2d3e40001": {"name": "Left"}},
        })
        assert cfg.device_config("F0A8B1C2D3E40001").name == "Left"


class TestTemplates:
    """Test ${env:NAME} substitution"""

    def test_key_from_environment(self):
        ctx = ConfigContext(os_environ={"MOTION_KEY": KEY})
        cfg = BridgeConfig.from_json_data({"ip": "192.168.1.20", "key": "${env:MOTION_KEY}"}, ctx)
        assert cfg.key == KEY

    def test_globals(self):
        ctx = ConfigContext(globals={"subnet": "192.168.1"}, os_environ={})
        cfg = BridgeConfig.from_json_data({"ip": "${subnet}.20", "key": KEY}, ctx)
        assert cfg.ip == "192.168.1.20"

    def test_undefined_variable(self):
        ctx = ConfigContext(os_environ={})
        with pytest.raises(ConfigurationError, match="MOTION_KEY"):
            BridgeConfig.from_json_data({"ip": "192.168.1.20", "key": "${env:MOTION_KEY}"}, ctx)

    def test_section_is_rendered_once(self):
        ctx = ConfigContext(os_environ={})
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key": KEY,
            "devices": [{"mac": "f0a8b1c2d3e40001", "name": "Costs $$5"}],
        }, ctx)
        assert cfg.device_config("f0a8b1c2d3e40001").name == "Costs $5"


class TestFiles:
    """Test loading from files"""

    def test_from_file(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"ip": "192.168.1.20", "key": KEY, "name": "${config_dir}"}))

        cfg = BridgeConfig.from_file(str(path))

        assert cfg.config_file == str(path)
        assert cfg.config_dir == str(tmp_path)
        assert cfg.name == str(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="unable to read"):
            BridgeConfig.from_file(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text("{ not json")
        with pytest.raises(ConfigurationError, match="invalid JSON"):
            BridgeConfig.from_file(str(path))


class TestKeyring:
    """Test reading the bridge key from the OS keyring"""

    def test_key_from_keyring(self):
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key_cfg": {"service": "motion-blinds", "username": "living-room"},
        })
        assert isinstance(cfg.key_cfg, KeyringKeyConfig)

        with patch("keyring.get_password", return_value=KEY) as get_password:
            assert cfg.key == KEY
        get_password.assert_called_once_with("motion-blinds", "living-room")

    def test_missing_keyring_entry(self):
        cfg = BridgeConfig.from_json_data({
            "ip": "192.168.1.20",
            "key_cfg": {"service": "motion-blinds", "username": "living-room"},
        })
        with patch("keyring.get_password", return_value=None):
            with pytest.raises(ConfigurationError, match="does not exist"):
                cfg.key
            assert cfg.key_cfg.key_exists() is False

    def test_keyring_config_requires_username(self):
        with pytest.raises(ConfigurationError, match=r"\[username\]"):
            BridgeConfig.from_json_data({
                "ip": "192.168.1.20",
                "key_cfg": {"service": "motion-blinds"},
            })


class TestPlatformConfig:
    """Test configurations with several bridges"""

    def test_bridges(self):
        cfg = PlatformConfig.from_json_data({
            "bridges": [
                {"ip": "192.168.1.20", "key": KEY, "name": "Living room"},
                {"ip": "192.168.1.21", "key": KEY, "id": "bedroom"},
            ]
        })
        assert [b.id for b in cfg.bridges] == ["192.168.1.20", "bedroom"]
        assert cfg.get_bridge("bedroom").ip == "192.168.1.21"
        assert cfg.get_bridge("Living room").ip == "192.168.1.20"
        with pytest.raises(ConfigurationError):
            cfg.get_bridge("attic")

    def test_duplicate_ids(self):
        with pytest.raises(ConfigurationError, match="duplicate"):
            PlatformConfig.from_json_data({
                "bridges": [
                    {"ip": "192.168.1.20", "key": KEY},
                    {"ip": "192.168.1.20", "key": KEY},
                ]
            })

    def test_empty(self):
        assert PlatformConfig.from_json_data({}).bridges == []
