"""
Unit tests for the protocol codec

Tests:
    - Battery curve
    - AccessToken derivation
    - Write validation
    - Message parsing and correlation handles
"""
import json

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from motion_blinds_bridge import AuthPreconditionError, MotionError, MotionProtocolError, WriteValidationError
from motion_blinds_bridge.api import (
    MessageType,
    access_token,
    battery_info,
    encode_message,
    parse_message,
    request_handle,
    response_handle,
    validate_device_update,
    write_device_request,
)


class TestBatteryInfo:
    """Test the voltage to percentage curve"""

    @pytest.mark.parametrize("level, percent", [
        (840, 100),
        (620, 0),
        (730, 50),
        (1260, 100),
        (1040, 0),
        (1680, 100),
        (1460, 0),
    ])
    def test_segment_end_points(self, level, percent):
        assert battery_info(level)[1] == percent

    def test_voltage(self):
        assert battery_info(1197)[0] == pytest.approx(11.97)

    @pytest.mark.parametrize("level", [0, 100, 600, 900, 1000, 1300, 1400, 2000, -50])
    def test_clamped(self, level):
        assert 0 <= battery_info(level)[1] <= 100

    def test_above_segment_clamps_to_full(self):
        assert battery_info(900)[1] == 100
        assert battery_info(1300)[1] == 100
        assert battery_info(2000)[1] == 100

    def test_below_segment_clamps_to_empty(self):
        assert battery_info(500)[1] == 0
        assert battery_info(1000)[1] == 0


class TestAccessToken:
    """Test AccessToken derivation"""

    def test_matches_aes_ecb_encryption(self):
        key = "abcdef12-3456-78"
        token = "0123456789ABCDEF"
        encryptor = Cipher(algorithms.AES(key.encode()), modes.ECB()).encryptor()
        expected = (encryptor.update(token.encode()) + encryptor.finalize()).hex().upper()

        result = access_token(key, token)

        assert result == expected
        assert len(result) == 32
        assert result == result.upper()

    def test_depends_on_token(self):
        key = "abcdef12-3456-78"
        assert access_token(key, "0123456789ABCDEF") != access_token(key, "FEDCBA9876543210")

    def test_unpadded_token_rejected(self):
        with pytest.raises(AuthPreconditionError, match="multiple of 16"):
            access_token("abcdef12-3456-78", "short")

    def test_unpadded_token_is_a_motion_error(self):
        with pytest.raises(MotionError):
            access_token("abcdef12-3456-78", "0123456789ABCDEF0")


class TestValidation:
    """Test local write validation"""

    @pytest.mark.parametrize("update", [
        {},
        {"targetPosition": 0},
        {"targetPosition": 100},
        {"operation": 0},
        {"operation": 5},
        {"operation": 1, "targetPosition": 40},
    ])
    def test_valid(self, update):
        validate_device_update(update)

    @pytest.mark.parametrize("update", [
        {"targetPosition": -1},
        {"targetPosition": 101},
        {"targetPosition": "50"},
        {"operation": -1},
        {"operation": 6},
        {"operation": "open"},
    ])
    def test_invalid(self, update):
        with pytest.raises(WriteValidationError):
            validate_device_update(update)


class TestMessages:
    """Test message encoding, parsing and handles"""

    def test_parse(self):
        message = parse_message(b'{"msgType": "Heartbeat", "token": "x"}')
        assert message == {"msgType": "Heartbeat", "token": "x"}

    @pytest.mark.parametrize("payload", [b"", b"{", b"[1, 2]", b'"Heartbeat"', b'{"msgType": 7}', b"\xff\xfe"])
    def test_parse_malformed(self, payload):
        with pytest.raises(MotionProtocolError):
            parse_message(payload)

    def test_encode_is_compact_json(self):
        data = encode_message({"msgType": "GetDeviceList", "msgID": "20200321134209916"})
        assert b" " not in data
        assert json.loads(data) == {"msgType": "GetDeviceList", "msgID": "20200321134209916"}

    def test_request_handles(self):
        assert request_handle(MessageType.GET_DEVICE_LIST_ACK) == "GetDeviceListAck"
        assert request_handle(MessageType.READ_DEVICE_ACK, "abc") == "ReadDeviceAck:abc"
        assert request_handle("WriteDeviceAck", "abc") == "WriteDeviceAck:abc"

    def test_response_handles(self):
        assert response_handle({"msgType": "GetDeviceListAck", "mac": "bridge"}) == "GetDeviceListAck"
        assert response_handle({"msgType": "ReadDeviceAck", "mac": "abc"}) == "ReadDeviceAck:abc"
        assert response_handle({"msgType": "WriteDeviceAck", "mac": "abc"}) == "WriteDeviceAck:abc"

    def test_write_request(self):
        request = write_device_request("abc", "10000000", "TOKEN", {"operation": 1})
        assert request == {
            "msgType": "WriteDevice",
            "mac": "abc",
            "deviceType": "10000000",
            "AccessToken": "TOKEN",
            "data": {"operation": 1},
        }
