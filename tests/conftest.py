"""
Shared fixtures: a fake MOTION bridge listening on the loopback interface, and a
MotionClient whose sockets are bound to loopback so no multicast membership is needed.
"""
import asyncio
import json
import socket
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from motion_blinds_bridge import MotionClient
from motion_blinds_bridge.constants import DEVICE_TYPE_BLIND, DEVICE_TYPE_BRIDGE
from motion_blinds_bridge.motion_socket import create_unicast_sock

KEY = "abcdef12-3456-78"
TOKEN = "0123456789ABCDEF"
BRIDGE_MAC = "f0a8b1c2d3e4"
ROLLER_MAC = "f0a8b1c2d3e40001"
VENETIAN_MAC = "f0a8b1c2d3e40002"

FAST_RETRIES = (0.02, 0.04, 0.06, 0.08)
SLOW_RETRIES = (5.0, 5.0, 5.0, 5.0)

def roller_blind_data(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "type": 1,
        "operation": 2,
        "currentPosition": 50,
        "currentAngle": 0,
        "currentState": 3,
        "voltageMode": 1,
        "batteryLevel": 1197,
        "chargingState": 0,
        "wirelessMode": 1,
        "RSSI": -71,
    }
    data.update(overrides)
    return data


class FakeHub(asyncio.DatagramProtocol):
    """Answers GetDeviceList, ReadDevice and WriteDevice the way a bridge does.

    Message types in `muted` are recorded but not answered; `responders` replaces the
    default answer for a message type (returning None sends nothing).
    """

    def __init__(self) -> None:
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.requests: List[Tuple[Dict[str, Any], Tuple[str, int]]] = []
        self.mac = BRIDGE_MAC
        self.token = TOKEN
        self.protocol_version = "0.9"
        self.devices: Dict[str, Dict[str, Any]] = {
            ROLLER_MAC: roller_blind_data(),
            VENETIAN_MAC: roller_blind_data(type=2),
        }
        self.muted: Set[str] = set()
        self.responders: Dict[str, Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = {}

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    @property
    def port(self) -> int:
        assert self.transport is not None
        return self.transport.get_extra_info('sockname')[1]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        request = json.loads(data.decode('utf-8'))
        self.requests.append((request, addr))
        if request['msgType'] not in self.muted:
            self.respond(request, addr)

    def respond(self, request: Dict[str, Any], addr: Tuple[str, int]) -> None:
        responder = self.responders.get(request['msgType'], self.default_response)
        response = responder(request)
        if response is not None:
            self.send(response, addr)

    def send(self, message: Any, addr: Tuple[str, int]) -> None:
        assert self.transport is not None
        data = message if isinstance(message, bytes) else json.dumps(message).encode('utf-8')
        self.transport.sendto(data, addr)

    def requests_of(self, msg_type: str) -> List[Dict[str, Any]]:
        return [ r for r, _ in self.requests if r['msgType'] == msg_type ]

    def default_response(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        msg_type = request['msgType']
        if msg_type == "GetDeviceList":
            return {
                "msgType": "GetDeviceListAck",
                "mac": self.mac,
                "deviceType": DEVICE_TYPE_BRIDGE,
                "ProtocolVersion": self.protocol_version,
                "token": self.token,
                "data": [ {"mac": self.mac, "deviceType": DEVICE_TYPE_BRIDGE} ] + [
                    {"mac": mac, "deviceType": DEVICE_TYPE_BLIND} for mac in self.devices
                ],
            }
        mac = request['mac']
        ack = f"{msg_type}Ack"
        if mac not in self.devices:
            return {"msgType": ack, "mac": mac, "deviceType": request['deviceType'], "actionResult": "device not exist"}
        if msg_type == "WriteDevice":
            update = request.get('data', {})
            if 'operation' in update:
                self.devices[mac]['operation'] = update['operation']
            if 'targetPosition' in update:
                self.devices[mac]['currentPosition'] = update['targetPosition']
        return {"msgType": ack, "mac": mac, "deviceType": request['deviceType'], "data": dict(self.devices[mac])}


class LoopbackMotionClient(MotionClient):
    """A MotionClient that receives notifications on an ephemeral loopback port instead of
       joining the multicast group."""

    def _create_request_sock(self) -> socket.socket:
        return create_unicast_sock('127.0.0.1')

    def _create_notification_sock(self) -> socket.socket:
        return create_unicast_sock('127.0.0.1')

    @property
    def notification_addr(self) -> Tuple[str, int]:
        binding = self._notification_binding
        assert binding is not None
        addr = binding.local_addr
        assert addr is not None
        return addr


async def wait_until(predicate: Callable[[], bool], timeout: float=2.0) -> None:
    """Polls predicate until it is true; fails the test after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"Condition not met within {timeout}s")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def hub():
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(FakeHub, local_addr=('127.0.0.1', 0))
    yield protocol
    transport.close()


@pytest_asyncio.fixture
async def make_client(hub):
    """Creates LoopbackMotionClients talking to the hub; all are closed after the test."""
    clients: List[MotionClient] = []

    def factory(**kwargs: Any) -> LoopbackMotionClient:
        kwargs.setdefault('retry_schedule', FAST_RETRIES)
        kwargs.setdefault('reconnect_delay', 0.05)
        client = LoopbackMotionClient(ip='127.0.0.1', key=KEY, port=hub.port, **kwargs)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()


@pytest_asyncio.fixture
async def client(make_client):
    client = make_client()
    await client.start()
    return client
