#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
MotionClient -- a client for a single MOTION bridge that can:

  1. Send requests to the bridge over unicast UDP and correlate the responses with the
     requests that are waiting for them, re-sending on a fixed backoff schedule
  2. Receive Heartbeat and Report notifications from the bridge's multicast group and
     deliver them to any number of subscribers
  3. Track liveness of the bridge: any traffic from the bridge proves it is alive; if
     nothing is heard for HEARTBEAT_WINDOW seconds the bridge is probed with a directory
     listing
  4. Tear down and recreate its sockets after a socket error, retrying until it succeeds
     or the client is closed
  5. Authenticate device writes with an AccessToken derived from the bridge key and the
     session token issued by the bridge
"""

from __future__ import annotations

import asyncio
from asyncio import Future
import json
import random
import socket
import time
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    MULTICAST_IP,
    UDP_PORT_SEND,
    UDP_PORT_RECEIVE,
    PROTOCOL_VERSION,
    RETRY_SCHEDULE,
    MAX_RETRIES,
    RETRY_JITTER,
    HEARTBEAT_WINDOW,
    RECONNECT_DELAY,
  )
from .exceptions import (
    MotionError,
    ConfigurationError,
    ProtocolVersionMismatchError,
    MotionTimeoutError,
    MotionSocketError,
    NotConnectedError,
    MotionProtocolError,
    MotionRequestError,
    AuthPreconditionError,
  )
from .api import (
    MessageType,
    Operation,
    RawDeviceRecord,
    DeviceUpdate,
    DEVICE_NOT_EXIST,
    request_handle,
    response_handle,
    get_device_list_request,
    read_device_request,
    write_device_request,
    access_token,
    validate_device_update,
    parse_message,
    encode_message,
    device_key,
    is_bridge,
  )
from .availability import Availability, AvailabilityHandler
from .events import Detachable, HandlerList
from .message_id import MessageIdGenerator
from .motion_socket import MotionSocketBinding, MotionSocketOwner, create_unicast_sock, create_multicast_sock
from .scheduler import Scheduler
from .util import resolve_multicast_interface

HeartbeatHandler = Callable[[JsonableDict], Any]
ReportHandler = Callable[[RawDeviceRecord], Any]
ErrorHandler = Callable[[MotionError], Any]

class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PROBING = "probing"
    RECONNECTING = "reconnecting"

class _PendingRequest:
    """A request that is waiting for a response under a handle."""

    handle: str
    request: JsonableDict
    future: Future[Optional[JsonableDict]]

    retry_count: int = 0
    """The number of times the request has been re-sent."""

    timer: Optional[asyncio.TimerHandle] = None
    """The retry timer for the most recent transmission."""

    def __init__(self, handle: str, request: JsonableDict, future: Future[Optional[JsonableDict]]):
        self.handle = handle
        self.request = request
        self.future = future

    @property
    def msg_type(self) -> str:
        return str(self.request.get('msgType'))

    def set_result(self, result: Optional[JsonableDict]) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def set_exception(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)

    def __str__(self) -> str:
        return f"_PendingRequest({self.handle}, retry_count={self.retry_count})"

class MotionClient(MotionSocketOwner):
    """
    A client for a single MOTION bridge.

    Usage:
        client = MotionClient(ip="192.168.1.20", key="xxxxxxxx-xxxx-xx")
        await client.start()
        try:
            for record in await client.get_all_devices():
                print(record)
        finally:
            await client.close()
    """

    ip: str
    """The IP address of the bridge."""

    key: str
    """The bridge key (16 characters), used to compute write AccessTokens."""

    name: Optional[str]
    """An optional display name of the bridge, used in logs."""

    multicast_interface: Optional[str]
    """The local interface (IPv4 address or interface name) on which to join the notification
       multicast group. If None, the system chooses."""

    port: int
    """The bridge's request port."""

    notification_port: int
    """The port to which the bridge multicasts notifications."""

    multicast_address: str
    """The bridge's notification multicast group."""

    retry_schedule: Tuple[float, ...]
    max_retries: int
    heartbeat_window: float
    reconnect_delay: float

    availability: Availability
    """Available once start() succeeds; unavailable while the bridge is unreachable."""

    msg_id_generator: MessageIdGenerator

    _state: ClientState = ClientState.DISCONNECTED
    _mac: Optional[str] = None
    _token: Optional[str] = None
    _protocol_version: Optional[str] = None
    _known_devices: Set[str]

    _request_binding: Optional[MotionSocketBinding] = None
    _notification_binding: Optional[MotionSocketBinding] = None

    _pending: Dict[str, _PendingRequest]
    """Requests waiting for a response, by handle. At most one per handle."""

    _handle_locks: Dict[str, asyncio.Lock]
    """Serializes requests that share a handle."""

    _scheduler: Scheduler
    _heartbeat_timer: Optional[asyncio.TimerHandle] = None
    _reconnect_task: Optional[asyncio.Task[Any]] = None
    _last_heartbeat_time: Optional[float] = None
    _closed: bool = False

    _heartbeat_handlers: HandlerList
    _report_handlers: HandlerList
    _error_handlers: HandlerList

    def __init__(
            self,
            ip: str,
            key: str,
            name: Optional[str]=None,
            multicast_interface: Optional[str]=None,
            port: int=UDP_PORT_SEND,
            notification_port: int=UDP_PORT_RECEIVE,
            multicast_address: str=MULTICAST_IP,
            retry_schedule: Sequence[float]=RETRY_SCHEDULE,
            max_retries: int=MAX_RETRIES,
            heartbeat_window: float=HEARTBEAT_WINDOW,
            reconnect_delay: float=RECONNECT_DELAY,
          ) -> None:
        if not ip:
            raise ConfigurationError("Invalid bridge configuration. Missing [ip] setting")
        if not key:
            raise ConfigurationError("Invalid bridge configuration. Missing [key] setting")
        if len(retry_schedule) == 0:
            raise ValueError("retry_schedule must not be empty")
        self.ip = ip
        self.key = key
        self.name = name
        self.multicast_interface = multicast_interface
        self.port = port
        self.notification_port = notification_port
        self.multicast_address = multicast_address
        self.retry_schedule = tuple(retry_schedule)
        self.max_retries = max_retries
        self.heartbeat_window = heartbeat_window
        self.reconnect_delay = reconnect_delay
        self.availability = Availability(False)
        self.msg_id_generator = MessageIdGenerator()
        self._known_devices = set()
        self._pending = {}
        self._handle_locks = {}
        self._scheduler = Scheduler(f"MotionClient[{self.display_name}]")
        self._heartbeat_handlers = HandlerList("heartbeat")
        self._report_handlers = HandlerList("report")
        self._error_handlers = HandlerList("error")

    @property
    def display_name(self) -> str:
        return self.name or self.ip

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def mac(self) -> Optional[str]:
        """The mac address of the bridge itself, known after the first directory listing."""
        return self._mac

    @property
    def token(self) -> Optional[str]:
        """The current session token, refreshed by every heartbeat."""
        return self._token

    @property
    def protocol_version(self) -> Optional[str]:
        return self._protocol_version

    @property
    def known_devices(self) -> Set[str]:
        """"<deviceType>:<mac>" for every device in the last directory listing."""
        return set(self._known_devices)

    @property
    def connected(self) -> bool:
        return self._request_binding is not None and self._request_binding.is_open

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_handles(self) -> List[str]:
        return list(self._pending.keys())

    # ------------------------------------------------------------------ lifecycle

    async def start(self) -> None:
        """Opens the sockets and lists the bridge's devices. Fails without retrying if the
           bridge speaks an unsupported protocol version."""
        if self._closed:
            raise NotConnectedError(f"MotionClient[{self.display_name}] is closed")
        self._state = ClientState.CONNECTING
        try:
            await self._connect()
            listing = await self.list_devices()
            if self._protocol_version != PROTOCOL_VERSION:
                raise ProtocolVersionMismatchError(
                    f"Bridge [{self.display_name}] speaks protocol version {listing.get('ProtocolVersion')!r}; "
                    f"only version {PROTOCOL_VERSION} is supported"
                  )
        except BaseException as e:
            self._disconnect(f"{e}")
            self._token = None
            raise
        self._state = ClientState.CONNECTED
        self.availability.set_available(True)
        self._reset_heartbeat()
        logger.info(f"Connected to bridge [{self.display_name}] mac={self._mac}, {len(self._known_devices)} device(s)")

    async def close(self) -> None:
        """Closes the sockets, cancels every timer and the reconnect loop, and fails any request
           still waiting for a response. Never raises."""
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing MotionClient[{self.display_name}]")
        try:
            self._disconnect("closed")
        except Exception as e:
            logger.error(f"Failed to cleanly disconnect from bridge [{self.display_name}]: {e}")
        self._fail_all_pending(NotConnectedError("closed"))
        await self._scheduler.aclose()
        self.availability.close()
        self._heartbeat_handlers.clear()
        self._report_handlers.clear()
        self._error_handlers.clear()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.close()
        return False

    def _create_request_sock(self) -> socket.socket:
        return create_unicast_sock()

    def _create_notification_sock(self) -> socket.socket:
        try:
            interface_ip = resolve_multicast_interface(self.multicast_interface)
        except ValueError as e:
            raise ConfigurationError(f"Invalid multicast interface: {e}") from e
        return create_multicast_sock(self.multicast_address, self.notification_port, interface_ip)

    async def _connect(self) -> None:
        request_binding: Optional[MotionSocketBinding] = None
        notification_binding: Optional[MotionSocketBinding] = None
        try:
            request_binding = MotionSocketBinding(self._create_request_sock())
            notification_binding = MotionSocketBinding(
                self._create_notification_sock(),
                sockname=f"{self.multicast_address}:{self.notification_port}"
              )
            await request_binding.open(self)
            await notification_binding.open(self)
        except OSError as e:
            for binding in (request_binding, notification_binding):
                if binding is not None:
                    binding.close()
            raise MotionSocketError(f"Failed to open sockets for bridge [{self.display_name}]: {e}") from e
        except BaseException:
            for binding in (request_binding, notification_binding):
                if binding is not None:
                    binding.close()
            raise
        self._request_binding = request_binding
        self._notification_binding = notification_binding
        logger.debug(f"Opened {request_binding} and {notification_binding} for bridge [{self.display_name}]")

    def _disconnect(self, reason: Optional[str]=None) -> None:
        self.availability.set_available(False, reason)
        self._scheduler.cancel(self._heartbeat_timer)
        self._heartbeat_timer = None
        self._state = ClientState.DISCONNECTED
        bindings = (self._request_binding, self._notification_binding)
        self._request_binding = None
        self._notification_binding = None
        for binding in bindings:
            if binding is not None:
                binding.close()

    # ------------------------------------------------------------------ subscriptions

    def on_availability_change(self, handler: AvailabilityHandler) -> Detachable:
        return self.availability.on_change(handler)

    def on_heartbeat(self, handler: HeartbeatHandler) -> Detachable:
        return self._heartbeat_handlers.add(handler)

    def on_report(self, handler: ReportHandler) -> Detachable:
        return self._report_handlers.add(handler)

    def on_error(self, handler: ErrorHandler) -> Detachable:
        return self._error_handlers.add(handler)

    # ------------------------------------------------------------------ requests

    async def list_devices(self) -> JsonableDict:
        """Sends a GetDeviceList request and returns the raw listing:
           {"mac", "deviceType", "token", "ProtocolVersion", "data": [{"mac", "deviceType"}, ...]}"""
        listing = await self._send_receive(get_device_list_request(), request_handle(MessageType.GET_DEVICE_LIST_ACK))
        if listing is None:
            raise MotionRequestError(f"Bridge [{self.display_name}] returned no device list")
        mac = listing.get('mac')
        if isinstance(mac, str):
            self._mac = mac
        version = listing.get('ProtocolVersion')
        if isinstance(version, str):
            self._protocol_version = version
        data = listing.get('data')
        if isinstance(data, list):
            self._known_devices = set(
                device_key(str(d.get('deviceType')), str(d.get('mac'))) for d in data if isinstance(d, dict)
              )
        return listing

    async def get_device(self, mac: str, device_type: str) -> Optional[RawDeviceRecord]:
        """Reads a device. Returns None if the bridge does not know the device."""
        return await self._send_receive(
            read_device_request(mac, device_type),
            request_handle(MessageType.READ_DEVICE_ACK, mac)
          )

    async def get_all_devices(self) -> List[RawDeviceRecord]:
        """Lists the bridge's devices and reads each of them concurrently. Devices that
           disappear between the listing and the read are left out."""
        listing = await self.list_devices()
        data = listing.get('data')
        entries = [
            d for d in data
            if isinstance(d, dict) and isinstance(d.get('mac'), str)
              and isinstance(d.get('deviceType'), str) and not is_bridge(d)
          ] if isinstance(data, list) else []
        results = await asyncio.gather(
            *(self.get_device(d['mac'], d['deviceType']) for d in entries)
          )
        return [ r for r in results if r is not None ]

    async def update_device(self, mac: str, device_type: str, update: DeviceUpdate) -> Optional[RawDeviceRecord]:
        """Writes a device and returns the bridge's acknowledgement record.

        Raises WriteValidationError or AuthPreconditionError before anything is sent.
        """
        validate_device_update(update)
        request = self._write_request(mac, device_type, update)
        return await self._send_receive(request, request_handle(MessageType.WRITE_DEVICE_ACK, mac))

    async def request_update(self, mac: str, device_type: str) -> None:
        """Asks a device to report its status. Does not wait: the bridge answers with a
           Report notification."""
        request = self._write_request(mac, device_type, { 'operation': Operation.STATUS_QUERY.value })
        await self._send_receive(request)

    def _write_request(self, mac: str, device_type: str, update: DeviceUpdate) -> JsonableDict:
        token = self._token
        if not token:
            raise AuthPreconditionError("Missing session token (the bridge has not been listed yet)")
        return write_device_request(mac, device_type, access_token(self.key, token), update)

    async def _send_receive(self, request: JsonableDict, handle: Optional[str]=None) -> Optional[JsonableDict]:
        """Sends a request. If handle is given, waits for the response registered under that handle,
           re-sending on the retry schedule; otherwise returns as soon as the request is sent."""
        if handle is None:
            self._send(request)
            return None
        lock = self._handle_locks.get(handle)
        if lock is None:
            lock = asyncio.Lock()
            self._handle_locks[handle] = lock
        async with lock:
            pending = _PendingRequest(handle, request, asyncio.get_running_loop().create_future())
            assert handle not in self._pending
            self._pending[handle] = pending
            try:
                self._transmit(pending)
                return await pending.future
            finally:
                self._scheduler.cancel(pending.timer)
                pending.timer = None
                if self._pending.get(handle) is pending:
                    del self._pending[handle]

    def _retry_delay(self, retry_count: int) -> float:
        if retry_count < len(self.retry_schedule):
            return self.retry_schedule[retry_count]
        return self.retry_schedule[-1] + random.random() * RETRY_JITTER

    def _transmit(self, pending: _PendingRequest) -> None:
        delay = self._retry_delay(pending.retry_count)
        pending.timer = self._scheduler.call_later(delay, self._on_retry_timeout, pending, delay)
        try:
            self._send(pending.request)
        except MotionError as e:
            self._scheduler.cancel(pending.timer)
            pending.timer = None
            pending.set_exception(e)

    def _send(self, request: JsonableDict) -> None:
        binding = self._request_binding
        if binding is None:
            raise NotConnectedError(f"Not connected to bridge [{self.display_name}]")
        message = dict(request)
        message['msgID'] = self.msg_id_generator.next()
        binding.sendto(encode_message(message), (self.ip, self.port))

    def _on_retry_timeout(self, pending: _PendingRequest, delay: float) -> None:
        pending.timer = None
        if pending.future.done():
            return
        if pending.retry_count < self.max_retries:
            pending.retry_count += 1
            logger.debug(f"No response to {pending.msg_type} [{pending.handle}] after {delay:.3f}s; retry {pending.retry_count}")
            self._transmit(pending)
        else:
            if self._pending.get(pending.handle) is pending:
                del self._pending[pending.handle]
            pending.set_exception(MotionTimeoutError(
                f"{pending.msg_type} to bridge [{self.display_name}] timed out after {pending.retry_count} retries"
              ))

    def _resolve(self, pending: _PendingRequest, response: JsonableDict) -> None:
        self._scheduler.cancel(pending.timer)
        pending.timer = None
        action_result = response.get('actionResult')
        if response.get('data') is not None:
            pending.set_result(response)
        elif action_result == DEVICE_NOT_EXIST:
            pending.set_result(None)
        elif action_result:
            pending.set_exception(MotionRequestError(str(action_result)))
        else:
            pending.set_exception(MotionRequestError(f"Failed to execute [{pending.msg_type}]"))

    def _fail_all_pending(self, exc: MotionError) -> None:
        pendings = list(self._pending.values())
        self._pending.clear()
        for pending in pendings:
            self._scheduler.cancel(pending.timer)
            pending.timer = None
            pending.set_exception(exc)

    # ------------------------------------------------------------------ liveness

    async def _ping(self) -> None:
        await self.list_devices()

    def _reset_heartbeat(self) -> None:
        self._scheduler.cancel(self._heartbeat_timer)
        self._heartbeat_timer = None
        if self._closed or self._request_binding is None:
            return
        self._heartbeat_timer = self._scheduler.call_later(self.heartbeat_window, self._on_heartbeat_timeout)

    def _on_heartbeat_timeout(self) -> None:
        self._heartbeat_timer = None
        self._scheduler.create_task(self._check_heartbeat(), name="heartbeat-probe")

    async def _check_heartbeat(self) -> None:
        logger.debug(f"Nothing heard from bridge [{self.display_name}] for {self.heartbeat_window:g}s; probing")
        self._state = ClientState.PROBING
        try:
            await self._ping()
            self.availability.set_available(True)
            logger.debug("proactive heartbeat [success]")
        except MotionError as e:
            self.availability.set_available(False, e)
            logger.debug(f"proactive heartbeat [fail] {e}")
        finally:
            if self._state == ClientState.PROBING:
                self._state = ClientState.CONNECTED
            self._reset_heartbeat()

    def _start_reconnect(self, reason: str) -> None:
        if self._closed:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = self._scheduler.create_task(self._reconnect(reason), name="reconnect")

    async def _reconnect(self, reason: str) -> None:
        attempt = 0
        while not self._closed:
            attempt += 1
            logger.info(f"Reconnecting to bridge [{self.display_name}]. reason: {reason}, attempt [{attempt}]")
            self._disconnect(reason)
            self._state = ClientState.RECONNECTING
            try:
                await self._connect()
                await self._ping()
            except MotionError as e:
                logger.info(f"Reconnect attempt [{attempt}] to bridge [{self.display_name}] failed: {e}")
                await asyncio.sleep(self.reconnect_delay)
                continue
            self._state = ClientState.CONNECTED
            self.availability.set_available(True)
            self._reset_heartbeat()
            logger.info(f"Successfully reconnected to bridge [{self.display_name}]")
            return

    # ------------------------------------------------------------------ MotionSocketOwner

    def datagram_received(self, socket_binding: MotionSocketBinding, addr: HostAndPort, data: bytes) -> None:
        if socket_binding is self._notification_binding:
            self._on_notification(addr, data)
        elif socket_binding is self._request_binding:
            self._on_response(addr, data)

    def error_received(self, socket_binding: MotionSocketBinding, exc: Exception) -> None:
        logger.info(f"Error received from transport {socket_binding}: {exc}")
        self._on_socket_error(exc)

    def connection_lost(self, socket_binding: MotionSocketBinding, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {socket_binding}, exc={exc}")
        if exc is not None:
            self._on_socket_error(exc)

    def _on_socket_error(self, exc: Exception) -> None:
        error = MotionSocketError(f"connection error ({exc})")
        self._fail_all_pending(error)
        self._error_handlers.notify(error)
        self._start_reconnect(f"{error}")

    def _on_malformed(self, addr: HostAndPort, error: MotionProtocolError) -> None:
        logger.warning(f"Dropping datagram from {addr}: {error}")
        self._error_handlers.notify(error)

    def _on_response(self, addr: HostAndPort, data: bytes) -> None:
        try:
            response = parse_message(data)
        except MotionProtocolError as e:
            self._on_malformed(addr, e)
            return
        logger.debug(f"Received response from {addr}: {response}")
        self._reset_heartbeat()
        if response['msgType'] == MessageType.GET_DEVICE_LIST_ACK.value:
            token = response.get('token')
            if isinstance(token, str):
                self._token = token
        handle = response_handle(response)
        pending = self._pending.pop(handle, None)
        if pending is None:
            logger.debug(f"No request waiting for response [{handle}]; dropping it")
            return
        self._resolve(pending, response)

    def _on_notification(self, addr: HostAndPort, data: bytes) -> None:
        try:
            notification = parse_message(data)
        except MotionProtocolError as e:
            self._on_malformed(addr, e)
            return
        if self._state != ClientState.CONNECTING:
            # start() decides availability once the listing has been checked
            self.availability.set_available(True)
        self._reset_heartbeat()
        msg_type = notification['msgType']
        if msg_type == MessageType.HEARTBEAT.value:
            token = notification.get('token')
            if isinstance(token, str):
                self._token = token
            now = time.monotonic()
            if self._last_heartbeat_time is None:
                logger.debug("heartbeat received")
            else:
                logger.debug(f"heartbeat received (after {int(now - self._last_heartbeat_time)} sec)")
            self._last_heartbeat_time = now
            self._heartbeat_handlers.notify(notification)
        elif msg_type == MessageType.REPORT.value:
            logger.debug(f"Report received from {addr}: {notification}")
            self._report_handlers.notify(notification)
        else:
            logger.warning(f"Unknown notification [{json.dumps(notification)}]")

    def __str__(self) -> str:
        return f"MotionClient({self.display_name}, state={self._state.value})"

    def __repr__(self) -> str:
        return str(self)
