#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
MotionSocketBinding -- the binding of a bound low-level datagram socket to an asyncio
transport, with received datagrams and transport errors delivered to an owner.

A MotionClient owns two bindings:

  1. A unicast socket on an ephemeral port, used to send requests to the bridge and to
     receive their responses.
  2. A socket bound to the notification port that has joined the bridge's multicast
     group, used to receive Heartbeat and Report notifications.
"""

from __future__ import annotations

import asyncio
import socket
import sys
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .constants import MULTICAST_TTL
from .exceptions import MotionSocketError, NotConnectedError

class MotionSocketOwner(ABC):
    """Receives the traffic and failures of one or more MotionSocketBindings."""

    @abstractmethod
    def datagram_received(self, socket_binding: MotionSocketBinding, addr: HostAndPort, data: bytes) -> None:
        raise NotImplementedError()

    @abstractmethod
    def error_received(self, socket_binding: MotionSocketBinding, exc: Exception) -> None:
        raise NotImplementedError()

    @abstractmethod
    def connection_lost(self, socket_binding: MotionSocketBinding, exc: Optional[Exception]) -> None:
        raise NotImplementedError()

class MotionSocketBinding:
    """
    An encapsulation of a single low-level bound datagram socket and its asyncio
    transport.

    Instances are created around an already bound socket; open() attaches them to
    the running event loop via loop.create_datagram_endpoint.
    """

    sock: Optional[socket.socket] = None
    """The low-level socket."""

    sockname: str
    """The name of the socket as it should be displayed in logs, etc"""

    owner: Optional[MotionSocketOwner] = None

    _protocol: Optional[_MotionSocketProtocol] = None
    _transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, sock: socket.socket, sockname: Optional[str]=None):
        self.sock = sock
        if sockname is None:
            sockname = str(sock.getsockname())
        self.sockname = sockname

    @property
    def transport(self) -> Optional[asyncio.DatagramTransport]:
        return self._transport

    @property
    def local_addr(self) -> Optional[HostAndPort]:
        if self.sock is None:
            return None
        addr = self.sock.getsockname()
        return (addr[0], addr[1])

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    async def open(self, owner: MotionSocketOwner) -> None:
        assert self.sock is not None
        assert self._transport is None
        self.owner = owner
        loop = asyncio.get_running_loop()
        untyped_transport, protocol = await loop.create_datagram_endpoint(
            lambda: _MotionSocketProtocol(self),
            sock=self.sock
          )
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport
        transport: asyncio.DatagramTransport = untyped_transport # type: ignore[assignment]
        assert isinstance(protocol, _MotionSocketProtocol)
        self._protocol = protocol
        self._transport = transport
        logger.debug(f"Created datagram endpoint for {self}")

    def sendto(self, data: bytes, addr: HostAndPort) -> None:
        """Sends a datagram. Raises NotConnectedError if the binding is not open, or
           MotionSocketError if the send itself fails."""
        transport = self._transport
        if transport is None or transport.is_closing():
            raise NotConnectedError(f"{self} is not connected")
        logger.debug(f"Sending via {self} to {addr}: {data!r}")
        try:
            transport.sendto(data, addr)
        except OSError as e:
            raise MotionSocketError(f"Send via {self} to {addr} failed: {e}") from e

    def close(self) -> None:
        transport = self._transport
        self._transport = None
        self.owner = None
        if transport is not None:
            try:
                transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
        elif self.sock is not None:
            # never attached to a transport, so the socket is still ours to close
            try:
                self.sock.close()
            except OSError as e:
                logger.error(f"Error closing socket on {self}: {e}")
        self.sock = None

    def __str__(self) -> str:
        return f"MotionSocketBinding({self.sockname})"

    def __repr__(self) -> str:
        return str(self)

class _MotionSocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and the owner of a MotionSocketBinding."""

    socket_binding: MotionSocketBinding

    def __init__(self, socket_binding: MotionSocketBinding):
        self.socket_binding = socket_binding

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        owner = self.socket_binding.owner
        if owner is not None:
            owner.datagram_received(self.socket_binding, addr, data)

    def error_received(self, exc: Exception) -> None:
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        owner = self.socket_binding.owner
        if owner is not None:
            owner.error_received(self.socket_binding, exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        owner = self.socket_binding.owner
        if owner is not None:
            owner.connection_lost(self.socket_binding, exc)

def create_unicast_sock(bind_address: str='') -> socket.socket:
    """Creates a UDP socket bound to an ephemeral port, for requests and their responses."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_address, 0))
    except BaseException:
        sock.close()
        raise
    return sock

def create_multicast_sock(group: str, port: int, interface_ip: Optional[str]=None) -> socket.socket:
    """Creates a UDP socket bound to the notification port and joined to the multicast group,
       optionally on a specific local interface address."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if sys.platform not in ( 'win32', 'cygwin' ):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        # Multicast listeners MUST bind to 0.0.0.0:<port> to receive multicast packets
        sock.bind(('', port))
        group_bin = socket.inet_aton(group)
        if interface_ip is None:
            mreq = group_bin + socket.inet_aton('0.0.0.0')
        else:
            iface_bin = socket.inet_aton(interface_ip)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, iface_bin)
            mreq = group_bin + iface_bin
        logger.debug(f"Joining multicast group {group} on {interface_ip or 'any interface'}; mreq={mreq!r}")
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL)
    except BaseException:
        sock.close()
        raise
    return sock
