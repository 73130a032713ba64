#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import os
import hashlib
import socket
from ipaddress import IPv4Address

import netifaces

from .internal_types import *

DEFAULT_INTERFACE = "default"
"""Interface name that selects the interface of the default IPv4 gateway."""

def hash_pathname(pathname: str) -> str:
    return hashlib.sha1(os.path.abspath(os.path.expanduser(pathname)).encode("utf-8")).hexdigest()

def is_ipv4_address(s: str) -> bool:
    try:
        IPv4Address(s)
    except ValueError:
        return False
    return True

def get_interface_ipv4_address(ifname: str) -> Optional[str]:
    """Returns the first IPv4 address assigned to a named network interface, or None
       if the interface does not exist or has no IPv4 address."""
    if ifname not in netifaces.interfaces():
        return None
    addrinfos = netifaces.ifaddresses(ifname).get(netifaces.AF_INET, [])
    for addrinfo in addrinfos:
        ip_str = addrinfo.get('addr')
        if isinstance(ip_str, str):
            return ip_str
    return None

def resolve_multicast_interface(interface: Optional[str]) -> Optional[str]:
    """Accepts either a local IPv4 address or a network interface name (e.g. "eth0"), and
       returns the IPv4 address to join the multicast group on. None means "any interface".

       Raises ValueError if an interface name cannot be resolved.
    """
    if interface is None or interface == '':
        return None
    if is_ipv4_address(interface):
        return interface
    if interface == DEFAULT_INTERFACE:
        _, gw_ifname = get_default_ip_gateway()
        if gw_ifname is None:
            raise ValueError("There is no default IPv4 gateway interface")
        interface = gw_ifname
    ip = get_interface_ipv4_address(interface)
    if ip is None:
        raise ValueError(f"Network interface '{interface}' has no IPv4 address")
    return ip

def get_default_ip_gateway(address_family: socket.AddressFamily | int=socket.AF_INET) -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IP gateway in the
       requested family, if any.
       returns (None, None) if there is no default gateway in the requested family."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    netiface_family = netifaces.AF_INET if int(address_family) == int(socket.AF_INET) else netifaces.AF_INET6
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netiface_family in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netiface_family][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)
