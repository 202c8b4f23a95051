# splitroute/processing/normalize.py

from __future__ import annotations

import ipaddress
from typing import Optional

from splitroute.errors import InvalidAddressError, InvalidPortError, InvalidPrefixLengthError

MAX_IPV4 = 0xFFFFFFFF
MAX_PORT = 0xFFFF

RFC1918_NETWORKS = tuple(
    ipaddress.IPv4Network(n) for n in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16")
)


def validate_address(address) -> int:
    """
    Check that ``address`` is an IPv4 address as a 32-bit unsigned integer.

    Raises InvalidAddressError instead of masking anything out of range.
    """
    if isinstance(address, bool) or not isinstance(address, int):
        raise InvalidAddressError(f"address must be an integer, got {address!r}")
    if address < 0 or address > MAX_IPV4:
        raise InvalidAddressError(f"address {address} outside the 32-bit unsigned range")
    return address


def validate_prefix_len(prefix_len) -> int:
    if isinstance(prefix_len, bool) or not isinstance(prefix_len, int):
        raise InvalidPrefixLengthError(f"prefix length must be an integer, got {prefix_len!r}")
    if prefix_len < 0 or prefix_len > 32:
        raise InvalidPrefixLengthError(f"prefix length {prefix_len} outside 0..32")
    return prefix_len


def validate_port(port) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidPortError(f"port must be an integer, got {port!r}")
    if port < 0 or port > MAX_PORT:
        raise InvalidPortError(f"port {port} outside 0..65535")
    return port


def netmask(prefix_len: int) -> int:
    """Integer netmask for a prefix length, e.g. 16 -> 0xFFFF0000."""
    validate_prefix_len(prefix_len)
    return (MAX_IPV4 << (32 - prefix_len)) & MAX_IPV4


def parse_ipv4(text: str) -> int:
    try:
        return int(ipaddress.IPv4Address(text.strip()))
    except (ipaddress.AddressValueError, AttributeError) as e:
        raise InvalidAddressError(f"could not parse {text!r} as IPv4 address: {e}") from e


def format_ipv4(address: int) -> str:
    return str(ipaddress.IPv4Address(validate_address(address)))


def is_routable(address: int) -> bool:
    """
    False for loopback (127/8), the limited broadcast address and the
    RFC 1918 ranges, which never belong in a tunnel allow-list.

    Other special-purpose ranges are left alone.
    """
    ip = ipaddress.IPv4Address(validate_address(address))
    if ip.is_loopback or int(ip) == MAX_IPV4:
        return False
    return not any(ip in net for net in RFC1918_NETWORKS)


def discard_port(host: str) -> str:
    """'a.b.c:4443' -> 'a.b.c'"""
    return host.split(":", 1)[0]


def hostname_as_ipv4(host: str) -> Optional[int]:
    """Return the address if ``host`` is a dotted IPv4 literal, else None."""
    try:
        return int(ipaddress.IPv4Address(host))
    except ipaddress.AddressValueError:
        return None
