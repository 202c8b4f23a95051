# splitroute/datasources/proc_net.py

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from splitroute.errors import SnapshotError
from splitroute.models import ConnectionObservation, ConnectionSnapshot, Protocol
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

PROC_NET = Path("/proc/net")

# (file name, protocol, ipv6 table); the v6 tables are optional
SOCKET_TABLES = (
    ("tcp", Protocol.TCP, False),
    ("udp", Protocol.UDP, False),
    ("tcp6", Protocol.TCP, True),
    ("udp6", Protocol.UDP, True),
)

_IP_PORT_RE = re.compile(r"^([0-9A-Fa-f]{8}):([0-9A-Fa-f]{4})$")
_IP6_PORT_RE = re.compile(r"^([0-9A-Fa-f]{32}):([0-9A-Fa-f]{4})$")

# ::ffff:0:0/96 as the kernel prints it (four little-endian 32-bit words)
_V4_MAPPED_PREFIX = "0000000000000000FFFF0000"


def parse_ip_port(s: str) -> Tuple[int, int]:
    """
    Decode a kernel 'HEXIP:HEXPORT' pair.

    The address is in host (little-endian) byte order, the port big-endian:
    'C301A8C0:E5BC' -> (192.168.1.195, 58812).
    """
    m = _IP_PORT_RE.match(s)
    if not m:
        raise SnapshotError(f"malformed 'ip:port' pair: {s!r}")
    address = int.from_bytes(bytes.fromhex(m.group(1)), "little")
    port = int(m.group(2), 16)
    return address, port


def parse_ip6_port(s: str) -> Tuple[Optional[int], int]:
    """
    Decode an IPv6 'HEXIP:HEXPORT' pair from tcp6/udp6.

    Returns the IPv4 address for a v4-mapped remote (::ffff:a.b.c.d) and
    None for any other IPv6 address.
    """
    m = _IP6_PORT_RE.match(s)
    if not m:
        raise SnapshotError(f"malformed IPv6 'ip:port' pair: {s!r}")
    hex_ip = m.group(1).upper()
    port = int(m.group(2), 16)
    if not hex_ip.startswith(_V4_MAPPED_PREFIX):
        return None, port
    return int.from_bytes(bytes.fromhex(hex_ip[-8:]), "little"), port


def parse_proc_net(text: str, protocol: Protocol, ipv6: bool = False) -> List[ConnectionObservation]:
    """
    Parse the contents of /proc/net/{tcp,udp} or, with ``ipv6``, {tcp6,udp6}.

    Unconnected sockets (remote 0.0.0.0:0) are skipped. From the v6 tables
    only v4-mapped remotes are kept.
    """
    parse = parse_ip6_port if ipv6 else parse_ip_port
    conns: List[ConnectionObservation] = []
    for line in text.splitlines()[1:]:
        fields = line.split()
        if not fields:
            continue
        if len(fields) < 3:
            raise SnapshotError(f"not enough fields for protocol {protocol.value}: {line!r}")
        parse(fields[1])  # local side, validated only
        address, port = parse(fields[2])
        if address is None or (address == 0 and port == 0):
            continue
        conns.append(ConnectionObservation(address=address, port=port, protocol=protocol))
    return conns


def take_snapshot(root: Union[str, Path] = PROC_NET) -> ConnectionSnapshot:
    """
    Read the TCP and UDP socket tables once.

    IPv4 sessions on dual-stack sockets only show up in tcp6/udp6, so those
    are read too when the kernel has them.
    """
    root = Path(root)
    conns: List[ConnectionObservation] = []
    for name, protocol, ipv6 in SOCKET_TABLES:
        path = root / name
        if ipv6 and not path.exists():
            log.debug("%s not present, skipping", path)
            continue
        try:
            text = path.read_text()
        except OSError as e:
            raise SnapshotError(f"could not read {path}: {e}") from e
        parsed = parse_proc_net(text, protocol, ipv6=ipv6)
        log.debug("%s: %d connected sockets", path, len(parsed))
        conns.extend(parsed)

    return ConnectionSnapshot(connections=tuple(conns), taken_at=datetime.now(timezone.utc))
