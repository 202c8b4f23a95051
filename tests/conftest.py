import ipaddress
import json
from pathlib import Path

import pytest

from splitroute.errors import ResolutionError
from splitroute.models import Endpoint

PROC_HEADER = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
    "retrnsmt   uid  timeout inode"
)


def ip(text: str) -> int:
    return int(ipaddress.IPv4Address(text))


def endpoints(*addresses: str, hostname=None, provenance="test.har"):
    return [Endpoint(ip(a), hostname=hostname, provenance=provenance) for a in addresses]


def hex_ip_port(address: str, port: int) -> str:
    return f"{ip(address).to_bytes(4, 'little').hex().upper()}:{port:04X}"


def proc_table(*remotes) -> str:
    """Render a /proc/net/{tcp,udp} table with the given (ip, port) remotes."""
    lines = [PROC_HEADER]
    for i, (address, port) in enumerate(remotes):
        lines.append(
            f"   {i}: {hex_ip_port('192.168.1.195', 40000 + i)} {hex_ip_port(address, port)} "
            f"01 00000000:00000000 00:00000000 00000000  1000        0 {1000 + i} 1"
        )
    return "\n".join(lines) + "\n"


def hex_ip6_port(address: str, port: int) -> str:
    """Kernel tcp6/udp6 encoding: four 32-bit words, each little-endian."""
    packed = ipaddress.IPv6Address(address).packed
    words = "".join(packed[i:i + 4][::-1].hex().upper() for i in range(0, 16, 4))
    return f"{words}:{port:04X}"


def proc_table6(*remotes) -> str:
    """Render a /proc/net/{tcp6,udp6} table with the given (ipv6, port) remotes."""
    lines = [PROC_HEADER]
    for i, (address, port) in enumerate(remotes):
        lines.append(
            f"   {i}: {hex_ip6_port('::ffff:192.168.1.195', 50000 + i)} {hex_ip6_port(address, port)} "
            f"01 00000000:00000000 00:00000000 00000000  1000        0 {2000 + i} 1"
        )
    return "\n".join(lines) + "\n"


class FakeHostResolver:
    """Stands in for HostResolver; never touches the network."""

    def __init__(self, table=None, failures=None):
        self.table = table or {}
        self.failures = failures or {}
        self.calls = []

    def resolve(self, host):
        self.calls.append(host)
        if host in self.failures:
            raise ResolutionError(self.failures[host])
        return {ip(a) for a in self.table.get(host, ())}


@pytest.fixture()
def write_har(tmp_path):
    def _write(name, urls, version="1.2"):
        path = Path(tmp_path) / name
        doc = {"log": {"version": version, "entries": [{"request": {"url": u}} for u in urls]}}
        path.write_text(json.dumps(doc))
        return path

    return _write


@pytest.fixture()
def proc_net_dir(tmp_path):
    def _make(tcp=(), udp=(), tcp6=None, udp6=None):
        root = Path(tmp_path) / "proc_net"
        root.mkdir(exist_ok=True)
        (root / "tcp").write_text(proc_table(*tcp))
        (root / "udp").write_text(proc_table(*udp))
        if tcp6 is not None:
            (root / "tcp6").write_text(proc_table6(*tcp6))
        if udp6 is not None:
            (root / "udp6").write_text(proc_table6(*udp6))
        return root

    return _make
