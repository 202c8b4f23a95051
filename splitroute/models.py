# splitroute/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from splitroute.processing.normalize import (
    format_ipv4,
    netmask,
    validate_address,
    validate_port,
    validate_prefix_len,
)

# (network address, prefix length); sorts ascending by network first
BlockKey = Tuple[int, int]


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None


class BlockStatus(str, Enum):
    RETAINED = "retained"
    EXCLUDED = "excluded"


class Outcome(str, Enum):
    ALLOWED = "allowed"              # at least one block retained
    NO_ENDPOINTS = "no_endpoints"    # nothing was observed at all
    ALL_EXCLUDED = "all_excluded"    # blocks existed, every one conflicted


@dataclass(frozen=True)
class Endpoint:
    address: int                    # IPv4 as 32-bit unsigned int
    hostname: Optional[str] = None  # originating hostname, if known
    provenance: str = ""            # dump file / pass that produced it

    def __post_init__(self):
        validate_address(self.address)

    @property
    def ip(self) -> str:
        return format_ipv4(self.address)


class ObservationSet:
    """
    Endpoints fed in from ingestion, deduplicated by address.

    Every distinct (hostname, provenance) seen for an address is kept so that
    attribution does not depend on arrival order.
    """

    def __init__(self, endpoints: Iterable[Endpoint] = ()):
        self._by_address: Dict[int, Set[Endpoint]] = {}
        self.extend(endpoints)

    def add(self, endpoint: Endpoint) -> None:
        self._by_address.setdefault(endpoint.address, set()).add(endpoint)

    def extend(self, endpoints: Iterable[Endpoint]) -> None:
        for endpoint in endpoints:
            self.add(endpoint)

    def addresses(self) -> List[int]:
        return sorted(self._by_address)

    def endpoints_for(self, address: int) -> FrozenSet[Endpoint]:
        return frozenset(self._by_address.get(address, ()))

    def __iter__(self) -> Iterator[Endpoint]:
        for address in sorted(self._by_address):
            yield from self._by_address[address]

    def __len__(self) -> int:
        return len(self._by_address)

    def __bool__(self) -> bool:
        return bool(self._by_address)


@dataclass(frozen=True, order=True)
class ConnectionObservation:
    address: int          # remote IPv4
    port: int             # remote port
    protocol: Protocol

    def __post_init__(self):
        validate_address(self.address)
        validate_port(self.port)
        object.__setattr__(self, "protocol", Protocol(self.protocol))

    def __str__(self) -> str:
        return f"{self.protocol.value.upper()} {format_ipv4(self.address)}:{self.port}"


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Point-in-time, read-only capture of the host's active sockets."""

    connections: Tuple[ConnectionObservation, ...] = ()
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "connections", tuple(self.connections))

    @classmethod
    def empty(cls) -> "ConnectionSnapshot":
        return cls(())

    def __iter__(self) -> Iterator[ConnectionObservation]:
        return iter(self.connections)

    def __len__(self) -> int:
        return len(self.connections)


@dataclass
class NetworkBlock:
    """
    A candidate CIDR block and everything that mapped into it.

    Grows only during aggregation. Status moves at most once, from
    RETAINED to EXCLUDED; there is no way back.
    """

    network: int
    prefix_len: int
    contributors: Set[int] = field(default_factory=set)
    hostnames: Set[str] = field(default_factory=set)
    provenance: Set[str] = field(default_factory=set)
    conflicts: Set[ConnectionObservation] = field(default_factory=set)
    _status: BlockStatus = field(default=BlockStatus.RETAINED, init=False, repr=False)

    def __post_init__(self):
        validate_address(self.network)
        validate_prefix_len(self.prefix_len)
        if self.network & ~netmask(self.prefix_len):
            raise ValueError(f"{format_ipv4(self.network)} has host bits set for /{self.prefix_len}")

    @property
    def key(self) -> BlockKey:
        return (self.network, self.prefix_len)

    @property
    def status(self) -> BlockStatus:
        return self._status

    @property
    def retained(self) -> bool:
        return self._status is BlockStatus.RETAINED

    @property
    def cidr(self) -> str:
        return f"{format_ipv4(self.network)}/{self.prefix_len}"

    @property
    def hostname(self) -> Optional[str]:
        """Lexicographically smallest contributing hostname."""
        return min(self.hostnames) if self.hostnames else None

    @property
    def conflict(self) -> Optional[ConnectionObservation]:
        """The smallest conflicting connection, for reporting."""
        return min(self.conflicts) if self.conflicts else None

    def contains(self, address: int) -> bool:
        return (address & netmask(self.prefix_len)) == self.network

    def add(self, endpoint: Endpoint) -> None:
        self.contributors.add(endpoint.address)
        if endpoint.hostname:
            self.hostnames.add(endpoint.hostname)
        if endpoint.provenance:
            self.provenance.add(endpoint.provenance)

    def exclude(self, connection: ConnectionObservation) -> bool:
        """
        Mark the block excluded because of ``connection``.

        Returns True only on the transition; later conflicts are recorded
        for the audit trail but change nothing else.
        """
        self.conflicts.add(connection)
        if self._status is BlockStatus.EXCLUDED:
            return False
        self._status = BlockStatus.EXCLUDED
        return True

    def merged(self, other: "NetworkBlock") -> "NetworkBlock":
        if self.key != other.key:
            raise ValueError(f"cannot merge {self.cidr} with {other.cidr}")
        block = NetworkBlock(
            self.network,
            self.prefix_len,
            contributors=self.contributors | other.contributors,
            hostnames=self.hostnames | other.hostnames,
            provenance=self.provenance | other.provenance,
            conflicts=self.conflicts | other.conflicts,
        )
        if not (self.retained and other.retained):
            block._status = BlockStatus.EXCLUDED
        return block


@dataclass(frozen=True)
class AllowList:
    """Retained blocks in ascending block-key order."""

    blocks: Tuple[NetworkBlock, ...] = ()

    def pairs(self) -> List[Tuple[str, int]]:
        return [(format_ipv4(b.network), b.prefix_len) for b in self.blocks]

    def cidrs(self) -> List[str]:
        return [b.cidr for b in self.blocks]

    def __iter__(self) -> Iterator[NetworkBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)
