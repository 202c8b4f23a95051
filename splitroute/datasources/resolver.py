# splitroute/datasources/resolver.py

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Set

import dns.exception
import dns.resolver

from splitroute.errors import ResolutionError
from splitroute.processing.normalize import discard_port, hostname_as_ipv4, is_routable, parse_ipv4
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

GLOBAL_NAMESERVERS = ("8.8.8.8", "1.1.1.1", "9.9.9.9")

ResolverFactory = Callable[..., dns.resolver.Resolver]


def domain_from_host(host: str) -> str:
    """
    Registrable domain guess: the last two labels. 'a.b.c' -> 'b.c'.
    """
    labels = host.split(".")
    if any(not label for label in labels):
        raise ResolutionError(f"too short component of hostname {host!r}")
    if len(labels) < 2:
        raise ResolutionError(f"too short hostname {host!r}")
    return ".".join(labels[-2:])


class HostResolver:
    """
    Resolve hostnames to IPv4 addresses.

    A host is queried against its own domain's authoritative nameservers as
    well as a few public resolvers, so that geo-steered answers match what
    the site hands out.
    """

    def __init__(
            self,
            global_nameservers: Iterable[str] = GLOBAL_NAMESERVERS,
            lifetime: float = 5.0,
            resolver_factory: ResolverFactory = dns.resolver.Resolver,
    ):
        self.global_nameservers = list(global_nameservers)
        self.lifetime = lifetime
        self._factory = resolver_factory
        self._system: Optional[dns.resolver.Resolver] = None

    @property
    def system(self) -> dns.resolver.Resolver:
        if self._system is None:
            self._system = self._factory(configure=True)
        return self._system

    def nameservers_for(self, host: str) -> Set[str]:
        """IPv4 addresses of the nameservers for ``host``'s domain."""
        domain = domain_from_host(host)
        try:
            answer = self.system.resolve(domain, "NS", lifetime=self.lifetime)
        except dns.exception.DNSException as e:
            raise ResolutionError(f"could not look up nameservers of {domain}: {e}") from e

        ns_ips: Set[str] = set()
        for rr in answer:
            ns_host = rr.target.to_text().rstrip(".")
            try:
                ns_answer = self.system.resolve(ns_host, "A", lifetime=self.lifetime)
            except dns.exception.DNSException as e:
                raise ResolutionError(f"could not look up IPs of nameserver {ns_host}: {e}") from e
            addresses = [rr_a.address for rr_a in ns_answer]
            if not addresses:
                raise ResolutionError(f"empty IP list for nameserver {ns_host}")
            ns_ips.add(addresses[0])
        return ns_ips

    def resolve_with(self, host: str, nameservers: Iterable[str]) -> Set[int]:
        """
        A records of ``host`` using the given nameservers plus the public ones.

        An unresolvable host yields an empty set, not an error.
        """
        servers: List[str] = list(self.global_nameservers)
        for ns in sorted(nameservers):
            parse_ipv4(ns)
            if ns not in servers:
                servers.append(ns)

        log.debug("Resolving %s using nameservers %s", host, servers)
        resolver = self._factory(configure=False)
        resolver.nameservers = servers
        try:
            answer = resolver.resolve(host, "A", lifetime=self.lifetime)
        except dns.exception.DNSException as e:
            log.warning("Cannot resolve host %s with nameservers %s: %s", host, servers, e)
            return set()
        return {parse_ipv4(rr.address) for rr in answer}

    def resolve(self, host: str) -> Set[int]:
        """
        Resolve one hostname taken from a dump.

        IPv4 literals are used as-is, except loopback, broadcast and private
        addresses, which resolve to nothing.
        """
        host = discard_port(host)
        literal = hostname_as_ipv4(host)
        if literal is not None:
            return {literal} if is_routable(literal) else set()
        return self.resolve_with(host, self.nameservers_for(host))
