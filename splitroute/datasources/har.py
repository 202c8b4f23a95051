# splitroute/datasources/har.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterator, Optional, Set, Union

from splitroute.datasources.base import DataSource
from splitroute.datasources.resolver import HostResolver
from splitroute.errors import HarParseError, ResolutionError
from splitroute.models import Endpoint
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]

URL_PREFIXES = ("https://", "http://", "wss://")
SUPPORTED_VERSIONS = ("1.2",)


def hostname_from_url(url: str) -> Optional[str]:
    """
    'https://x.y/a/b?c' -> 'x.y'. Returns None for other schemes.
    Any ':port' suffix is kept.
    """
    for prefix in URL_PREFIXES:
        if url.startswith(prefix):
            rest = url[len(prefix):]
            for sep in "/?#":
                rest = rest.split(sep, 1)[0]
            return rest or None
    return None


def hostnames_from_har(path: PathLike) -> Set[str]:
    """Collect the hostname of every request recorded in a HAR 1.2 file."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            har = json.load(f)
    except (OSError, ValueError) as e:
        raise HarParseError(f"could not parse HAR file {path}: {e}") from e

    log_obj = har.get("log") if isinstance(har, dict) else None
    if not isinstance(log_obj, dict):
        raise HarParseError(f"HAR file {path} has no 'log' object")

    version = str(log_obj.get("version", "1.2"))
    if version not in SUPPORTED_VERSIONS:
        raise HarParseError(f"HAR file {path}: unsupported HAR version {version}")

    entries = log_obj.get("entries", [])
    if not isinstance(entries, list):
        raise HarParseError(f"HAR file {path}: 'entries' is not a list")

    hostnames: Set[str] = set()
    for i, entry in enumerate(entries):
        request = entry.get("request") if isinstance(entry, dict) else None
        url = request.get("url") if isinstance(request, dict) else None
        if not isinstance(url, str):
            raise HarParseError(f"HAR file {path}: entry {i} has no request URL")

        hostname = hostname_from_url(url)
        if hostname is None:
            log.debug("Skipping URL without a web scheme: %s", url[:80])
            continue
        hostnames.add(hostname)

    log.info("%s: %d hostnames", path.name, len(hostnames))
    return hostnames


class HarSource(DataSource):
    """
    Endpoints for every host a browser talked to in one HAR dump.

    ``resolved`` and ``unresolved`` are filled in by ``load()`` for reporting.
    """

    def __init__(self, path: PathLike, resolver: Optional[HostResolver] = None):
        self.path = Path(path)
        self.name = self.path.name
        self.resolver = resolver or HostResolver()
        self.resolved: Dict[str, Set[int]] = {}
        self.unresolved: Dict[str, str] = {}

    def load(self) -> Iterator[Endpoint]:
        for hostname in sorted(hostnames_from_har(self.path)):
            try:
                addresses = self.resolver.resolve(hostname)
            except ResolutionError as e:
                log.warning("Could not resolve %s: %s", hostname, e)
                self.unresolved[hostname] = str(e)
                continue

            self.resolved[hostname] = addresses
            for address in addresses:
                yield Endpoint(address=address, hostname=hostname, provenance=self.name)
