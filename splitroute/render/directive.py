# splitroute/render/directive.py

from __future__ import annotations

import json
from typing import Dict, Optional, Set

from splitroute.engine import EngineResult
from splitroute.models import AllowList
from splitroute.processing.normalize import format_ipv4


def render_cidrs(allow_list: AllowList) -> str:
    """Comma-joined CIDR list, in allow-list order."""
    return ", ".join(allow_list.cidrs())


def render_wireguard(allow_list: AllowList) -> str:
    """WireGuard peer directive, e.g. 'AllowedIPs = 1.2.0.0/16, 5.6.0.0/16'."""
    return f"AllowedIPs = {render_cidrs(allow_list)}"


def render_json(
        result: EngineResult,
        resolved: Optional[Dict[str, Set[int]]] = None,
        unresolved: Optional[Dict[str, str]] = None,
) -> str:
    """Machine-readable summary of a run, excluded blocks included."""
    doc = {
        "outcome": result.outcome.value,
        "snapshot_taken_at": result.snapshot.taken_at.isoformat(),
        "allowed_ips": result.allow_list.cidrs(),
        "excluded": [
            {"network": b.cidr, "conflict": str(b.conflict)}
            for b in result.excluded
        ],
    }
    if resolved is not None:
        doc["resolved_hosts"] = {
            host: sorted(format_ipv4(a) for a in addresses)
            for host, addresses in sorted(resolved.items())
        }
    if unresolved is not None:
        doc["unresolved_hosts"] = dict(sorted(unresolved.items()))
    return json.dumps(doc, indent=2)
