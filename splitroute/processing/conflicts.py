# splitroute/processing/conflicts.py

from __future__ import annotations

from typing import List

from splitroute.models import ConnectionSnapshot, NetworkBlock
from splitroute.processing.bucket import BlockMap
from splitroute.utils.logging import get_logger

log = get_logger(__name__)


def resolve_conflicts(blocks: BlockMap, snapshot: ConnectionSnapshot) -> List[NetworkBlock]:
    """
    Exclude every block that contains the remote address of an active connection.

    The whole block goes, even if only one unrelated connection touches it:
    the tunnel must never absorb a session that was active when the snapshot
    was taken. Blocks are flagged, never removed from ``blocks``.

    Each block is tested against the full snapshot on its own, so the result
    does not depend on iteration order over either input.

    Returns the blocks newly excluded by this call, in key order.
    """
    newly_excluded: List[NetworkBlock] = []
    for key in sorted(blocks):
        block = blocks[key]
        for conn in snapshot:
            if block.contains(conn.address) and block.exclude(conn):
                newly_excluded.append(block)

    for block in newly_excluded:
        log.warning(
            "host connection %s would fall into routed network %s, excluding it",
            block.conflict,
            block.cidr,
        )
    log.info(
        "Conflict check: %d blocks against %d connections, %d excluded",
        len(blocks), len(snapshot), len(newly_excluded),
    )
    return newly_excluded
