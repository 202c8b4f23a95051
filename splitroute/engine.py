# splitroute/engine.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from splitroute.config import AggregationConfig
from splitroute.models import AllowList, ConnectionSnapshot, NetworkBlock, ObservationSet, Outcome
from splitroute.processing.allowlist import build_allow_list
from splitroute.processing.bucket import BlockMap, FixedPrefixPolicy, KeyPolicy, bucket_sharded
from splitroute.processing.conflicts import resolve_conflicts
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

SnapshotSource = Union[ConnectionSnapshot, Callable[[], ConnectionSnapshot], None]


@dataclass(frozen=True)
class EngineResult:
    blocks: BlockMap                  # every candidate block, retained or excluded
    allow_list: AllowList
    snapshot: ConnectionSnapshot
    outcome: Outcome

    @property
    def excluded(self) -> list[NetworkBlock]:
        return [self.blocks[k] for k in sorted(self.blocks) if not self.blocks[k].retained]


def run_engine(
        observations: Union[ObservationSet, Sequence[ObservationSet]],
        snapshot: SnapshotSource = None,
        config: Optional[AggregationConfig] = None,
        policy: Optional[KeyPolicy] = None,
) -> EngineResult:
    """
    Aggregate observations into blocks, drop blocks that conflict with live
    connections, and build the allow-list.

    Parameters
    ----------
    observations : ObservationSet or a sequence of them
        A sequence is treated as independent shards (one per dump) and may be
        aggregated in parallel when ``config.workers > 1``.
    snapshot : ConnectionSnapshot, zero-arg callable, or None
        A callable is invoked exactly once, after aggregation has finished.
        None means no live-connection check (empty snapshot).
    config : AggregationConfig, default prefix /16
    policy : address -> block key; overrides ``config.prefix_len``
    """
    config = config or AggregationConfig()
    policy = policy or FixedPrefixPolicy(config.prefix_len)
    shards = [observations] if isinstance(observations, ObservationSet) else list(observations)

    # 1) aggregate
    blocks = bucket_sharded(shards, policy, workers=config.workers)
    log.info(
        "Aggregated %d endpoints into %d candidate blocks (%r)",
        sum(len(s) for s in shards), len(blocks), policy,
    )

    # 2) snapshot, taken once and never refreshed
    if snapshot is None:
        snapshot = ConnectionSnapshot.empty()
    elif callable(snapshot):
        snapshot = snapshot()
    log.info("Connection snapshot: %d connections at %s", len(snapshot), snapshot.taken_at.isoformat())

    # 3) resolve conflicts
    resolve_conflicts(blocks, snapshot)

    # 4) allow-list
    allow_list = build_allow_list(blocks)
    if not blocks:
        outcome = Outcome.NO_ENDPOINTS
    elif not allow_list:
        outcome = Outcome.ALL_EXCLUDED
    else:
        outcome = Outcome.ALLOWED
    log.info("Allow-list: %d of %d blocks retained (%s)", len(allow_list), len(blocks), outcome.value)

    return EngineResult(blocks=blocks, allow_list=allow_list, snapshot=snapshot, outcome=outcome)
