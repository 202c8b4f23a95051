# splitroute/processing/bucket.py

from __future__ import annotations

import concurrent.futures
from typing import Callable, Dict, Iterable, List, Sequence

from splitroute.models import BlockKey, Endpoint, NetworkBlock
from splitroute.processing.normalize import netmask, validate_address, validate_prefix_len
from splitroute.utils.logging import get_logger

log = get_logger(__name__)

KeyPolicy = Callable[[int], BlockKey]
BlockMap = Dict[BlockKey, NetworkBlock]


class FixedPrefixPolicy:
    """
    Map an address to the block that contains it at a fixed prefix length.

    Any callable ``address -> (network, prefix_len)`` can stand in for this,
    e.g. one backed by registry prefix data.
    """

    def __init__(self, prefix_len: int = 16):
        self.prefix_len = validate_prefix_len(prefix_len)
        self._mask = netmask(prefix_len)

    def __call__(self, address: int) -> BlockKey:
        return (validate_address(address) & self._mask, self.prefix_len)

    def __repr__(self) -> str:
        return f"FixedPrefixPolicy({self.prefix_len})"


def bucket(endpoints: Iterable[Endpoint], policy: KeyPolicy) -> BlockMap:
    """
    Group endpoints into blocks keyed by ``policy``.

    Every address is validated before any block is created, so an invalid
    input fails the whole step rather than leaving a half-built map.
    Only observed keys are materialized.
    """
    endpoints = list(endpoints)
    for e in endpoints:
        validate_address(e.address)

    blocks: BlockMap = {}
    for e in endpoints:
        key = policy(e.address)
        block = blocks.get(key)
        if block is None:
            block = blocks[key] = NetworkBlock(*key)
        block.add(e)
    return blocks


def merge_blocks(partials: Iterable[BlockMap]) -> BlockMap:
    """Union partial block maps. Order of ``partials`` does not matter."""
    merged: BlockMap = {}
    for partial in partials:
        for key, block in partial.items():
            existing = merged.get(key)
            # merged() always returns a fresh block, so inputs are never aliased
            merged[key] = block.merged(existing if existing is not None else block)
    return merged


def bucket_sharded(
        shards: Sequence[Iterable[Endpoint]],
        policy: KeyPolicy,
        workers: int = 1,
) -> BlockMap:
    """
    Aggregate each shard independently and merge the results.

    Shards share no state while they are bucketed; the only synchronization
    is the final merge once every worker is done.
    """
    shards = [list(s) for s in shards]
    # validate everything up front, before any worker starts
    for shard in shards:
        for e in shard:
            validate_address(e.address)

    partials: List[BlockMap] = []
    if workers <= 1 or len(shards) <= 1:
        partials.extend(bucket(shard, policy) for shard in shards)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(bucket, shard, policy) for shard in shards]
            for future in concurrent.futures.as_completed(futures):
                partials.append(future.result())

    log.debug("Merging %d partial block maps", len(partials))
    return merge_blocks(partials)
