import random

from splitroute.models import BlockStatus, ConnectionObservation, ConnectionSnapshot, Protocol
from splitroute.processing.bucket import FixedPrefixPolicy, bucket
from splitroute.processing.conflicts import resolve_conflicts

from conftest import endpoints, ip


def conn(address, port=443, protocol=Protocol.TCP):
    return ConnectionObservation(ip(address), port, protocol)


def _blocks():
    return bucket(endpoints("219.1.5.10", "219.1.8.2", "193.10.44.3"), FixedPrefixPolicy(16))


def test_connection_inside_block_excludes_whole_block():
    blocks = _blocks()
    excluded = resolve_conflicts(blocks, ConnectionSnapshot((conn("219.1.200.5"),)))

    assert [b.cidr for b in excluded] == ["219.1.0.0/16"]
    assert blocks[(ip("219.1.0.0"), 16)].status is BlockStatus.EXCLUDED
    assert blocks[(ip("193.10.0.0"), 16)].status is BlockStatus.RETAINED
    # flagged, not removed
    assert len(blocks) == 2


def test_empty_snapshot_excludes_nothing():
    blocks = _blocks()
    assert resolve_conflicts(blocks, ConnectionSnapshot.empty()) == []
    assert all(b.retained for b in blocks.values())


def test_unrelated_connections_exclude_nothing():
    blocks = _blocks()
    snapshot = ConnectionSnapshot((conn("219.2.0.1"), conn("8.8.8.8", 53, Protocol.UDP)))
    assert resolve_conflicts(blocks, snapshot) == []
    assert all(b.retained for b in blocks.values())


def test_multiple_conflicts_exclude_once():
    blocks = _blocks()
    snapshot = ConnectionSnapshot((conn("219.1.9.9", 80), conn("219.1.0.1"), conn("219.1.0.1", 53, Protocol.UDP)))
    excluded = resolve_conflicts(blocks, snapshot)

    assert len(excluded) == 1
    block = blocks[(ip("219.1.0.0"), 16)]
    assert len(block.conflicts) == 3
    assert block.conflict == conn("219.1.0.1", 53, Protocol.UDP)


def test_exclusion_is_monotonic_across_runs():
    blocks = _blocks()
    resolve_conflicts(blocks, ConnectionSnapshot((conn("193.10.1.1"),)))
    assert resolve_conflicts(blocks, ConnectionSnapshot.empty()) == []
    assert resolve_conflicts(blocks, ConnectionSnapshot((conn("193.10.2.2"),))) == []
    assert blocks[(ip("193.10.0.0"), 16)].status is BlockStatus.EXCLUDED


def test_block_exclude_reports_transition_only():
    block = _blocks()[(ip("219.1.0.0"), 16)]
    assert block.exclude(conn("219.1.1.1")) is True
    assert block.exclude(conn("219.1.1.2")) is False
    assert not block.retained


def test_result_independent_of_snapshot_order():
    conns = [conn("219.1.1.1"), conn("193.10.99.1", 53, Protocol.UDP), conn("4.4.4.4")]
    outcomes = set()
    for seed in range(5):
        shuffled = list(conns)
        random.Random(seed).shuffle(shuffled)
        blocks = _blocks()
        resolve_conflicts(blocks, ConnectionSnapshot(tuple(shuffled)))
        outcomes.add(tuple((k, b.status, b.conflict) for k, b in sorted(blocks.items())))
    assert len(outcomes) == 1


def test_udp_conflict_excludes():
    blocks = bucket(endpoints("1.2.3.4"), FixedPrefixPolicy(16))
    resolve_conflicts(blocks, ConnectionSnapshot((conn("1.2.3.4", 53, Protocol.UDP),)))
    assert not blocks[(ip("1.2.0.0"), 16)].retained
