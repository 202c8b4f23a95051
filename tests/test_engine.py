import pytest

from splitroute.config import AggregationConfig
from splitroute.engine import run_engine
from splitroute.errors import InvalidPrefixLengthError
from splitroute.models import ConnectionObservation, ConnectionSnapshot, ObservationSet, Outcome, Protocol
from splitroute.processing.allowlist import build_allow_list
from splitroute.processing.bucket import FixedPrefixPolicy, bucket
from splitroute.processing.conflicts import resolve_conflicts

from conftest import endpoints, ip

SITE = ("219.1.5.10", "219.1.8.2", "193.10.44.3")


def snap(*conns):
    return ConnectionSnapshot(tuple(ConnectionObservation(ip(a), port, proto) for proto, a, port in conns))


def test_no_conflicts_gives_sorted_allow_list():
    result = run_engine(ObservationSet(endpoints(*SITE)), snapshot=ConnectionSnapshot.empty())
    assert result.outcome is Outcome.ALLOWED
    assert result.allow_list.cidrs() == ["193.10.0.0/16", "219.1.0.0/16"]
    assert result.allow_list.pairs() == [("193.10.0.0", 16), ("219.1.0.0", 16)]


def test_conflicting_block_is_dropped():
    result = run_engine(ObservationSet(endpoints(*SITE)), snapshot=snap((Protocol.TCP, "219.1.200.5", 443)))
    assert result.allow_list.cidrs() == ["193.10.0.0/16"]
    assert [b.cidr for b in result.excluded] == ["219.1.0.0/16"]
    assert len(result.blocks) == 2


def test_empty_observation_set_is_not_an_error():
    result = run_engine(ObservationSet())
    assert result.outcome is Outcome.NO_ENDPOINTS
    assert list(result.allow_list) == []
    assert result.blocks == {}


def test_every_block_excluded_is_distinct_from_no_input():
    result = run_engine(ObservationSet(endpoints("1.2.3.4")), snapshot=snap((Protocol.UDP, "1.2.3.4", 53)))
    assert result.outcome is Outcome.ALL_EXCLUDED
    assert len(result.allow_list) == 0
    assert len(result.blocks) == 1


def test_allow_list_order_independent_of_input_order():
    addrs = ["200.0.0.1", "3.3.3.3", "100.1.1.1", "45.6.7.8"]
    forward = run_engine(ObservationSet(endpoints(*addrs)))
    backward = run_engine([ObservationSet(endpoints(*reversed(addrs[:2]))), ObservationSet(endpoints(*addrs[2:]))])
    assert forward.allow_list.cidrs() == backward.allow_list.cidrs()
    assert forward.allow_list.cidrs() == sorted(forward.allow_list.cidrs(), key=lambda c: ip(c.split("/")[0]))


def test_snapshot_callable_is_taken_once_after_aggregation():
    calls = []

    def take():
        calls.append("taken")
        return snap((Protocol.TCP, "193.10.1.1", 443))

    result = run_engine(ObservationSet(endpoints(*SITE)), snapshot=take)
    assert calls == ["taken"]
    assert result.allow_list.cidrs() == ["219.1.0.0/16"]


def test_invalid_snapshot_provider_error_propagates():
    def broken():
        raise RuntimeError("socket table unavailable")

    with pytest.raises(RuntimeError):
        run_engine(ObservationSet(endpoints(*SITE)), snapshot=broken)


def test_prefix_from_config():
    result = run_engine(ObservationSet(endpoints(*SITE)), config=AggregationConfig(prefix_len=24))
    assert result.allow_list.cidrs() == ["193.10.44.0/24", "219.1.5.0/24", "219.1.8.0/24"]


def test_parallel_shards_match_sequential():
    shards = [ObservationSet(endpoints("1.1.1.1", "1.1.2.2")), ObservationSet(endpoints("9.9.9.9", "1.1.3.3"))]
    seq = run_engine(shards)
    par = run_engine(shards, config=AggregationConfig(workers=4))
    assert seq.allow_list.cidrs() == par.allow_list.cidrs() == ["1.1.0.0/16", "9.9.0.0/16"]


def test_invalid_prefix_rejected_before_aggregation():
    with pytest.raises(InvalidPrefixLengthError):
        run_engine(ObservationSet(endpoints(*SITE)), policy=FixedPrefixPolicy(33))


def test_build_allow_list_skips_excluded():
    blocks = bucket(endpoints(*SITE), FixedPrefixPolicy(16))
    blocks[(ip("193.10.0.0"), 16)].exclude(ConnectionObservation(ip("193.10.0.9"), 80, Protocol.TCP))
    assert build_allow_list(blocks).cidrs() == ["219.1.0.0/16"]
    assert build_allow_list({}).cidrs() == []


def test_allow_list_unaffected_by_later_exclusion():
    blocks = bucket(endpoints(*SITE), FixedPrefixPolicy(16))
    allow_list = build_allow_list(blocks)
    resolve_conflicts(blocks, snap((Protocol.TCP, "219.1.0.7", 443)))

    assert not blocks[(ip("219.1.0.0"), 16)].retained
    assert [b.retained for b in allow_list] == [True, True]
    assert allow_list.cidrs() == ["193.10.0.0/16", "219.1.0.0/16"]
