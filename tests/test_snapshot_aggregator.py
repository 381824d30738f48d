"""Tests for the dashboard snapshot and epoch statistics."""

import asyncio

import pytest

from x1explorer.agents.snapshot_aggregator import (
    SNAPSHOT_CACHE_KEY,
    SnapshotAggregator,
    average_tps,
    build_snapshot,
    tps_history,
)
from x1explorer.utils.cache import ResponseCache
from x1explorer.utils.dedup import CallDeduplicator
from x1explorer.utils.errors import AllEndpointsFailedError
from x1explorer.utils.rpc_models import (
    NodeVersion,
    PerformanceSample,
    Supply,
    VoteAccounts,
    decode_epoch_info,
    decode_performance_samples,
)

from conftest import EPOCH_INFO, ENDPOINTS, PERFORMANCE_SAMPLES


@pytest.fixture
def aggregator(client, cache, deduplicator):
    return SnapshotAggregator(client, cache, deduplicator)


class TestDerivedFields:

    def test_build_snapshot(self):
        snapshot = build_snapshot(
            slot=1000,
            block_height=950,
            epoch_info=decode_epoch_info(EPOCH_INFO),
            samples=decode_performance_samples(PERFORMANCE_SAMPLES),
            supply=Supply(total=5 * 10**18, circulating=10**18, non_circulating=4 * 10**18),
            transaction_count=77,
            vote_accounts=VoteAccounts.model_validate({
                "current": [{"votePubkey": "v1", "nodePubkey": "n1", "activatedStake": 2 * 10**9}],
                "delinquent": [{"votePubkey": "v2", "nodePubkey": "n2", "activatedStake": 10**9}],
            }),
            version=NodeVersion.model_validate({"solana-core": "2.0.18"}),
        )

        assert snapshot.epoch == 42
        assert snapshot.epoch_progress_pct == 25.0
        assert snapshot.slots_remaining == 162_000
        assert snapshot.eta_seconds == 64_800
        assert snapshot.tps_current == 150
        assert snapshot.tps_history == [{"time": "1m", "tps": 200}, {"time": "2m", "tps": 100}]
        assert snapshot.supply_total == 5_000_000_000
        assert snapshot.supply_circulating == 1_000_000_000
        assert snapshot.validators_active == 1
        assert snapshot.validators_delinquent == 1
        assert snapshot.stake_total == 3
        assert snapshot.node_version == "2.0.18"
        assert snapshot.tx_count_total == 77

    def test_progress_rounded_to_one_decimal(self):
        info = decode_epoch_info({**EPOCH_INFO, "slotIndex": 1, "slotsInEpoch": 3})
        snapshot = build_snapshot(
            1, 1, info, [], Supply(total=0, circulating=0, non_circulating=0), 0,
            VoteAccounts(), NodeVersion(),
        )

        assert snapshot.epoch_progress_pct == 33.3
        assert snapshot.tps_current == 0
        assert snapshot.tps_history == []
        assert snapshot.node_version == "unknown"

    def test_average_tps_counts_zero_period_as_idle(self):
        samples = [
            PerformanceSample(num_transactions=600, sample_period_secs=60),
            PerformanceSample(num_transactions=600, sample_period_secs=0),
        ]
        assert average_tps(samples) == 5

    def test_tps_history_is_chronological(self):
        samples = [PerformanceSample(num_transactions=n * 60, sample_period_secs=60) for n in (3, 2, 1)]
        assert [p["time"] for p in tps_history(samples)] == ["1m", "2m", "3m"]
        assert [p["tps"] for p in tps_history(samples)] == [1, 2, 3]

    def test_average_tps_rounds_ties_up(self):
        samples = [
            PerformanceSample(num_transactions=120, sample_period_secs=60),
            PerformanceSample(num_transactions=180, sample_period_secs=60),
        ]
        assert average_tps(samples) == 3

    def test_tps_history_rounds_ties_up(self):
        samples = [PerformanceSample(num_transactions=150, sample_period_secs=60)]
        assert tps_history(samples) == [{"time": "1m", "tps": 3}]

    def test_progress_rounds_ties_up(self):
        info = decode_epoch_info({**EPOCH_INFO, "slotIndex": 49, "slotsInEpoch": 400})
        snapshot = build_snapshot(
            1, 1, info, [], Supply(total=0, circulating=0, non_circulating=0), 0,
            VoteAccounts(), NodeVersion(),
        )

        assert snapshot.epoch_progress_pct == 12.3


class TestGetSnapshot:

    @pytest.mark.asyncio
    async def test_fetches_every_field(self, chain, aggregator):
        snapshot = await aggregator.get_snapshot()

        assert snapshot.slot == 1000
        assert snapshot.block_height == 950
        assert snapshot.tx_count_total == 123_456_789
        assert snapshot.validators_active == 2
        assert snapshot.validators_delinquent == 1
        assert snapshot.stake_total == 5_000_000
        assert snapshot.supply_non_circulating == 4_000_000_000
        assert snapshot.node_version == "2.0.18"
        assert chain.calls_for("getRecentPerformanceSamples")[0][2] == [30]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, chain, aggregator, cache, clock):
        first = await aggregator.get_snapshot()
        calls = len(chain.calls)

        second = await aggregator.get_snapshot()

        assert second is first
        assert len(chain.calls) == calls
        assert SNAPSHOT_CACHE_KEY in cache

        clock.advance(3.5)
        await aggregator.get_snapshot()
        assert len(chain.calls_for("getSlot")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fan_out(self, chain, aggregator):
        snapshots = await asyncio.gather(*(aggregator.get_snapshot() for _ in range(10)))

        assert all(s is snapshots[0] for s in snapshots)
        assert len(chain.calls_for("getSlot")) == 1
        assert len(chain.calls_for("getEpochInfo")) == 1

    @pytest.mark.asyncio
    async def test_any_failed_query_fails_the_snapshot(self, chain, aggregator, cache):
        del chain.handlers[(None, "getTransactionCount")]

        with pytest.raises(AllEndpointsFailedError) as exc_info:
            await aggregator.get_snapshot()

        assert exc_info.value.method == "getTransactionCount"
        assert exc_info.value.attempts == len(ENDPOINTS)
        assert SNAPSHOT_CACHE_KEY not in cache

    @pytest.mark.asyncio
    async def test_custom_sample_count_and_slot_time(self, chain, client):
        aggregator = SnapshotAggregator(
            client, ResponseCache(), CallDeduplicator(default_delay_ms=0),
            slot_time_seconds=0.5, sample_count=1,
        )

        snapshot = await aggregator.get_snapshot()

        assert snapshot.eta_seconds == 81_000
        assert snapshot.tps_current == 100
        assert chain.calls_for("getRecentPerformanceSamples")[0][2] == [1]


class TestEpochHistory:

    @pytest.mark.asyncio
    async def test_skip_statistics_from_block_production(self, chain, aggregator):
        history = await aggregator.get_epoch_history()

        assert history["epoch"] == 42
        assert history["produced_slots"] == 148
        assert history["skipped_slots"] == 2
        assert history["skip_rate"] == pytest.approx(1.3333, abs=1e-4)
        assert history["avg_tps"] == 150

    @pytest.mark.asyncio
    async def test_unknown_skip_statistics_without_block_production(self, chain, aggregator):
        del chain.handlers[(None, "getBlockProduction")]

        history = await aggregator.get_epoch_history()

        assert history["skip_rate"] is None
        assert history["produced_slots"] is None
        assert history["skipped_slots"] is None
        assert history["slot_index"] == 54_000
