"""Dashboard snapshot: one consistent view of network state.

Fans out the independent RPC queries concurrently and folds them into a
Snapshot. If any query fails the whole snapshot fails; a snapshot never
mixes fresh fields with stale or missing ones.
"""

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ..utils.cache import CacheDuration, ResponseCache
from ..utils.dedup import CallDeduplicator
from ..utils.errors import X1ExplorerError
from ..utils.numbers import round_half_up
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_models import (
    LAMPORTS_PER_X1,
    BlockProduction,
    EpochInfo,
    NodeVersion,
    PerformanceSample,
    Supply,
    VoteAccounts,
)

logger = structlog.get_logger(__name__)

SNAPSHOT_CACHE_KEY = "dashboardData"


@dataclass(frozen=True)
class Snapshot:
    slot: int
    block_height: int
    epoch: int
    epoch_progress_pct: float
    slots_remaining: int
    eta_seconds: int
    tx_count_total: int
    tps_current: int
    tps_history: List[Dict[str, Any]] = field(default_factory=list)
    supply_total: float = 0.0
    supply_circulating: float = 0.0
    supply_non_circulating: float = 0.0
    validators_active: int = 0
    validators_delinquent: int = 0
    stake_total: float = 0.0
    node_version: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def average_tps(samples: List[PerformanceSample]) -> int:
    """Mean per-sample TPS, rounded; 0 without samples."""
    if not samples:
        return 0
    return round_half_up(sum(s.tps for s in samples) / len(samples))


def tps_history(samples: List[PerformanceSample]) -> List[Dict[str, Any]]:
    """Chronological {time, tps} points from newest-first samples."""
    n = len(samples)
    points = [{"time": f"{n - i}m", "tps": round_half_up(s.tps)} for i, s in enumerate(samples)]
    points.reverse()
    return points


def build_snapshot(
    slot: int,
    block_height: int,
    epoch_info: EpochInfo,
    samples: List[PerformanceSample],
    supply: Supply,
    transaction_count: int,
    vote_accounts: VoteAccounts,
    version: NodeVersion,
    slot_time_seconds: float = 0.4,
) -> Snapshot:
    """Fold fan-out results into a Snapshot."""
    slots_in_epoch = epoch_info.slots_in_epoch
    progress = round_half_up(epoch_info.slot_index / slots_in_epoch * 100, 1) if slots_in_epoch else 0.0
    slots_remaining = epoch_info.slots_remaining

    return Snapshot(
        slot=slot,
        block_height=block_height,
        epoch=epoch_info.epoch,
        epoch_progress_pct=progress,
        slots_remaining=slots_remaining,
        eta_seconds=round_half_up(slots_remaining * slot_time_seconds),
        tx_count_total=transaction_count,
        tps_current=average_tps(samples),
        tps_history=tps_history(samples),
        supply_total=supply.total / LAMPORTS_PER_X1,
        supply_circulating=supply.circulating / LAMPORTS_PER_X1,
        supply_non_circulating=supply.non_circulating / LAMPORTS_PER_X1,
        validators_active=len(vote_accounts.current),
        validators_delinquent=len(vote_accounts.delinquent),
        stake_total=vote_accounts.total_stake / LAMPORTS_PER_X1,
        node_version=version.label,
    )


class SnapshotAggregator:
    """Computes dashboard snapshots, shared by bursts of callers.

    A snapshot is cached under the short tier; callers arriving while one
    is being computed join that computation instead of starting another.
    """

    def __init__(
        self,
        client: X1RpcClient,
        cache: ResponseCache,
        deduplicator: CallDeduplicator,
        slot_time_seconds: float = 0.4,
        sample_count: int = 30,
    ):
        self.client = client
        self.cache = cache
        self.deduplicator = deduplicator
        self.slot_time_seconds = slot_time_seconds
        self.sample_count = sample_count

    async def get_snapshot(self) -> Snapshot:
        """Current snapshot, from cache when fresh.

        Raises:
            AllEndpointsFailedError: If any fan-out query exhausted every endpoint
            DecodeError: If any fan-out result had an unexpected shape
        """
        cached = self.cache.get(SNAPSHOT_CACHE_KEY)
        if cached is not None:
            return cached
        return await self.deduplicator.dedupe(SNAPSHOT_CACHE_KEY, self._compute, delay_ms=0)

    async def _compute(self) -> Snapshot:
        (
            slot,
            block_height,
            epoch_info,
            samples,
            supply,
            transaction_count,
            vote_accounts,
            version,
        ) = await asyncio.gather(
            self.client.get_slot(),
            self.client.get_block_height(),
            self.client.get_epoch_info(),
            self.client.get_recent_performance_samples(self.sample_count),
            self.client.get_supply(),
            self.client.get_transaction_count(),
            self.client.get_vote_accounts(),
            self.client.get_version(),
        )

        snapshot = build_snapshot(
            slot,
            block_height,
            epoch_info,
            samples,
            supply,
            transaction_count,
            vote_accounts,
            version,
            slot_time_seconds=self.slot_time_seconds,
        )
        self.cache.set(SNAPSHOT_CACHE_KEY, snapshot, CacheDuration.SHORT)
        logger.debug("snapshot_computed", slot=snapshot.slot, tps=snapshot.tps_current)
        return snapshot

    async def get_epoch_history(self) -> Dict[str, Any]:
        """Epoch progress with skip statistics from block production.

        Skip figures are None when block production is unavailable.
        """
        epoch_info, block_production, samples = await asyncio.gather(
            self.client.get_epoch_info(),
            self._optional_block_production(),
            self.client.get_recent_performance_samples(60),
        )

        produced: Optional[int] = None
        skipped: Optional[int] = None
        skip_rate: Optional[float] = None
        if block_production is not None and block_production.by_identity:
            leader, produced = block_production.totals()
            skipped = leader - produced
            skip_rate = round(skipped / leader * 100, 4) if leader > 0 else 0.0

        return {
            "epoch": epoch_info.epoch,
            "slot_index": epoch_info.slot_index,
            "slots_in_epoch": epoch_info.slots_in_epoch,
            "absolute_slot": epoch_info.absolute_slot,
            "produced_slots": produced,
            "skipped_slots": skipped,
            "skip_rate": skip_rate,
            "avg_tps": average_tps(samples),
        }

    async def _optional_block_production(self) -> Optional[BlockProduction]:
        try:
            return await self.client.get_block_production()
        except X1ExplorerError as e:
            logger.debug("block_production_unavailable", error=str(e))
            return None
