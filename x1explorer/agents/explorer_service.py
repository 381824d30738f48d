"""ExplorerService - the data layer handed to explorer pages.

Wires the shared components together once per process:
- one ResponseCache and one CallDeduplicator for everything
- one RPCDispatcher (so one last-success pointer) behind an X1RpcClient
- the snapshot, block/window, identity, validator and account aggregators

Usage:
    async with ExplorerService.from_settings(get_settings()) as explorer:
        snapshot = await explorer.get_snapshot()
        blocks = await explorer.get_recent_blocks(10)
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set

import structlog

from ..config.settings import Settings
from ..utils.cache import ResponseCache
from ..utils.dedup import CallDeduplicator
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_dispatcher import RPCDispatcher
from ..utils.rpc_models import PerformanceSample
from ..utils.transaction_classifier import Category, classify
from .account_explorer import AccountExplorer
from .block_aggregator import (
    BlockAggregator,
    CategoryRatios,
    ClassifiedBlock,
    WindowBucket,
    aggregate_window,
)
from .identity_resolver import IdentityResolver
from .snapshot_aggregator import Snapshot, SnapshotAggregator
from .validator_directory import EnrichedValidator, ValidatorDirectory

logger = structlog.get_logger(__name__)


class ExplorerService:
    """Single entry point for explorer data."""

    def __init__(
        self,
        dispatcher: RPCDispatcher,
        deduplicator: Optional[CallDeduplicator] = None,
        slot_time_seconds: float = 0.4,
        snapshot_sample_count: int = 30,
        identity_refresh_interval: float = 300.0,
    ):
        self.dispatcher = dispatcher
        self.cache: ResponseCache = dispatcher.cache
        self.deduplicator = deduplicator or CallDeduplicator()
        self.client = X1RpcClient(dispatcher)

        self.snapshots = SnapshotAggregator(
            self.client,
            self.cache,
            self.deduplicator,
            slot_time_seconds=slot_time_seconds,
            sample_count=snapshot_sample_count,
        )
        self.blocks = BlockAggregator(self.client)
        self.identities = IdentityResolver(
            self.client,
            self.deduplicator,
            refresh_interval=identity_refresh_interval,
        )
        self.validators = ValidatorDirectory(self.client, self.identities)
        self.accounts = AccountExplorer(self.client)

        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExplorerService":
        return cls(
            dispatcher=RPCDispatcher.from_settings(settings),
            deduplicator=CallDeduplicator(default_delay_ms=settings.dedup_delay_ms),
            slot_time_seconds=settings.slot_time_seconds,
            snapshot_sample_count=settings.snapshot_sample_count,
            identity_refresh_interval=settings.identity_refresh_interval,
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self, refresh_identities: bool = True):
        """Open the HTTP session and start the identity refresh loop."""
        await self.dispatcher.start()
        if refresh_identities:
            await self.identities.start()
        logger.info("explorer_service_started", endpoints=len(self.dispatcher.registry))

    async def close(self):
        """Stop background work and release the HTTP session."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.identities.close()
        await self.dispatcher.close()
        logger.info("explorer_service_closed")

    # ------------------------------------------------------------------
    # Downstream API
    # ------------------------------------------------------------------

    async def get_snapshot(self) -> Snapshot:
        return await self.snapshots.get_snapshot()

    async def get_recent_blocks(self, count: int = 10) -> List[ClassifiedBlock]:
        return await self.blocks.get_recent_blocks(count)

    async def get_validator_directory(self) -> List[EnrichedValidator]:
        return await self.validators.get_validator_directory()

    @staticmethod
    def classify(transaction: Any) -> Category:
        return classify(transaction)

    def aggregate_window(
        self,
        samples: Sequence[PerformanceSample],
        window_size: int,
        ratios: Optional[CategoryRatios] = None,
    ) -> WindowBucket:
        """Window bucket split by the given ratios or the latest block mix."""
        return aggregate_window(samples, window_size, ratios or self.blocks.current_ratios())

    async def get_throughput_windows(self, window_size: int = 10, max_windows: int = 6) -> List[WindowBucket]:
        return await self.blocks.get_throughput_windows(window_size, max_windows)

    async def get_performance_history(self, minutes: int = 60) -> List[Dict[str, Any]]:
        return await self.blocks.get_performance_history(minutes)

    async def get_realtime_transactions(self, limit: int = 50) -> List[Dict[str, Any]]:
        return await self.blocks.get_realtime_transactions(limit)

    async def get_epoch_history(self) -> Dict[str, Any]:
        return await self.snapshots.get_epoch_history()

    async def get_token_holders(self, mint: str, limit: int = 20) -> List[Dict[str, Any]]:
        return await self.accounts.get_token_holders(mint, limit)

    async def get_address_overview(self, address: str, limit: int = 20) -> Dict[str, Any]:
        return await self.accounts.get_address_overview(address, limit)

    async def get_health(self) -> str:
        return await self.client.get_health()

    async def probe_endpoints(self) -> List[Dict[str, Any]]:
        return await self.dispatcher.probe_endpoints()

    def get_metrics(self) -> Dict[str, Any]:
        metrics = self.dispatcher.get_metrics()
        metrics["dedup"] = {
            "in_flight": len(self.deduplicator),
            "calls_started": self.deduplicator.calls_started,
            "calls_coalesced": self.deduplicator.calls_coalesced,
        }
        return metrics

    # ------------------------------------------------------------------
    # Best-effort background work
    # ------------------------------------------------------------------

    def prefetch(self) -> None:
        """Warm the cache and the latest block mix for the common pages.

        Runs as detached tasks. Their failures are logged and discarded on
        purpose: a failed prefetch only means the page fetches on demand.
        """
        for name, coro in (
            ("snapshot", self.snapshots.get_snapshot()),
            ("recent_blocks", self.blocks.get_recent_blocks(10)),
            ("vote_accounts", self.client.get_vote_accounts()),
            ("identities", self.identities.refresh_directory()),
        ):
            task = asyncio.create_task(coro, name=f"prefetch:{name}")
            self._background.add(task)
            task.add_done_callback(self._prefetch_done)

    def _prefetch_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("prefetch_failed", task=task.get_name(), error=str(error))
