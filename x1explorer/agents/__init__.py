"""Aggregating components for x1explorer.

This package contains the components that fan out over the RPC client:
- snapshot_aggregator: dashboard snapshot and epoch history
- block_aggregator: per-block and per-window transaction breakdowns
- identity_resolver: validator names from on-chain info and a static table
- validator_directory: enriched validator listing
- account_explorer: token holders and address overviews
- explorer_service: facade wiring everything together
"""

from .block_aggregator import (
    BlockAggregator,
    CategoryRatios,
    ClassifiedBlock,
    WindowBucket,
    aggregate_window,
    classify_block,
)
from .explorer_service import ExplorerService
from .identity_resolver import IdentityRecord, IdentityResolver
from .snapshot_aggregator import Snapshot, SnapshotAggregator
from .validator_directory import EnrichedValidator, ValidatorDirectory

__all__ = [
    'BlockAggregator',
    'CategoryRatios',
    'ClassifiedBlock',
    'WindowBucket',
    'aggregate_window',
    'classify_block',
    'ExplorerService',
    'IdentityRecord',
    'IdentityResolver',
    'Snapshot',
    'SnapshotAggregator',
    'EnrichedValidator',
    'ValidatorDirectory',
]
