"""Block and time-window transaction breakdowns.

Per-block counts come from classifying every transaction in a fetched
block. Coarser time windows reuse the category mix of the most recent
blocks and apply it to summed throughput samples, so window views agree
with block views without fetching every transaction in the window.
"""

import asyncio
from dataclasses import asdict, dataclass
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from ..utils.errors import DecodeError, X1ExplorerError
from ..utils.numbers import round_half_up
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_models import (
    LAMPORTS_PER_X1,
    DecodedBlock,
    DecodedTransaction,
    PerformanceSample,
    decode_block,
    decode_transaction,
)
from ..utils.transaction_classifier import Category, classify, invokes_token_program

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CategoryRatios:
    """Share of each category, held as exact fractions."""
    vote: Fraction
    transfer: Fraction
    program: Fraction
    other: Fraction

    def split(self, total: int) -> Tuple[int, int, int, int]:
        """Distribute total across categories; the remainder goes to other."""
        vote = int(total * self.vote)
        transfer = int(total * self.transfer)
        program = int(total * self.program)
        return vote, transfer, program, total - vote - transfer - program

    def to_dict(self) -> Dict[str, float]:
        return {
            "vote": float(self.vote),
            "transfer": float(self.transfer),
            "program": float(self.program),
            "other": float(self.other),
        }


# Typical X1 mix, used when no classified data is available
DEFAULT_RATIOS = CategoryRatios(
    vote=Fraction(70, 100),
    transfer=Fraction(15, 100),
    program=Fraction(10, 100),
    other=Fraction(5, 100),
)


@dataclass(frozen=True)
class ClassifiedBlock:
    slot: int
    blockhash: Optional[str]
    parent_slot: Optional[int]
    block_time: Optional[int]
    tx_count: int
    vote_count: int
    transfer_count: int
    program_count: int
    other_count: int
    block_height: Optional[int] = None
    previous_blockhash: Optional[str] = None
    estimated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WindowBucket:
    total_transactions: int
    slots: int
    vote_count: int
    transfer_count: int
    program_count: int
    other_count: int
    sample_count: int
    complete: bool
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_block(raw_block: Union[DecodedBlock, Dict[str, Any]], slot: Optional[int] = None) -> ClassifiedBlock:
    """Count the categories of every transaction in a block.

    Args:
        raw_block: getBlock result, raw or already decoded
        slot: Slot of a raw block (a decoded block carries its own)

    Returns:
        ClassifiedBlock whose four counts sum to tx_count

    Raises:
        DecodeError: If the block itself is not an object
    """
    if isinstance(raw_block, DecodedBlock):
        block = raw_block
        signatures: Sequence[Any] = ()
    else:
        if slot is None:
            slot = raw_block.get("slot", 0) if isinstance(raw_block, dict) else 0
        block = decode_block(slot, raw_block)
        signatures = raw_block.get("signatures") or ()

    counts = {category: 0 for category in Category}
    for tx in block.transactions:
        counts[classify(tx)] += 1

    # Blocks fetched without transaction detail only list signatures
    tx_count = len(block.transactions) or len(signatures)
    estimated = False
    if tx_count > 0 and not any(counts.values()):
        vote, transfer, program, other = DEFAULT_RATIOS.split(tx_count)
        counts = {
            Category.VOTE: vote,
            Category.TRANSFER: transfer,
            Category.PROGRAM: program,
            Category.OTHER: other,
        }
        estimated = True
        logger.debug("block_breakdown_estimated", slot=block.slot, tx_count=tx_count)

    return ClassifiedBlock(
        slot=block.slot,
        blockhash=block.blockhash,
        parent_slot=block.parent_slot,
        block_time=block.block_time,
        tx_count=tx_count,
        vote_count=counts[Category.VOTE],
        transfer_count=counts[Category.TRANSFER],
        program_count=counts[Category.PROGRAM],
        other_count=counts[Category.OTHER],
        block_height=block.block_height,
        previous_blockhash=block.previous_blockhash,
        estimated=estimated,
    )


def learn_ratios(blocks: Iterable[ClassifiedBlock]) -> CategoryRatios:
    """Category mix across blocks, or DEFAULT_RATIOS if they hold no transactions."""
    blocks = list(blocks)
    total = sum(b.tx_count for b in blocks)
    if total <= 0:
        return DEFAULT_RATIOS
    return CategoryRatios(
        vote=Fraction(sum(b.vote_count for b in blocks), total),
        transfer=Fraction(sum(b.transfer_count for b in blocks), total),
        program=Fraction(sum(b.program_count for b in blocks), total),
        other=Fraction(sum(b.other_count for b in blocks), total),
    )


def aggregate_window(
    samples: Sequence[PerformanceSample],
    window_size: int,
    ratios: Optional[CategoryRatios] = None,
    label: str = "",
) -> WindowBucket:
    """Sum up to window_size consecutive samples and split the total by category.

    Args:
        samples: Throughput samples, newest first
        window_size: Number of consecutive samples in the window
        ratios: Category mix to apply (default DEFAULT_RATIOS)
        label: Display label carried on the bucket

    Returns:
        WindowBucket whose category counts sum to total_transactions
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")

    window = list(samples[:window_size])
    total = sum(s.num_transactions for s in window)
    vote, transfer, program, other = (ratios or DEFAULT_RATIOS).split(total)

    return WindowBucket(
        total_transactions=total,
        slots=sum(s.num_slots for s in window),
        vote_count=vote,
        transfer_count=transfer,
        program_count=program,
        other_count=other,
        sample_count=len(window),
        complete=len(window) == window_size,
        label=label,
    )


def bucket_windows(
    samples: Sequence[PerformanceSample],
    window_size: int,
    max_windows: int,
    ratios: Optional[CategoryRatios] = None,
    sample_minutes: int = 1,
) -> List[WindowBucket]:
    """Consecutive complete windows, newest first, labelled 'Now', '<n>m ago'."""
    buckets = []
    for i in range(max_windows):
        start = i * window_size
        minutes_ago = i * window_size * sample_minutes
        bucket = aggregate_window(
            samples[start:start + window_size],
            window_size,
            ratios,
            label="Now" if i == 0 else f"{minutes_ago}m ago",
        )
        if not bucket.complete:
            break
        buckets.append(bucket)
    return buckets


def rebucket_tps_history(history: Sequence[Dict[str, Any]], size: int) -> List[Dict[str, Any]]:
    """Average consecutive {time, tps} points into groups of size."""
    if size <= 1:
        return list(history)
    aggregated = []
    for i in range(0, len(history), size):
        chunk = history[i:i + size]
        aggregated.append({
            "time": f"{(i // size) * size}m",
            "tps": round_half_up(sum(point["tps"] for point in chunk) / len(chunk)),
        })
    return aggregated


class BlockAggregator:
    """Fetches recent blocks and derives per-block and per-window breakdowns.

    The most recent get_recent_blocks() result is kept so window views
    can reuse its category mix.
    """

    def __init__(self, client: X1RpcClient):
        self.client = client
        self.latest_blocks: List[ClassifiedBlock] = []

    async def get_recent_blocks(self, count: int = 10) -> List[ClassifiedBlock]:
        """Classify the newest `count` slots, newest first.

        Each call re-fetches; slots that are skipped or fail to load are
        left out rather than failing the whole listing.
        """
        current_slot = await self.client.get_slot()
        slots = [current_slot - i for i in range(count) if current_slot - i >= 0]

        results = await asyncio.gather(*(self._fetch_classified(slot) for slot in slots))
        blocks = sorted((b for b in results if b is not None), key=lambda b: b.slot, reverse=True)

        self.latest_blocks = blocks
        logger.debug("recent_blocks_classified", requested=count, returned=len(blocks))
        return blocks

    async def _fetch_classified(self, slot: int) -> Optional[ClassifiedBlock]:
        try:
            raw = await self.client.get_block(slot)
        except X1ExplorerError as e:
            logger.debug("block_fetch_skipped", slot=slot, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return classify_block(raw, slot=slot)
        except DecodeError as e:
            logger.debug("block_decode_skipped", slot=slot, error=str(e))
            return None

    def current_ratios(self) -> CategoryRatios:
        return learn_ratios(self.latest_blocks)

    async def get_performance_history(self, minutes: int = 60) -> List[Dict[str, Any]]:
        """Per-sample throughput, newest first."""
        samples = await self.client.get_recent_performance_samples(minutes)
        return [
            {
                "minutes_ago": i,
                "tps": round_half_up(s.tps),
                "transactions": s.num_transactions,
                "slots": s.num_slots,
                "sample_period": s.sample_period_secs,
            }
            for i, s in enumerate(samples)
        ]

    async def get_throughput_windows(self, window_size: int = 10, max_windows: int = 6) -> List[WindowBucket]:
        """Complete windows over recent samples, split by the latest block mix."""
        samples = await self.client.get_recent_performance_samples(window_size * max_windows)
        return bucket_windows(samples, window_size, max_windows, self.current_ratios())

    async def get_realtime_transactions(self, limit: int = 50, depth: int = 3) -> List[Dict[str, Any]]:
        """Most recent transactions from the newest `depth` blocks."""
        current_slot = await self.client.get_slot()
        transactions: List[Dict[str, Any]] = []

        for slot in range(current_slot, current_slot - depth, -1):
            if len(transactions) >= limit:
                break
            try:
                raw = await self.client.get_block(slot)
                block = decode_block(slot, raw)
            except X1ExplorerError as e:
                logger.debug("realtime_block_skipped", slot=slot, error=str(e))
                continue

            for raw_tx in block.transactions:
                if len(transactions) >= limit:
                    break
                try:
                    tx = decode_transaction(raw_tx)
                except DecodeError:
                    continue
                transactions.append(self._activity(tx, slot, block.block_time))

        return transactions

    @staticmethod
    def _activity(tx: DecodedTransaction, slot: int, block_time: Optional[int]) -> Dict[str, Any]:
        category = classify(tx)
        keys = tx.account_keys
        # System transfers debit account 0 and credit account 1
        recipient = keys[1] if category is Category.TRANSFER and len(keys) > 1 else None
        return {
            "signature": tx.signature,
            "slot": slot,
            "block_time": block_time,
            "category": category.value,
            "token": invokes_token_program(tx),
            "status": "failed" if tx.failed else "success",
            "fee": tx.fee_lamports / LAMPORTS_PER_X1,
            "from": (keys[0] if keys else None) or "",
            "to": recipient or "",
        }
