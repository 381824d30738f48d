"""Typed X1 JSON-RPC client on top of the failover dispatcher."""

from typing import Any, Dict, List, Optional

import structlog

from .cache import CacheDuration
from .errors import X1ExplorerError
from .rpc_dispatcher import RPCDispatcher
from .rpc_models import (
    BlockProduction,
    ClusterNode,
    EpochInfo,
    NodeVersion,
    PerformanceSample,
    SignatureInfo,
    Supply,
    VoteAccounts,
    decode_balance,
    decode_block_production,
    decode_cluster_nodes,
    decode_epoch_info,
    decode_int,
    decode_performance_samples,
    decode_signatures,
    decode_supply,
    decode_version,
    decode_vote_accounts,
)

logger = structlog.get_logger(__name__)

# Program IDs
VOTE_PROGRAM = "Vote111111111111111111111111111111111111111"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
STAKE_PROGRAM = "Stake11111111111111111111111111111111111111"
CONFIG_PROGRAM = "Config1111111111111111111111111111111111111"

# Account sizes used as getProgramAccounts filters
VALIDATOR_INFO_ACCOUNT_SIZE = 643
TOKEN_ACCOUNT_SIZE = 165


class X1RpcClient:
    """One coroutine per RPC method the explorer consumes.

    Static or slow-moving results are cached by tier: vote accounts and
    cluster nodes for `medium`, supply and version for `long`. Everything
    else goes to the network on each call.
    """

    def __init__(self, dispatcher: RPCDispatcher):
        self.dispatcher = dispatcher

    async def get_slot(self) -> int:
        return decode_int(await self.dispatcher.call("getSlot"), "slot")

    async def get_block_height(self) -> int:
        return decode_int(await self.dispatcher.call("getBlockHeight"), "block height")

    async def get_epoch_info(self) -> EpochInfo:
        return decode_epoch_info(await self.dispatcher.call("getEpochInfo"))

    async def get_recent_performance_samples(self, limit: int = 60) -> List[PerformanceSample]:
        """Recent throughput samples, newest first."""
        return decode_performance_samples(
            await self.dispatcher.call("getRecentPerformanceSamples", [limit])
        )

    async def get_block(self, slot: int, transaction_details: str = "full", rewards: bool = False) -> Optional[Dict[str, Any]]:
        """Raw block at slot; decode with rpc_models.decode_block."""
        return await self.dispatcher.call("getBlock", [
            slot,
            {
                "encoding": "json",
                "transactionDetails": transaction_details,
                "rewards": rewards,
                "maxSupportedTransactionVersion": 0,
            },
        ])

    async def get_blocks(self, start_slot: int, end_slot: int) -> List[int]:
        return await self.dispatcher.call("getBlocks", [start_slot, end_slot])

    async def get_balance(self, address: str) -> int:
        """Balance in lamports."""
        return decode_balance(await self.dispatcher.call("getBalance", [address]))

    async def get_account_info(self, address: str, encoding: str = "jsonParsed") -> Optional[Dict[str, Any]]:
        result = await self.dispatcher.call("getAccountInfo", [address, {"encoding": encoding}])
        return result.get("value") if isinstance(result, dict) else None

    async def get_program_accounts(
        self,
        program_id: str,
        filters: Optional[List[Dict[str, Any]]] = None,
        encoding: str = "jsonParsed",
    ) -> List[Dict[str, Any]]:
        """Filtered scan of accounts owned by a program."""
        config: Dict[str, Any] = {"encoding": encoding}
        if filters:
            config["filters"] = filters
        result = await self.dispatcher.call("getProgramAccounts", [program_id, config])
        return result if isinstance(result, list) else []

    async def get_stake_accounts(self, address: str) -> List[Dict[str, Any]]:
        """Stake accounts whose withdraw/stake authority is address."""
        return await self.get_program_accounts(
            STAKE_PROGRAM,
            filters=[{"memcmp": {"offset": 12, "bytes": address}}],
        )

    async def get_validator_info_accounts(self) -> List[Dict[str, Any]]:
        """Config-program accounts holding published validator info."""
        return await self.get_program_accounts(
            CONFIG_PROGRAM,
            filters=[{"dataSize": VALIDATOR_INFO_ACCOUNT_SIZE}],
        )

    async def get_token_accounts_for_mint(self, mint: str) -> List[Dict[str, Any]]:
        """Token accounts holding the given mint."""
        return await self.get_program_accounts(
            TOKEN_PROGRAM,
            filters=[
                {"dataSize": TOKEN_ACCOUNT_SIZE},
                {"memcmp": {"offset": 0, "bytes": mint}},
            ],
        )

    async def get_vote_accounts(self) -> VoteAccounts:
        return decode_vote_accounts(
            await self.dispatcher.call("getVoteAccounts", [], "voteAccounts", CacheDuration.MEDIUM)
        )

    async def get_cluster_nodes(self) -> List[ClusterNode]:
        return decode_cluster_nodes(
            await self.dispatcher.call("getClusterNodes", [], "clusterNodes", CacheDuration.MEDIUM)
        )

    async def get_supply(self) -> Supply:
        return decode_supply(
            await self.dispatcher.call(
                "getSupply",
                [{"excludeNonCirculatingAccountsList": True}],
                "supply",
                CacheDuration.LONG,
            )
        )

    async def get_transaction_count(self) -> int:
        return decode_int(await self.dispatcher.call("getTransactionCount"), "transaction count")

    async def get_signatures_for_address(
        self,
        address: str,
        limit: int = 20,
        before: Optional[str] = None,
    ) -> List[SignatureInfo]:
        options: Dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        return decode_signatures(await self.dispatcher.call("getSignaturesForAddress", [address, options]))

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Raw transaction; decode with rpc_models.decode_transaction."""
        return await self.dispatcher.call("getTransaction", [
            signature,
            {"encoding": "json", "maxSupportedTransactionVersion": 0},
        ])

    async def get_leader_schedule(self, slot: Optional[int] = None) -> Optional[Dict[str, List[int]]]:
        return await self.dispatcher.call("getLeaderSchedule", [slot] if slot is not None else [])

    async def get_block_production(
        self,
        first_slot: Optional[int] = None,
        last_slot: Optional[int] = None,
    ) -> BlockProduction:
        params: List[Any] = []
        if first_slot is not None and last_slot is not None:
            params = [{"range": {"firstSlot": first_slot, "lastSlot": last_slot}}]
        return decode_block_production(await self.dispatcher.call("getBlockProduction", params))

    async def get_version(self) -> NodeVersion:
        return decode_version(await self.dispatcher.call("getVersion", [], "version", CacheDuration.LONG))

    async def get_health(self) -> str:
        """'ok' if some endpoint reports healthy, otherwise 'error'."""
        try:
            await self.dispatcher.call("getHealth")
            return "ok"
        except X1ExplorerError as e:
            logger.debug("health_check_failed", error=str(e))
            return "error"
