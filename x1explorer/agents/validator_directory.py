"""Validator table: vote accounts joined with node info and identities."""

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import structlog

from ..utils.errors import X1ExplorerError
from ..utils.numbers import round_half_up
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_models import LAMPORTS_PER_X1, BlockProduction, ClusterNode, VoteAccount
from .identity_resolver import IdentityResolver

logger = structlog.get_logger(__name__)

MAX_UPTIME_PCT = 99.9


@dataclass(frozen=True)
class EnrichedValidator:
    vote_pubkey: str
    node_pubkey: str
    name: str
    icon: str
    website: Optional[str]
    activated_stake: float
    stake_percent: float
    commission: int
    last_vote: int
    vote_lag: int
    root_slot: Optional[int]
    credits: int
    credits_this_epoch: int
    credits_prev_epoch: int
    uptime: float
    skip_rate: Optional[float]
    delinquent: bool
    version: str = "unknown"
    gossip: Optional[str] = None
    tpu: Optional[str] = None
    rpc: Optional[str] = None
    feature_set: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _epoch_credits(vote: VoteAccount) -> tuple:
    """(total credits, earned this epoch, earned previous epoch)."""
    history = vote.epoch_credits
    current = history[-1] if history else [0, 0, 0]
    previous = history[-2] if len(history) > 1 else [0, 0, 0]
    try:
        return current[1], current[1] - current[2], previous[1] - previous[2]
    except IndexError:
        return 0, 0, 0


class ValidatorDirectory:
    """Builds the enriched validator listing used by validator pages."""

    def __init__(self, client: X1RpcClient, identities: IdentityResolver):
        self.client = client
        self.identities = identities

    async def get_validator_directory(self) -> List[EnrichedValidator]:
        """Every current and delinquent validator, largest stake first.

        Raises:
            AllEndpointsFailedError: If a required query exhausted every endpoint
        """
        await self.identities.refresh_directory()

        vote_accounts, cluster_nodes, epoch_info, current_slot, block_production = await asyncio.gather(
            self.client.get_vote_accounts(),
            self.client.get_cluster_nodes(),
            self.client.get_epoch_info(),
            self.client.get_slot(),
            self._optional_block_production(),
        )

        nodes: Dict[str, ClusterNode] = {node.pubkey: node for node in cluster_nodes}
        total_active = sum(v.activated_stake for v in vote_accounts.current)

        validators = [
            self._enrich(v, nodes.get(v.node_pubkey), total_active, current_slot,
                         epoch_info.slot_index, block_production, delinquent=False)
            for v in vote_accounts.current
        ]
        validators.extend(
            self._enrich(v, nodes.get(v.node_pubkey), total_active, current_slot,
                         epoch_info.slot_index, block_production, delinquent=True)
            for v in vote_accounts.delinquent
        )

        validators.sort(key=lambda v: v.activated_stake, reverse=True)
        return validators

    async def _optional_block_production(self) -> Optional[BlockProduction]:
        try:
            return await self.client.get_block_production()
        except X1ExplorerError as e:
            logger.debug("block_production_unavailable", error=str(e))
            return None

    def _enrich(
        self,
        vote: VoteAccount,
        node: Optional[ClusterNode],
        total_active: int,
        current_slot: int,
        slot_index: int,
        block_production: Optional[BlockProduction],
        delinquent: bool,
    ) -> EnrichedValidator:
        identity = self.identities.resolve(vote.vote_pubkey, vote.node_pubkey)
        skip_rate = block_production.skip_rate(vote.node_pubkey) if block_production else None

        if delinquent:
            credits, this_epoch, prev_epoch, uptime = 0, 0, 0, 0.0
        else:
            credits, this_epoch, prev_epoch = _epoch_credits(vote)
            uptime = min(MAX_UPTIME_PCT, this_epoch / slot_index * 100) if slot_index > 0 else MAX_UPTIME_PCT

        return EnrichedValidator(
            vote_pubkey=vote.vote_pubkey,
            node_pubkey=vote.node_pubkey,
            name=identity.name,
            icon=identity.icon,
            website=identity.website,
            activated_stake=vote.activated_stake / LAMPORTS_PER_X1,
            stake_percent=round_half_up(vote.activated_stake / total_active * 100, 2) if total_active else 0.0,
            commission=vote.commission,
            last_vote=vote.last_vote,
            vote_lag=current_slot - vote.last_vote,
            root_slot=vote.root_slot,
            credits=credits,
            credits_this_epoch=this_epoch,
            credits_prev_epoch=prev_epoch,
            uptime=uptime,
            skip_rate=skip_rate,
            delinquent=delinquent,
            version=(node.version if node and node.version else "unknown"),
            gossip=node.gossip if node else None,
            tpu=node.tpu if node else None,
            rpc=node.rpc if node else None,
            feature_set=node.feature_set if node else None,
        )
