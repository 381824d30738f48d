"""Address and token lookups."""

import asyncio
from typing import Any, Dict, List

import structlog

from ..utils.errors import DecodeError, X1ExplorerError
from ..utils.rpc_client import X1RpcClient
from ..utils.rpc_models import LAMPORTS_PER_X1, TokenHolder, decode_token_holder

logger = structlog.get_logger(__name__)


class AccountExplorer:
    """Token-holder enumeration and per-address overviews."""

    def __init__(self, client: X1RpcClient):
        self.client = client

    async def get_token_holders(self, mint: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Largest holders of a mint with their share of the listed total."""
        accounts = await self.client.get_token_accounts_for_mint(mint)

        holders: List[TokenHolder] = []
        for account in accounts:
            try:
                holder = decode_token_holder(account)
            except DecodeError as e:
                logger.debug("token_account_skipped", mint=mint, error=str(e))
                continue
            if holder.amount > 0:
                holders.append(holder)

        holders.sort(key=lambda h: h.amount, reverse=True)
        top = holders[:limit]
        listed_total = sum(h.balance for h in top)

        return [
            {
                "address": h.owner,
                "token_account": h.address,
                "balance": h.balance,
                "percentage": h.balance / listed_total * 100 if listed_total else 0.0,
            }
            for h in top
        ]

    async def get_address_overview(self, address: str, limit: int = 20) -> Dict[str, Any]:
        """Balance, account info and recent signatures; each part optional."""
        balance, account_info, signatures = await asyncio.gather(
            self.client.get_balance(address),
            self.client.get_account_info(address),
            self.client.get_signatures_for_address(address, limit=limit),
            return_exceptions=True,
        )

        overview: Dict[str, Any] = {"address": address}

        if isinstance(balance, X1ExplorerError):
            logger.debug("address_balance_unavailable", address=address, error=str(balance))
            overview["balance"] = None
        elif isinstance(balance, BaseException):
            raise balance
        else:
            overview["balance"] = balance / LAMPORTS_PER_X1

        if isinstance(account_info, X1ExplorerError):
            overview["account"] = None
        elif isinstance(account_info, BaseException):
            raise account_info
        else:
            overview["account"] = account_info

        if isinstance(signatures, X1ExplorerError):
            overview["signatures"] = []
        elif isinstance(signatures, BaseException):
            raise signatures
        else:
            overview["signatures"] = [s.model_dump() for s in signatures]

        return overview
