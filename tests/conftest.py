"""Shared fixtures: a scripted JSON-RPC network and a controllable clock.

FakeNetwork replaces RPCDispatcher._send, so every test exercises the real
failover, error handling and caching paths without opening sockets.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
import pytest

from x1explorer.utils.cache import ResponseCache
from x1explorer.utils.dedup import CallDeduplicator
from x1explorer.utils.endpoints import EndpointRegistry
from x1explorer.utils.rpc_client import SYSTEM_PROGRAM, VOTE_PROGRAM, X1RpcClient
from x1explorer.utils.rpc_dispatcher import RPCDispatcher

ENDPOINTS = [
    "https://rpc-a.test",
    "https://rpc-b.test",
    "https://rpc-c.test",
]

LAMPORTS = 1_000_000_000


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNetwork:
    """Scripted replies keyed by (endpoint url, method).

    A handler registered without a url answers on every endpoint. Handlers
    are either a constant result or a callable receiving the call params.
    """

    def __init__(self):
        self.handlers: Dict[Tuple[Optional[str], str], Any] = {}
        self.down: Dict[str, BaseException] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[Tuple[str, str, List[Any]]] = []

    def on(self, method: str, result: Any, url: Optional[str] = None) -> None:
        self.handlers[(url, method)] = result

    def fail(self, url: str, error: Optional[BaseException] = None) -> None:
        self.down[url] = error or aiohttp.ClientConnectionError(f"connection refused: {url}")

    def restore(self, url: str) -> None:
        self.down.pop(url, None)

    def slow(self, url: str, seconds: float) -> None:
        self.delays[url] = seconds

    def calls_for(self, method: str) -> List[Tuple[str, str, List[Any]]]:
        return [c for c in self.calls if c[1] == method]

    def urls_called(self, method: Optional[str] = None) -> List[str]:
        return [c[0] for c in self.calls if method is None or c[1] == method]

    async def send(self, endpoint, payload: Dict[str, Any]) -> Any:
        method = payload["method"]
        params = payload["params"]
        self.calls.append((endpoint.url, method, params))

        if endpoint.url in self.delays:
            await asyncio.sleep(self.delays[endpoint.url])
        if endpoint.url in self.down:
            raise self.down[endpoint.url]

        key = (endpoint.url, method) if (endpoint.url, method) in self.handlers else (None, method)
        if key not in self.handlers:
            return {
                "jsonrpc": "2.0",
                "id": payload["id"],
                "error": {"code": -32601, "message": f"Method not found: {method}"},
            }
        handler = self.handlers[key]
        result = handler(*params) if callable(handler) else handler
        return {"jsonrpc": "2.0", "id": payload["id"], "result": result}


def make_dispatcher(
    network: FakeNetwork,
    urls: Optional[List[str]] = None,
    cache: Optional[ResponseCache] = None,
    request_timeout: float = 5.0,
    auth_headers: Optional[Dict[str, Dict[str, str]]] = None,
) -> RPCDispatcher:
    dispatcher = RPCDispatcher(
        EndpointRegistry.from_urls(urls or ENDPOINTS, auth_headers),
        cache=cache,
        request_timeout=request_timeout,
    )
    dispatcher._send = network.send
    return dispatcher


# ---------------------------------------------------------------------------
# Raw RPC payload builders
# ---------------------------------------------------------------------------

def make_tx(*program_ids: str, signature: str = "sig", fee: int = 5000, err: Any = None,
            accounts: Tuple[str, ...] = ("Payer111", "Dest222")) -> Dict[str, Any]:
    """json-encoded transaction with one instruction per program id."""
    account_keys = list(accounts) + list(program_ids)
    instructions = [
        {"programIdIndex": len(accounts) + i, "accounts": [0, 1], "data": ""}
        for i in range(len(program_ids))
    ]
    return {
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": account_keys, "instructions": instructions},
        },
        "meta": {"fee": fee, "err": err},
    }


def make_block(slot: int, transactions: List[Dict[str, Any]], block_time: int = 1_700_000_000) -> Dict[str, Any]:
    return {
        "blockhash": f"hash{slot}",
        "previousBlockhash": f"hash{slot - 1}",
        "parentSlot": slot - 1,
        "blockTime": block_time,
        "blockHeight": slot - 50,
        "transactions": transactions,
    }


def mixed_block(slot: int, votes: int, transfers: int, programs: int, others: int = 0) -> Dict[str, Any]:
    txs = (
        [make_tx(VOTE_PROGRAM, signature=f"v{slot}-{i}") for i in range(votes)]
        + [make_tx(SYSTEM_PROGRAM, signature=f"t{slot}-{i}") for i in range(transfers)]
        + [make_tx("Prog1111", signature=f"p{slot}-{i}") for i in range(programs)]
        + [make_tx(signature=f"o{slot}-{i}") for i in range(others)]
    )
    return make_block(slot, txs)


def info_account(identity: str, name: str, website: Optional[str] = None) -> Dict[str, Any]:
    """jsonParsed validator-info account as returned by a Config-program scan."""
    config_data = {"name": name}
    if website:
        config_data["website"] = website
    return {
        "pubkey": f"info-{identity}",
        "account": {
            "data": {
                "parsed": {
                    "type": "validatorInfo",
                    "info": {
                        "keys": [
                            {"pubkey": "Va1idator1nfo111111111111111111111111111111", "signer": False},
                            {"pubkey": identity, "signer": True},
                        ],
                        "configData": config_data,
                    },
                },
            },
        },
    }


EPOCH_INFO = {
    "epoch": 42,
    "slotIndex": 54_000,
    "slotsInEpoch": 216_000,
    "absoluteSlot": 9_126_000,
    "blockHeight": 9_000_000,
    "transactionCount": 123_456_789,
}

PERFORMANCE_SAMPLES = [
    {"slot": 1000, "numTransactions": 6_000, "numSlots": 150, "samplePeriodSecs": 60},
    {"slot": 850, "numTransactions": 12_000, "numSlots": 150, "samplePeriodSecs": 60},
]

SUPPLY = {
    "context": {"slot": 1000},
    "value": {
        "total": 5_000_000_000 * LAMPORTS,
        "circulating": 1_000_000_000 * LAMPORTS,
        "nonCirculating": 4_000_000_000 * LAMPORTS,
        "nonCirculatingAccounts": [],
    },
}

VOTE_ACCOUNTS = {
    "current": [
        {
            "votePubkey": "VoteBig",
            "nodePubkey": "NodeBig",
            "activatedStake": 3_000_000 * LAMPORTS,
            "commission": 5,
            "lastVote": 995,
            "rootSlot": 960,
            "epochCredits": [[41, 100_000, 60_000], [42, 127_000, 100_000]],
            "epochVoteAccount": True,
        },
        {
            "votePubkey": "VoteSmall",
            "nodePubkey": "NodeSmall",
            "activatedStake": 1_000_000 * LAMPORTS,
            "commission": 10,
            "lastVote": 990,
            "rootSlot": 950,
            "epochCredits": [[42, 80_000, 70_000]],
            "epochVoteAccount": True,
        },
    ],
    "delinquent": [
        {
            "votePubkey": "VoteLate",
            "nodePubkey": "NodeLate",
            "activatedStake": 1_000_000 * LAMPORTS,
            "commission": 100,
            "lastVote": 500,
            "rootSlot": 400,
            "epochCredits": [[42, 5_000, 1_000]],
            "epochVoteAccount": True,
        },
    ],
}

CLUSTER_NODES = [
    {"pubkey": "NodeBig", "gossip": "10.0.0.1:8001", "tpu": "10.0.0.1:8003",
     "rpc": "10.0.0.1:8899", "version": "2.0.18", "featureSet": 123},
    {"pubkey": "NodeSmall", "gossip": "10.0.0.2:8001", "version": "2.0.17"},
]

BLOCK_PRODUCTION = {
    "context": {"slot": 1000},
    "value": {
        "byIdentity": {"NodeBig": [100, 98], "NodeSmall": [50, 50]},
        "range": {"firstSlot": 9_072_000, "lastSlot": 9_126_000},
    },
}


def install_chain(network: FakeNetwork, current_slot: int = 1000) -> None:
    """Register a healthy, consistent chain on every endpoint."""
    network.on("getSlot", current_slot)
    network.on("getBlockHeight", current_slot - 50)
    network.on("getEpochInfo", EPOCH_INFO)
    network.on("getRecentPerformanceSamples", lambda limit: PERFORMANCE_SAMPLES[:limit])
    network.on("getSupply", lambda *params: SUPPLY)
    network.on("getTransactionCount", 123_456_789)
    network.on("getVoteAccounts", lambda *params: VOTE_ACCOUNTS)
    network.on("getClusterNodes", lambda *params: CLUSTER_NODES)
    network.on("getVersion", lambda *params: {"solana-core": "2.0.18", "feature-set": 123})
    network.on("getBlockProduction", lambda *params: BLOCK_PRODUCTION)
    network.on("getHealth", "ok")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def cache(clock) -> ResponseCache:
    return ResponseCache(clock=clock)


@pytest.fixture
def dispatcher(network, cache) -> RPCDispatcher:
    return make_dispatcher(network, cache=cache)


@pytest.fixture
def client(dispatcher) -> X1RpcClient:
    return X1RpcClient(dispatcher)


@pytest.fixture
def deduplicator() -> CallDeduplicator:
    return CallDeduplicator(default_delay_ms=0)


@pytest.fixture
def chain(network) -> FakeNetwork:
    install_chain(network)
    return network


@pytest.fixture
def make_client(network) -> Callable[..., X1RpcClient]:
    def factory(**kwargs) -> X1RpcClient:
        return X1RpcClient(make_dispatcher(network, **kwargs))
    return factory
