"""Tests for the typed X1RpcClient wrappers.

Test Coverage:
- Request parameters sent for each wrapper
- Cache tiers per method (medium, long, uncached)
- Decoding into models and DecodeError on malformed results
- get_health never raising
"""

import pytest

from x1explorer.utils.errors import DecodeError
from x1explorer.utils.rpc_client import STAKE_PROGRAM, TOKEN_PROGRAM, TOKEN_ACCOUNT_SIZE

from conftest import BLOCK_PRODUCTION, ENDPOINTS, LAMPORTS, VOTE_ACCOUNTS


def sent_params(network, method):
    return [params for _, _, params in network.calls_for(method)]


class TestCacheTiers:

    @pytest.mark.asyncio
    async def test_vote_accounts_cached_for_medium_tier(self, network, client, clock):
        network.on("getVoteAccounts", VOTE_ACCOUNTS)

        first = await client.get_vote_accounts()
        clock.advance(44)
        await client.get_vote_accounts()
        assert len(network.calls_for("getVoteAccounts")) == 1

        clock.advance(2)
        await client.get_vote_accounts()
        assert len(network.calls_for("getVoteAccounts")) == 2
        assert [v.vote_pubkey for v in first.current] == ["VoteBig", "VoteSmall"]

    @pytest.mark.asyncio
    async def test_supply_and_version_cached_for_long_tier(self, chain, client, clock):
        supply = await client.get_supply()
        version = await client.get_version()
        clock.advance(599)
        await client.get_supply()
        await client.get_version()

        assert len(chain.calls_for("getSupply")) == 1
        assert len(chain.calls_for("getVersion")) == 1
        assert supply.circulating == 1_000_000_000 * LAMPORTS
        assert version.label == "2.0.18"

    @pytest.mark.asyncio
    async def test_slot_is_not_cached(self, chain, client):
        await client.get_slot()
        await client.get_slot()
        assert len(chain.calls_for("getSlot")) == 2


class TestRequestParameters:

    @pytest.mark.asyncio
    async def test_get_blocks_range(self, network, client):
        network.on("getBlocks", lambda start, end: list(range(start, end + 1)))

        assert await client.get_blocks(10, 13) == [10, 11, 12, 13]
        assert sent_params(network, "getBlocks") == [[10, 13]]

    @pytest.mark.asyncio
    async def test_stake_accounts_filter_on_authority(self, network, client):
        network.on("getProgramAccounts", [{"pubkey": "Stake1", "account": {}}])

        accounts = await client.get_stake_accounts("Owner111")

        assert accounts == [{"pubkey": "Stake1", "account": {}}]
        program, config = sent_params(network, "getProgramAccounts")[0]
        assert program == STAKE_PROGRAM
        assert config["filters"] == [{"memcmp": {"offset": 12, "bytes": "Owner111"}}]

    @pytest.mark.asyncio
    async def test_token_accounts_filter_on_size_and_mint(self, network, client):
        network.on("getProgramAccounts", None)

        assert await client.get_token_accounts_for_mint("Mint111") == []
        program, config = sent_params(network, "getProgramAccounts")[0]
        assert program == TOKEN_PROGRAM
        assert config["filters"] == [
            {"dataSize": TOKEN_ACCOUNT_SIZE},
            {"memcmp": {"offset": 0, "bytes": "Mint111"}},
        ]

    @pytest.mark.asyncio
    async def test_get_transaction_requests_versioned_json(self, network, client):
        network.on("getTransaction", None)

        assert await client.get_transaction("Sig111") is None
        assert sent_params(network, "getTransaction") == [
            ["Sig111", {"encoding": "json", "maxSupportedTransactionVersion": 0}],
        ]

    @pytest.mark.asyncio
    async def test_leader_schedule_slot_is_optional(self, network, client):
        network.on("getLeaderSchedule", {"NodeBig": [0, 1, 2, 3]})

        assert await client.get_leader_schedule() == {"NodeBig": [0, 1, 2, 3]}
        await client.get_leader_schedule(0)

        assert sent_params(network, "getLeaderSchedule") == [[], [0]]

    @pytest.mark.asyncio
    async def test_block_production_range_is_optional(self, network, client):
        network.on("getBlockProduction", lambda *params: BLOCK_PRODUCTION)

        production = await client.get_block_production(200, 299)
        await client.get_block_production()

        assert sent_params(network, "getBlockProduction") == [
            [{"range": {"firstSlot": 200, "lastSlot": 299}}],
            [],
        ]
        assert production.first_slot == 9_072_000
        assert production.skip_rate("NodeBig") == pytest.approx(2.0)
        assert production.skip_rate("Unknown") is None

    @pytest.mark.asyncio
    async def test_signatures_pagination(self, network, client):
        network.on("getSignaturesForAddress", [{"signature": "S1", "slot": 5, "blockTime": 1}])

        signatures = await client.get_signatures_for_address("Addr", limit=5, before="S0")

        assert signatures[0].signature == "S1"
        assert sent_params(network, "getSignaturesForAddress") == [["Addr", {"limit": 5, "before": "S0"}]]


class TestDecoding:

    @pytest.mark.asyncio
    async def test_malformed_slot_raises_decode_error(self, network, client):
        network.on("getSlot", "not a slot")

        with pytest.raises(DecodeError):
            await client.get_slot()

    @pytest.mark.asyncio
    async def test_balance_unwraps_context_value(self, network, client):
        network.on("getBalance", {"context": {"slot": 1}, "value": 42})
        assert await client.get_balance("Addr") == 42

    @pytest.mark.asyncio
    async def test_missing_account_is_none(self, network, client):
        network.on("getAccountInfo", {"context": {"slot": 1}, "value": None})
        assert await client.get_account_info("Addr") is None


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, chain, client):
        assert await client.get_health() == "ok"

    @pytest.mark.asyncio
    async def test_every_endpoint_down_reports_error(self, network, client):
        for url in ENDPOINTS:
            network.fail(url)

        assert await client.get_health() == "error"
