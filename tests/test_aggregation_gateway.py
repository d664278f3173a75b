"""
Aggregation Gateway Tests
Account-age cache, supported-chain filtering and named-token fan-out

Run: python -m pytest tests/test_aggregation_gateway.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from portfolio_gateway.data_sources.debank import (
    ChainBalance,
    DebankClient,
    TokenBalance,
    TotalBalance,
)
from portfolio_gateway.data_sources.etherscan import EtherscanClient, NO_TRANSACTIONS_TIMESTAMP
from portfolio_gateway.infrastructure.config import FanoutConfig, GatewayConfig
from portfolio_gateway.infrastructure.errors import (
    StorageError,
    UpstreamRateLimitedError,
    UpstreamUnknownError,
)
from portfolio_gateway.services.aggregation_gateway import AggregationGateway
from portfolio_gateway.storage.store import PortfolioStore

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def age_oracle():
    oracle = AsyncMock(spec=EtherscanClient)
    oracle.first_tx_timestamp.return_value = 1_600_000_000
    return oracle


@pytest.fixture
def balance_oracle():
    return AsyncMock(spec=DebankClient)


@pytest.fixture
def gateway(store, age_oracle, balance_oracle):
    return AggregationGateway(store, age_oracle, balance_oracle, ["eth", "bsc"])


def chain(chain_id: str, usd_value: float) -> ChainBalance:
    return ChainBalance(id=chain_id, usd_value=usd_value)


def token(chain_id: str, token_id: str, amount: float) -> TokenBalance:
    return TokenBalance(id=token_id, chain=chain_id, amount=amount, raw_amount=amount * 1e18)


# =============================================================================
# TEST: Construction
# =============================================================================

class TestCreate:

    @pytest.mark.asyncio
    async def test_supported_chains_loaded_from_store(self, store, age_oracle, balance_oracle):
        config = GatewayConfig(fanout=FanoutConfig(max_concurrency=2))

        gateway = await AggregationGateway.create(config, store, age_oracle, balance_oracle)

        assert gateway.supported_chain_ids == frozenset({"eth", "bsc", "matic"})


# =============================================================================
# TEST: Account-age cache
# =============================================================================

class TestAccountAge:

    @pytest.mark.asyncio
    async def test_cold_address_fetches_once_and_caches(self, gateway, store, age_oracle, test_addresses):
        first = await gateway.resolve_account_age(test_addresses["mixed_case"])

        assert first == 1_600_000_000
        age_oracle.first_tx_timestamp.assert_awaited_once_with("0xabc")
        assert await store.get_account_age("0xabc") == 1_600_000_000

        second = await gateway.resolve_account_age(test_addresses["other_case"])

        assert second == 1_600_000_000
        assert age_oracle.first_tx_timestamp.await_count == 1
        assert gateway.get_stats()["gateway"]["age_cache_hits"] == 1
        assert gateway.get_stats()["gateway"]["age_cache_misses"] == 1

    @pytest.mark.asyncio
    async def test_cold_address_writes_exactly_once(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_account_age.return_value = None
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["eth"])

        await gateway.resolve_account_age(test_addresses["mixed_case"])

        store.put_account_age.assert_awaited_once_with("0xabc", 1_600_000_000)

    @pytest.mark.asyncio
    async def test_no_transactions_sentinel_is_returned_and_cached(self, gateway, store, age_oracle, test_addresses):
        age_oracle.first_tx_timestamp.return_value = NO_TRANSACTIONS_TIMESTAMP

        result = await gateway.resolve_account_age(test_addresses["fresh"])

        assert result == 9223372036854775807
        assert await store.get_account_age(test_addresses["fresh"]) == NO_TRANSACTIONS_TIMESTAMP

    @pytest.mark.asyncio
    async def test_store_read_failure_is_not_a_cache_miss(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_account_age.side_effect = StorageError("Query failed")
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["eth"])

        with pytest.raises(StorageError):
            await gateway.resolve_account_age(test_addresses["whale"])

        age_oracle.first_tx_timestamp.assert_not_awaited()
        store.put_account_age.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_failure_writes_nothing(self, gateway, store, age_oracle, test_addresses):
        age_oracle.first_tx_timestamp.side_effect = UpstreamRateLimitedError("etherscan")

        with pytest.raises(UpstreamRateLimitedError):
            await gateway.resolve_account_age(test_addresses["whale"])

        assert await store.get_account_age(test_addresses["whale"]) is None

    @pytest.mark.asyncio
    async def test_store_write_failure_still_returns_value(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_account_age.return_value = None
        store.put_account_age.side_effect = StorageError("Query failed", original_error=RuntimeError("disk full"))
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["eth"])

        assert await gateway.resolve_account_age(test_addresses["whale"]) == 1_600_000_000
        assert await gateway.resolve_account_age(test_addresses["whale"]) == 1_600_000_000

        # nothing was cached, so the oracle is asked again
        assert age_oracle.first_tx_timestamp.await_count == 2
        assert gateway.get_stats()["gateway"]["age_cache_write_failures"] == 2


# =============================================================================
# TEST: Multi-chain total balance
# =============================================================================

class TestTotalBalance:

    @pytest.mark.asyncio
    async def test_unsupported_chains_dropped_and_total_recomputed(self, gateway, balance_oracle, test_addresses):
        balance_oracle.total_balance.return_value = TotalBalance(
            total_usd_value=175.0,
            chain_list=[chain("eth", 100.0), chain("bsc", 50.0), chain("ftm", 25.0)],
        )

        result = await gateway.total_balance(test_addresses["whale"])

        assert [(c.id, c.usd_value) for c in result.chain_list] == [("eth", 100.0), ("bsc", 50.0)]
        assert result.total_usd_value == 150.0

    @pytest.mark.asyncio
    async def test_total_always_equals_sum_of_chains(self, gateway, balance_oracle, test_addresses):
        balance_oracle.total_balance.return_value = TotalBalance(
            total_usd_value=999999.0,
            chain_list=[chain("bsc", 0.1), chain("matic", 3.0), chain("eth", 0.2), chain("bsc", 0.3)],
        )

        result = await gateway.total_balance(test_addresses["whale"])

        assert [c.id for c in result.chain_list] == ["bsc", "eth", "bsc"]
        assert result.total_usd_value == sum(c.usd_value for c in result.chain_list)

    @pytest.mark.asyncio
    async def test_explicit_supported_set_overrides_default(self, gateway, balance_oracle, test_addresses):
        balance_oracle.total_balance.return_value = TotalBalance(
            total_usd_value=175.0,
            chain_list=[chain("eth", 100.0), chain("bsc", 50.0), chain("ftm", 25.0)],
        )

        result = await gateway.total_balance(test_addresses["whale"], supported_chain_ids={"ftm"})

        assert [c.id for c in result.chain_list] == ["ftm"]
        assert result.total_usd_value == 25.0

    @pytest.mark.asyncio
    async def test_nothing_supported_is_zero(self, gateway, balance_oracle, test_addresses):
        balance_oracle.total_balance.return_value = TotalBalance(
            total_usd_value=25.0,
            chain_list=[chain("ftm", 25.0)],
        )

        result = await gateway.total_balance(test_addresses["whale"])

        assert result.chain_list == []
        assert result.total_usd_value == 0.0

    @pytest.mark.asyncio
    async def test_upstream_called_with_normalized_address(self, gateway, balance_oracle, test_addresses):
        balance_oracle.total_balance.return_value = TotalBalance(total_usd_value=0.0, chain_list=[])

        await gateway.total_balance(test_addresses["mixed_case"])

        balance_oracle.total_balance.assert_awaited_once_with("0xabc")


# =============================================================================
# TEST: Single-token and single-chain balance
# =============================================================================

class TestSingleBalances:

    @pytest.mark.asyncio
    async def test_token_balance_passthrough(self, gateway, balance_oracle, test_addresses):
        expected = token("eth", "0xuni", 12.5)
        balance_oracle.token_balance.return_value = expected

        result = await gateway.token_balance(test_addresses["whale"], "eth", "0xuni")

        assert result is expected
        balance_oracle.token_balance.assert_awaited_once_with(test_addresses["whale"], "eth", "0xuni")

    @pytest.mark.asyncio
    async def test_token_balance_on_unlisted_chain_is_passed_through(self, gateway, balance_oracle, test_addresses):
        expected = token("ftm", "0xuni", 3.0)
        balance_oracle.token_balance.return_value = expected

        result = await gateway.token_balance(test_addresses["whale"], "ftm", "0xuni")

        assert result is expected
        balance_oracle.token_balance.assert_awaited_once_with(test_addresses["whale"], "ftm", "0xuni")

    @pytest.mark.asyncio
    async def test_chain_balance_for_supported_chain(self, gateway, balance_oracle, test_addresses):
        balance_oracle.chain_balance.return_value = 42.0

        assert await gateway.chain_balance(test_addresses["whale"], "bsc") == 42.0

    @pytest.mark.asyncio
    async def test_chain_balance_for_unsupported_chain_skips_upstream(self, gateway, balance_oracle, test_addresses):
        assert await gateway.chain_balance(test_addresses["whale"], "ftm") == 0.0

        balance_oracle.chain_balance.assert_not_awaited()


# =============================================================================
# TEST: Named-token fan-out
# =============================================================================

class TestNamedTokenBalance:

    @pytest.mark.asyncio
    async def test_sums_over_mapped_chains(self, gateway, balance_oracle, test_addresses):
        amounts = {"eth": 12.5, "bsc": 7.25}

        async def token_balance(address, chain_id, token_id):
            return token(chain_id, token_id, amounts[chain_id])

        balance_oracle.token_balance.side_effect = token_balance

        result = await gateway.named_token_balance(test_addresses["whale"], "UNI")

        assert result == 19.75
        called_chains = sorted(call.args[1] for call in balance_oracle.token_balance.await_args_list)
        assert called_chains == ["bsc", "eth"]

    @pytest.mark.asyncio
    async def test_unknown_name_is_zero(self, gateway, balance_oracle, test_addresses):
        assert await gateway.named_token_balance(test_addresses["whale"], "NOPE") == 0.0

        balance_oracle.token_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_any_failure_fails_the_whole_call(self, gateway, balance_oracle, test_addresses):
        async def token_balance(address, chain_id, token_id):
            if chain_id == "bsc":
                raise UpstreamUnknownError("debank")
            return token(chain_id, token_id, 12.5)

        balance_oracle.token_balance.side_effect = token_balance

        with pytest.raises(UpstreamUnknownError):
            await gateway.named_token_balance(test_addresses["whale"], "UNI")

        assert gateway.get_stats()["gateway"]["named_token_failures"] == 1

    @pytest.mark.asyncio
    async def test_first_failure_cancels_siblings(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_named_token_chain_map.return_value = {"eth": "0xa", "bsc": "0xb"}
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["eth", "bsc"])
        cancelled = asyncio.Event()

        async def token_balance(address, chain_id, token_id):
            if chain_id == "eth":
                await asyncio.sleep(0.01)
                raise UpstreamRateLimitedError("debank")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return token(chain_id, token_id, 1.0)

        balance_oracle.token_balance.side_effect = token_balance

        with pytest.raises(UpstreamRateLimitedError):
            await asyncio.wait_for(gateway.named_token_balance(test_addresses["whale"], "UNI"), timeout=5)

        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_named_token_chain_map.return_value = {f"chain{i}": f"0x{i}" for i in range(6)}
        gateway = AggregationGateway(
            store, age_oracle, balance_oracle, [f"chain{i}" for i in range(6)], fanout_concurrency=2
        )
        in_flight = 0
        peak = 0

        async def token_balance(address, chain_id, token_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return token(chain_id, token_id, 1.0)

        balance_oracle.token_balance.side_effect = token_balance

        result = await gateway.named_token_balance(test_addresses["whale"], "GOV")

        assert result == 6.0
        assert peak == 2

    @pytest.mark.asyncio
    async def test_sum_does_not_depend_on_completion_order(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_named_token_chain_map.return_value = {"a": "0xa", "b": "0xb", "c": "0xc"}
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["a", "b", "c"])
        amounts = {"a": 0.1, "b": 0.2, "c": 0.3}
        results = []

        for delays in ({"a": 0.0, "b": 0.01, "c": 0.02}, {"a": 0.02, "b": 0.01, "c": 0.0}):
            async def token_balance(address, chain_id, token_id, delays=delays):
                await asyncio.sleep(delays[chain_id])
                return token(chain_id, token_id, amounts[chain_id])

            balance_oracle.token_balance.side_effect = token_balance
            results.append(await gateway.named_token_balance(test_addresses["whale"], "GOV"))

        assert results[0] == results[1]

    @pytest.mark.asyncio
    async def test_caller_cancellation_waits_for_siblings(self, age_oracle, balance_oracle, test_addresses):
        store = AsyncMock(spec=PortfolioStore)
        store.get_named_token_chain_map.return_value = {"eth": "0xa", "bsc": "0xb", "matic": "0xc"}
        gateway = AggregationGateway(store, age_oracle, balance_oracle, ["eth", "bsc", "matic"])
        started = []
        finished = []

        async def token_balance(address, chain_id, token_id):
            started.append(chain_id)
            try:
                await asyncio.sleep(10)
            finally:
                await asyncio.sleep(0)
                finished.append(chain_id)
            return token(chain_id, token_id, 1.0)

        balance_oracle.token_balance.side_effect = token_balance

        caller = asyncio.create_task(gateway.named_token_balance(test_addresses["whale"], "UNI"))
        while len(started) < 3:
            await asyncio.sleep(0)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller

        assert sorted(finished) == ["bsc", "eth", "matic"]
