"""
Aggregation Gateway - combines the store and both upstream providers

FLOW:
    account age:      store hit? return : age oracle -> store (best effort) -> return
    total balance:    balance oracle -> keep supported chains -> recompute total
    token balance:    balance oracle passthrough
    named token:      store mapping -> bounded concurrent token balances -> sum

No retries happen here. Any error fails the request that triggered it.
"""

import asyncio
import logging
import math
from typing import Dict, FrozenSet, Iterable, List, Optional

from ..data_sources.debank import DebankClient, TokenBalance, TotalBalance
from ..data_sources.etherscan import EtherscanClient
from ..infrastructure.config import GatewayConfig
from ..infrastructure.errors import StorageError
from ..storage.store import ChainInfo, PortfolioStore, TokenInfo, normalize_address

logger = logging.getLogger("AggregationGateway")


class AggregationGateway:
    """
    Answers account-level questions for the transport layer.

    The supported chain set is read once from the store when the gateway is
    built and stays fixed for the gateway's lifetime.
    """

    def __init__(
        self,
        store: PortfolioStore,
        age_oracle: EtherscanClient,
        balance_oracle: DebankClient,
        supported_chain_ids: Iterable[str],
        fanout_concurrency: int = 4,
    ):
        self._store = store
        self._age_oracle = age_oracle
        self._balance_oracle = balance_oracle
        self._supported_chain_ids = frozenset(supported_chain_ids)
        self._fanout_concurrency = max(1, fanout_concurrency)

        self._stats = {
            "age_cache_hits": 0,
            "age_cache_misses": 0,
            "age_cache_write_failures": 0,
            "named_token_failures": 0,
        }

    @classmethod
    async def create(
        cls,
        config: GatewayConfig,
        store: PortfolioStore,
        age_oracle: EtherscanClient,
        balance_oracle: DebankClient,
    ) -> "AggregationGateway":
        """Build a gateway, loading the supported chain set from the store."""
        chain_ids = await store.get_chain_ids()
        logger.info(f"Gateway ready with {len(chain_ids)} supported chains: {', '.join(chain_ids)}")
        return cls(
            store,
            age_oracle,
            balance_oracle,
            chain_ids,
            fanout_concurrency=config.fanout.max_concurrency,
        )

    @property
    def supported_chain_ids(self) -> FrozenSet[str]:
        return self._supported_chain_ids

    # =====================================================
    # Account age
    # =====================================================

    async def resolve_account_age(self, address: str) -> int:
        """
        Activation time of ``address``, cached permanently after first lookup.

        A store read failure is raised, not treated as a miss. A store write
        failure after a successful oracle call is logged and the value is
        still returned.
        """
        address = normalize_address(address)

        cached = await self._store.get_account_age(address)
        if cached is not None:
            self._stats["age_cache_hits"] += 1
            return cached

        self._stats["age_cache_misses"] += 1
        activation_time = await self._age_oracle.first_tx_timestamp(address)

        try:
            await self._store.put_account_age(address, activation_time)
        except StorageError as e:
            self._stats["age_cache_write_failures"] += 1
            logger.warning(
                f"Could not cache account age for {address}, next lookup will hit the oracle again: "
                f"{e.details.get('original_error', e.message)}"
            )

        return activation_time

    # =====================================================
    # Balances
    # =====================================================

    async def total_balance(
        self,
        address: str,
        supported_chain_ids: Optional[Iterable[str]] = None,
    ) -> TotalBalance:
        """
        Multi-chain balance restricted to supported chains.

        The upstream total is discarded; ``total_usd_value`` is always the sum
        of the chains returned.
        """
        allowed = (
            frozenset(supported_chain_ids)
            if supported_chain_ids is not None
            else self._supported_chain_ids
        )
        raw = await self._balance_oracle.total_balance(normalize_address(address))

        chain_list = [chain for chain in raw.chain_list if chain.id in allowed]
        dropped = len(raw.chain_list) - len(chain_list)
        if dropped:
            logger.debug(f"Dropped {dropped} unsupported chains for {address}")

        return TotalBalance(
            total_usd_value=sum(chain.usd_value for chain in chain_list),
            chain_list=chain_list,
        )

    async def token_balance(self, address: str, chain_id: str, token_id: str) -> TokenBalance:
        """
        Balance of one token on one chain, straight from the balance oracle.

        ``chain_id`` is not checked against the supported set: the caller
        names the chain explicitly, and ``named_token_balance`` only ever
        asks for chains present in the store.
        """
        return await self._balance_oracle.token_balance(normalize_address(address), chain_id, token_id)

    async def chain_balance(self, address: str, chain_id: str) -> float:
        """USD value on one chain; unsupported chains report 0.0 without a provider call."""
        if chain_id not in self._supported_chain_ids:
            return 0.0
        return await self._balance_oracle.chain_balance(normalize_address(address), chain_id)

    async def named_token_balance(self, address: str, token_name: str) -> float:
        """
        Total amount of a named token across every chain it is mapped on.

        Per-chain lookups run concurrently, at most ``fanout_concurrency`` at
        a time. The first failure cancels the remaining lookups and is raised;
        a partial sum is never returned.
        """
        token_ids = await self._store.get_named_token_chain_map(token_name)
        if not token_ids:
            return 0.0

        semaphore = asyncio.Semaphore(self._fanout_concurrency)

        async def fetch_amount(chain_id: str, token_id: str) -> float:
            async with semaphore:
                balance = await self.token_balance(address, chain_id, token_id)
                return balance.amount

        tasks = [
            asyncio.create_task(fetch_amount(chain_id, token_id))
            for chain_id, token_id in token_ids.items()
        ]

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = [task for task in done if task.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._stats["named_token_failures"] += 1
            logger.warning(
                f"Named token {token_name} lookup failed for {address}, "
                f"{len(pending)} sibling calls cancelled"
            )
            raise failed[0].exception()

        return math.fsum(task.result() for task in tasks)

    # =====================================================
    # Metadata
    # =====================================================

    async def list_chains(self) -> List[ChainInfo]:
        return await self._store.get_chains()

    async def list_tokens(self) -> List[TokenInfo]:
        return await self._store.get_tokens()

    def get_stats(self) -> Dict:
        """Gateway and upstream counters for monitoring."""
        return {
            "gateway": dict(self._stats),
            "etherscan": self._age_oracle.get_stats(),
            "debank": self._balance_oracle.get_stats(),
            "supported_chains": sorted(self._supported_chain_ids),
        }
