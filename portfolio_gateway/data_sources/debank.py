"""
DeBank OpenAPI Client
Per-chain and per-token USD balances for an address (balance oracle)
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..infrastructure.errors import DecodeError
from .base import UpstreamClient

logger = logging.getLogger("DeBank")

M = TypeVar("M", bound=BaseModel)


class ChainBalance(BaseModel):
    id: str
    community_id: Optional[int] = None
    name: Optional[str] = None
    logo_url: Optional[str] = None
    native_token_id: Optional[str] = None
    usd_value: float


class TotalBalance(BaseModel):
    total_usd_value: float
    chain_list: List[ChainBalance]


class TokenBalance(BaseModel):
    id: str
    chain: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    logo_url: Optional[str] = None
    protocol_id: Optional[str] = None
    is_core: Optional[bool] = None
    price: Optional[float] = None
    amount: float
    raw_amount: float
    raw_amount_hex_str: Optional[str] = None


class ChainUsdValue(BaseModel):
    usd_value: float


class DebankClient(UpstreamClient):
    """
    Client for the DeBank pro OpenAPI.

    Every request carries the ``AccessKey`` header. Responses are returned
    exactly as the provider reports them; filtering to supported chains is
    the gateway's job.
    """

    provider = "debank"

    def __init__(
        self,
        access_key: str,
        api_url: str = "https://pro-openapi.debank.com/v1",
        timeout: float = 15.0,
        rate_limit_retries: int = 0,
        rate_limit_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_url, timeout, rate_limit_retries, rate_limit_backoff, transport)
        self._access_key = access_key

    async def _fetch(self, path: str, params: Dict[str, str], model: Type[M]) -> M:
        return await self.get_json(
            f"{self.api_url}{path}",
            params=params,
            headers={"AccessKey": self._access_key},
            decode=lambda payload: self._decode(payload, model),
        )

    def _decode(self, payload: Any, model: Type[M]) -> M:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(self.provider, f"{model.__name__}: {e.error_count()} validation errors") from e

    async def total_balance(self, address: str) -> TotalBalance:
        """Unfiltered total balance with the per-chain breakdown."""
        return await self._fetch("/user/total_balance", {"id": address}, TotalBalance)

    async def token_balance(self, address: str, chain_id: str, token_id: str) -> TokenBalance:
        """Balance of one token on one chain."""
        return await self._fetch(
            "/user/token",
            {"id": address, "chain_id": chain_id, "token_id": token_id},
            TokenBalance,
        )

    async def chain_balance(self, address: str, chain_id: str) -> float:
        """USD value held on a single chain."""
        result = await self._fetch(
            "/user/chain_balance",
            {"id": address, "chain_id": chain_id},
            ChainUsdValue,
        )
        return result.usd_value
