"""
Etherscan API Client
Resolves the first transaction timestamp of an address (account age oracle)
"""
import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..infrastructure.errors import (
    DecodeError,
    UpstreamRateLimitedError,
    UpstreamUnauthorizedError,
    UpstreamUnknownError,
)
from .base import UpstreamClient

logger = logging.getLogger("Etherscan")

# Returned when the address has never sent a transaction
NO_TRANSACTIONS_TIMESTAMP = 2 ** 63 - 1


class NormalTransaction(BaseModel):
    time_stamp: str = Field(alias="timeStamp")


class EtherscanEnvelope(BaseModel):
    """
    Every Etherscan response shares this envelope.

    ``status`` is the discriminant: "1" carries a transaction list in
    ``result``; "0" carries either an empty list (no transactions) or an
    error string.
    """
    status: str
    message: str = ""
    result: Any = None


class EtherscanClient(UpstreamClient):
    """Client for the Etherscan account API"""

    provider = "etherscan"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.etherscan.io/api",
        timeout: float = 15.0,
        rate_limit_retries: int = 0,
        rate_limit_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_url, timeout, rate_limit_retries, rate_limit_backoff, transport)
        self._api_key = api_key

    async def first_tx_timestamp(self, address: str) -> int:
        """
        Return the unix timestamp of the first transaction sent by ``address``.

        Addresses without any transaction resolve to ``NO_TRANSACTIONS_TIMESTAMP``
        rather than an error.
        """
        return await self.get_json(
            self.api_url,
            params={
                "module": "account",
                "action": "txlist",
                "address": address,
                "startblock": "0",
                "endblock": "99999999",
                "page": "1",
                "offset": "1",
                "sort": "asc",
                "apikey": self._api_key,
            },
            decode=self._decode_first_tx,
        )

    def _decode_first_tx(self, payload: Any) -> int:
        try:
            envelope = EtherscanEnvelope.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(self.provider, f"unexpected envelope: {e.error_count()} errors") from e

        if envelope.status == "1":
            transactions = self._decode_transactions(envelope.result)
            if not transactions:
                raise DecodeError(self.provider, "status 1 with empty result")
            try:
                return int(transactions[0].time_stamp)
            except ValueError as e:
                raise DecodeError(self.provider, f"bad timeStamp {transactions[0].time_stamp!r}") from e

        if envelope.status == "0":
            if isinstance(envelope.result, str):
                raise self._error_for_result(envelope.result)
            if envelope.result is None or isinstance(envelope.result, list):
                return NO_TRANSACTIONS_TIMESTAMP
            raise DecodeError(self.provider, "status 0 with unexpected result")

        raise UpstreamUnknownError(self.provider, f"Bad status code: {envelope.status}")

    def _decode_transactions(self, result: Any) -> List[NormalTransaction]:
        if not isinstance(result, list):
            raise DecodeError(self.provider, "result is not a transaction list")
        try:
            return [NormalTransaction.model_validate(item) for item in result]
        except ValidationError as e:
            raise DecodeError(self.provider, "transaction without timeStamp") from e

    def _error_for_result(self, result: str):
        if result.startswith("Max rate limit reached"):
            return UpstreamRateLimitedError(self.provider)
        if result.startswith("Invalid API Key"):
            return UpstreamUnauthorizedError(self.provider)
        logger.warning(f"Unrecognized etherscan error: {result}")
        return UpstreamUnknownError(self.provider, f"Unknown error: {result}")
