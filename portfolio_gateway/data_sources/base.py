"""
Shared HTTP plumbing for upstream provider clients.

Maps transport failures onto the error taxonomy:
- network error        -> UpstreamUnknownError
- deadline exceeded    -> UpstreamTimeoutError
- non-200 status       -> error_for_status()
- body is not JSON     -> DecodeError
"""

import logging
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx

from ..infrastructure.errors import (
    DecodeError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnknownError,
    error_for_status,
    retry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpstreamClient:
    """
    Base class for provider clients.

    Holds one pooled ``httpx.AsyncClient`` created on first use. Rate-limit
    errors are retried with exponential backoff only when
    ``rate_limit_retries`` is above zero.
    """

    provider = "upstream"

    def __init__(
        self,
        api_url: str,
        timeout: float = 15.0,
        rate_limit_retries: int = 0,
        rate_limit_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._rate_limit_retries = rate_limit_retries
        self._rate_limit_backoff = rate_limit_backoff
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self._stats = {
            "requests": 0,
            "failures": 0,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=50,
                    keepalive_expiry=30.0
                ),
                headers={
                    "User-Agent": "portfolio-gateway/0.1",
                    "Accept": "application/json",
                }
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """
        GET ``url`` and return the JSON body, passed through ``decode`` if given.

        ``decode`` runs inside the retry loop, so a rate limit reported in a
        200 body is retried the same way as an HTTP 429.
        """
        async def fetch() -> Any:
            payload = await self._get_json(url, params, headers)
            return decode(payload) if decode is not None else payload

        if self._rate_limit_retries > 0:
            fetch = retry(
                max_attempts=self._rate_limit_retries + 1,
                delay=self._rate_limit_backoff,
                exceptions=(UpstreamRateLimitedError,),
            )(fetch)
        return await fetch()

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        self._stats["requests"] += 1
        client = await self._get_client()

        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            self._stats["failures"] += 1
            logger.warning(f"{self.provider} timeout after {self._timeout}s: {e}")
            raise UpstreamTimeoutError(self.provider, self._timeout) from e
        except httpx.HTTPError as e:
            self._stats["failures"] += 1
            logger.warning(f"{self.provider} request failed: {e}")
            raise UpstreamUnknownError(self.provider, f"{self.provider} request failed: {e}") from e

        if response.status_code != 200:
            self._stats["failures"] += 1
            logger.warning(f"{self.provider} returned status {response.status_code}")
            raise error_for_status(self.provider, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            self._stats["failures"] += 1
            raise DecodeError(self.provider, "response body is not JSON") from e

    def get_stats(self) -> Dict:
        return dict(self._stats)
