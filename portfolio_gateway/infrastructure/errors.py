"""
Error Handling for the Portfolio Gateway
Closed error taxonomy for upstream providers and the store, with structured responses

Features:
- Exception classes per failure kind
- HTTP status -> error kind mapping shared by upstream clients
- Structured JSON error responses
- Opt-in retry with exponential backoff
- Error tracking and aggregation
"""

import asyncio
import logging
import traceback
from collections import deque
from datetime import datetime
from typing import Callable, Dict, Optional, TypeVar
from functools import wraps
from enum import Enum

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Upstream provider errors
    UPSTREAM_UNAUTHORIZED = "UPSTREAM_UNAUTHORIZED"
    UPSTREAM_RATE_LIMITED = "UPSTREAM_RATE_LIMITED"
    UPSTREAM_CAPACITY_EXCEEDED = "UPSTREAM_CAPACITY_EXCEEDED"
    UPSTREAM_UNKNOWN = "UPSTREAM_UNKNOWN"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    DECODE_ERROR = "DECODE_ERROR"

    # Local errors
    STORAGE_ERROR = "STORAGE_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class GatewayError(Exception):
    """Base exception for the portfolio gateway"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class UpstreamError(GatewayError):
    """An upstream provider call failed"""

    def __init__(
        self,
        provider: str,
        message: str,
        code: ErrorCode,
        status_code: int = 502,
        upstream_status: Optional[int] = None,
    ):
        details = {"provider": provider}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(message, code, status_code, details)
        self.provider = provider


class UpstreamUnauthorizedError(UpstreamError):
    """Provider rejected our credential"""
    def __init__(self, provider: str, upstream_status: Optional[int] = None):
        super().__init__(
            provider,
            f"Unauthorized access key for {provider}",
            ErrorCode.UPSTREAM_UNAUTHORIZED,
            502,
            upstream_status,
        )


class UpstreamRateLimitedError(UpstreamError):
    """Provider rate limit exceeded"""
    def __init__(self, provider: str, upstream_status: Optional[int] = None):
        super().__init__(
            provider,
            f"Exceeded {provider} api ratelimit",
            ErrorCode.UPSTREAM_RATE_LIMITED,
            429,
            upstream_status,
        )


class UpstreamCapacityExceededError(UpstreamError):
    """Account-level quota at the provider is used up"""
    def __init__(self, provider: str, upstream_status: Optional[int] = None):
        super().__init__(
            provider,
            f"Hit {provider} api account capacity limit",
            ErrorCode.UPSTREAM_CAPACITY_EXCEEDED,
            503,
            upstream_status,
        )


class UpstreamUnknownError(UpstreamError):
    """Any other provider failure"""
    def __init__(self, provider: str, message: str = None, upstream_status: Optional[int] = None):
        super().__init__(
            provider,
            message or f"Unknown error from {provider}",
            ErrorCode.UPSTREAM_UNKNOWN,
            502,
            upstream_status,
        )


class UpstreamTimeoutError(UpstreamError):
    """Provider did not answer before the deadline"""
    def __init__(self, provider: str, timeout: float):
        super().__init__(
            provider,
            f"{provider} did not respond within {timeout}s",
            ErrorCode.UPSTREAM_TIMEOUT,
            504,
        )
        self.details["timeout"] = timeout


class DecodeError(GatewayError):
    """Upstream payload did not have the expected shape"""
    def __init__(self, provider: str, message: str):
        super().__init__(
            f"Malformed {provider} payload: {message}",
            ErrorCode.DECODE_ERROR,
            502,
            {"provider": provider}
        )
        self.provider = provider


class StorageError(GatewayError):
    """Store operation failed"""
    def __init__(self, message: str, original_error: Exception = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(message, ErrorCode.STORAGE_ERROR, 500, details)


def error_for_status(provider: str, status_code: int) -> UpstreamError:
    """Map a non-200 provider HTTP status onto the error taxonomy."""
    if status_code == 401:
        return UpstreamUnauthorizedError(provider, status_code)
    if status_code == 403:
        return UpstreamCapacityExceededError(provider, status_code)
    if status_code == 429:
        return UpstreamRateLimitedError(provider, status_code)
    return UpstreamUnknownError(provider, f"Bad status code from {provider}: {status_code}", status_code)


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """
    Counts failed requests by error code and by upstream provider.

    Keeps the last ``max_recent`` failures with the route, the provider and
    the provider's HTTP status when there was one.
    """

    def __init__(self, max_recent: int = 100):
        self.recent: deque = deque(maxlen=max_recent)
        self.total = 0
        self.error_counts: Dict[str, int] = {}
        self.provider_counts: Dict[str, int] = {}

    def track(self, error: Exception, request_path: str = None):
        self.total += 1
        code = error.code.value if isinstance(error, GatewayError) else ErrorCode.INTERNAL_ERROR.value
        self.error_counts[code] = self.error_counts.get(code, 0) + 1

        entry = {
            "code": code,
            "message": str(error)[:200],
            "path": request_path,
            "timestamp": datetime.now().isoformat(),
        }

        provider = getattr(error, "provider", None)
        if provider:
            self.provider_counts[provider] = self.provider_counts.get(provider, 0) + 1
            entry["provider"] = provider
            upstream_status = error.details.get("upstream_status")
            if upstream_status is not None:
                entry["upstream_status"] = upstream_status

        self.recent.append(entry)

        if not isinstance(error, GatewayError) or error.status_code >= 500:
            logger.error(f"Request to {request_path} failed: {code} {entry['message']}")

    def get_stats(self) -> Dict:
        return {
            "total_errors": self.total,
            "error_counts": dict(self.error_counts),
            "provider_counts": dict(self.provider_counts),
            "recent_errors": list(self.recent)[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        self.recent.clear()
        self.total = 0
        self.error_counts.clear()
        self.provider_counts.clear()


error_tracker = ErrorTracker()


# ============================================
# RETRY LOGIC
# ============================================

T = TypeVar('T')


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for retry with exponential backoff.

    Only the exception types listed in ``exceptions`` are retried; anything
    else propagates on the first attempt.

    Usage:
        @retry(max_attempts=3, delay=1.0, exceptions=(UpstreamRateLimitedError,))
        async def fetch_data():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts - 1:
                        logger.error(f"All retries failed for {func.__name__}: {e}")
                        raise
                    logger.warning(f"Retry {attempt + 1}/{max_attempts} for {func.__name__}: {e}")
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

        return wrapper
    return decorator


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Handle GatewayError exceptions"""
    error_tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions"""
    error_tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.BAD_REQUEST.value if exc.status_code < 500 else ErrorCode.INTERNAL_ERROR.value,
                "message": exc.detail,
                "timestamp": datetime.now().isoformat()
            }
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    error_tracker.track(exc, str(request.url.path))

    logger.error(f"Unhandled exception: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "timestamp": datetime.now().isoformat()
            }
        }
    )


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app"""
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
