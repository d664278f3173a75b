"""
Portfolio Gateway Infrastructure Module
Configuration, error taxonomy and database access
"""

from .config import (
    GatewayConfig,
    DatabaseConfig,
    DatabaseType,
    UpstreamConfig,
    FanoutConfig,
    MonitoringConfig,
    Environment,
)

from .errors import (
    GatewayError,
    UpstreamError,
    UpstreamUnauthorizedError,
    UpstreamRateLimitedError,
    UpstreamCapacityExceededError,
    UpstreamUnknownError,
    UpstreamTimeoutError,
    DecodeError,
    StorageError,
    ErrorCode,
    ErrorTracker,
    error_tracker,
    error_for_status,
    retry,
    register_exception_handlers,
)

from .database import (
    DatabasePool,
    QueryResult,
    HealthChecker,
)

__all__ = [
    # Config
    "GatewayConfig",
    "DatabaseConfig",
    "DatabaseType",
    "UpstreamConfig",
    "FanoutConfig",
    "MonitoringConfig",
    "Environment",

    # Errors
    "GatewayError",
    "UpstreamError",
    "UpstreamUnauthorizedError",
    "UpstreamRateLimitedError",
    "UpstreamCapacityExceededError",
    "UpstreamUnknownError",
    "UpstreamTimeoutError",
    "DecodeError",
    "StorageError",
    "ErrorCode",
    "ErrorTracker",
    "error_tracker",
    "error_for_status",
    "retry",
    "register_exception_handlers",

    # Database
    "DatabasePool",
    "QueryResult",
    "HealthChecker",
]
