"""
Configuration Management for the Portfolio Gateway
Environment-based configuration with secrets handling

Loaded once at startup and passed explicitly into the gateway, the upstream
clients and the database pool. All sections are frozen dataclasses.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from enum import Enum

from dotenv import load_dotenv

logger = logging.getLogger("Config")

ETHERSCAN_DEFAULT_URL = "https://api.etherscan.io/api"
DEBANK_DEFAULT_URL = "https://pro-openapi.debank.com/v1"


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class DatabaseType(Enum):
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration"""
    db_type: DatabaseType = DatabaseType.SQLITE

    # SQLite settings
    sqlite_path: str = "portfolio.db"

    # PostgreSQL settings
    pg_dsn: str = ""
    pg_pool_min: int = 2
    pg_pool_max: int = 10

    # General settings
    query_timeout: int = 30
    log_queries: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables"""
        db_type = os.environ.get("DB_TYPE", "sqlite")

        return cls(
            db_type=DatabaseType.POSTGRESQL if db_type == "postgresql" else DatabaseType.SQLITE,
            sqlite_path=os.environ.get("SQLITE_PATH", "portfolio.db"),
            pg_dsn=os.environ.get("DATABASE_URL", ""),
            pg_pool_min=int(os.environ.get("PG_POOL_MIN", "2")),
            pg_pool_max=int(os.environ.get("PG_POOL_MAX", "10")),
            query_timeout=int(os.environ.get("DB_QUERY_TIMEOUT", "30")),
            log_queries=os.environ.get("LOG_QUERIES", "false").lower() == "true",
        )


@dataclass(frozen=True)
class UpstreamConfig:
    """Upstream provider configuration"""
    etherscan_url: str = ETHERSCAN_DEFAULT_URL
    etherscan_key: str = ""
    debank_url: str = DEBANK_DEFAULT_URL
    debank_key: str = ""

    # Per-call deadline in seconds
    request_timeout: float = 15.0

    # Retries apply to rate-limit errors only; 0 disables them
    rate_limit_retries: int = 0
    rate_limit_backoff: float = 1.0

    @classmethod
    def from_env(cls) -> "UpstreamConfig":
        return cls(
            etherscan_url=os.environ.get("ETHERSCAN_URL", ETHERSCAN_DEFAULT_URL),
            etherscan_key=os.environ.get("ETHERSCAN_KEY", ""),
            debank_url=os.environ.get("DEBANK_URL", DEBANK_DEFAULT_URL),
            debank_key=os.environ.get("DEBANK_KEY", ""),
            request_timeout=float(os.environ.get("UPSTREAM_TIMEOUT", "15")),
            rate_limit_retries=int(os.environ.get("RATE_LIMIT_RETRIES", "0")),
            rate_limit_backoff=float(os.environ.get("RATE_LIMIT_BACKOFF", "1.0")),
        )


@dataclass(frozen=True)
class FanoutConfig:
    """Named-token fan-out settings"""
    max_concurrency: int = 4

    @classmethod
    def from_env(cls) -> "FanoutConfig":
        return cls(max_concurrency=max(1, int(os.environ.get("FANOUT_CONCURRENCY", "4"))))


@dataclass(frozen=True)
class MonitoringConfig:
    """Logging and server configuration"""
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "MonitoringConfig":
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8080")),
        )


@dataclass(frozen=True)
class GatewayConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    fanout: FanoutConfig = field(default_factory=FanoutConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "GatewayConfig":
        """Create configuration from environment variables (and .env if present)"""
        load_dotenv(env_file)

        env = os.environ.get("GATEWAY_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            database=DatabaseConfig.from_env(),
            upstream=UpstreamConfig.from_env(),
            fanout=FanoutConfig.from_env(),
            monitoring=MonitoringConfig.from_env(),
        )
        logger.info(f"Configuration loaded for environment: {config.environment.value}")
        return config

    def validate(self):
        """Fail fast on settings the gateway cannot run without"""
        missing = []
        if not self.upstream.etherscan_key:
            missing.append("ETHERSCAN_KEY")
        if not self.upstream.debank_key:
            missing.append("DEBANK_KEY")
        if self.database.db_type == DatabaseType.POSTGRESQL and not self.database.pg_dsn:
            missing.append("DATABASE_URL")
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

    def to_dict(self) -> Dict:
        """Convert to dictionary (hiding secrets)"""
        def sanitize(obj):
            if isinstance(obj, dict):
                return {
                    k: sanitize(v) for k, v in obj.items()
                    if not k.endswith("_key") and not k.endswith("_dsn")
                }
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            else:
                return obj

        return sanitize(self)
