"""
Portfolio Gateway application factory and server entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api import infrastructure_router, metadata_router, user_router
from .data_sources.debank import DebankClient
from .data_sources.etherscan import EtherscanClient
from .infrastructure.config import GatewayConfig
from .infrastructure.database import DatabasePool, HealthChecker
from .infrastructure.errors import register_exception_handlers
from .services.aggregation_gateway import AggregationGateway
from .storage.store import PortfolioStore

logger = logging.getLogger("PortfolioGateway")


def configure_logging(config: GatewayConfig):
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level, logging.INFO),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    )


def create_app(config: Optional[GatewayConfig] = None) -> FastAPI:
    """Build the FastAPI app; store and clients are opened in the lifespan."""
    config = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.validate()

        database = DatabasePool(config.database)
        await database.initialize()
        store = PortfolioStore(database)
        await store.init_schema()

        upstream = config.upstream
        age_oracle = EtherscanClient(
            api_key=upstream.etherscan_key,
            api_url=upstream.etherscan_url,
            timeout=upstream.request_timeout,
            rate_limit_retries=upstream.rate_limit_retries,
            rate_limit_backoff=upstream.rate_limit_backoff,
        )
        balance_oracle = DebankClient(
            access_key=upstream.debank_key,
            api_url=upstream.debank_url,
            timeout=upstream.request_timeout,
            rate_limit_retries=upstream.rate_limit_retries,
            rate_limit_backoff=upstream.rate_limit_backoff,
        )

        app.state.gateway = await AggregationGateway.create(config, store, age_oracle, balance_oracle)
        app.state.health_checker = HealthChecker(database)
        logger.info(f"Portfolio gateway started: {config.to_dict()}")

        try:
            yield
        finally:
            await age_oracle.close()
            await balance_oracle.close()
            await database.close()
            logger.info("Portfolio gateway stopped")

    app = FastAPI(title="Portfolio Gateway", version=__version__, lifespan=lifespan)
    register_exception_handlers(app)

    app.include_router(user_router.router)
    app.include_router(metadata_router.router)
    app.include_router(infrastructure_router.router)

    return app


def run():
    config = GatewayConfig.from_env()
    configure_logging(config)
    uvicorn.run(
        create_app(config),
        host=config.monitoring.host,
        port=config.monitoring.port,
        log_level=config.monitoring.log_level.lower(),
    )


if __name__ == "__main__":
    run()
