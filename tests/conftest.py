"""
Pytest Configuration for Portfolio Gateway Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
"""

import pytest
import pytest_asyncio

from portfolio_gateway.infrastructure.config import DatabaseConfig
from portfolio_gateway.infrastructure.database import DatabasePool
from portfolio_gateway.storage.store import PortfolioStore


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def test_addresses():
    """Standard test addresses"""
    return {
        "mixed_case": "0xABC",
        "other_case": "0xAbC",
        "normalized": "0xabc",
        "whale": "0xa749cdefd2d9590549df709bbffec04a9bd35b42",
        "fresh": "0xddbd2b932c763ba5b1b7ae3b362eac3e8d40121a",
    }


@pytest.fixture
def chain_rows():
    return [
        ("eth", 1, "Ethereum", "eth", "https://static.debank.com/eth.png"),
        ("bsc", 56, "BNB Chain", "bsc", "https://static.debank.com/bsc.png"),
        ("matic", 137, "Polygon", "matic", "https://static.debank.com/matic.png"),
    ]


@pytest.fixture
def token_rows():
    return [
        ("0x1f9840a85d5af5bf1d1762f925bdaddc4201f984", "eth", "Uniswap", "UNI", 18, "", "uniswap", 1),
        ("0xbf5140a22578168fd562dccf235e5d43a02ce9b1", "bsc", "Uniswap", "UNI", 18, "", "", 0),
    ]


@pytest.fixture
def vote_token_rows():
    return [
        ("UNI", "eth", "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"),
        ("UNI", "bsc", "0xbf5140a22578168fd562dccf235e5d43a02ce9b1"),
        # ftm is not a stored chain and must never be returned
        ("UNI", "ftm", "0x0000000000000000000000000000000000000001"),
    ]


@pytest_asyncio.fixture
async def database(tmp_path):
    """Empty SQLite database in a temp directory"""
    db = DatabasePool(DatabaseConfig(sqlite_path=str(tmp_path / "portfolio.db")))
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database, chain_rows, token_rows, vote_token_rows):
    """Store with schema and seed data"""
    store = PortfolioStore(database)
    await store.init_schema()
    await database.execute_many(
        "INSERT INTO chain (id, community_id, name, native_token_id, logo_url) VALUES (?, ?, ?, ?, ?)",
        chain_rows,
    )
    await database.execute_many(
        """
        INSERT INTO token (id, chain, name, symbol, decimals, logo_url, protocol_id, is_core)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        token_rows,
    )
    await database.execute_many(
        "INSERT INTO vote_token (name, chain_id, token_id) VALUES (?, ?, ?)",
        vote_token_rows,
    )
    return store


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real APIs)"
    )
