"""
Database Layer for the Portfolio Gateway
Async database abstraction supporting SQLite (dev) and PostgreSQL (prod)

Features:
- Async operations
- Connection pooling
- Query logging
- Schema bootstrap support
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional
from contextlib import asynccontextmanager

import aiosqlite
import asyncpg

from .config import DatabaseConfig, DatabaseType
from .errors import StorageError

logger = logging.getLogger("DatabaseLayer")

_PLACEHOLDER = re.compile(r"\?")


class QueryResult:
    """Wrapper for query results"""

    def __init__(self, rows: List[Dict], rowcount: int = 0):
        self.rows = rows
        self.rowcount = rowcount

    def __iter__(self):
        return iter(self.rows)

    def __len__(self):
        return len(self.rows)

    def first(self) -> Optional[Dict]:
        return self.rows[0] if self.rows else None

    def all(self) -> List[Dict]:
        return self.rows


def to_postgres_placeholders(query: str) -> str:
    """Rewrite ``?`` placeholders as ``$1, $2, ...``"""
    counter = iter(range(1, query.count("?") + 1))
    return _PLACEHOLDER.sub(lambda _: f"${next(counter)}", query)


class DatabasePool:
    """
    Async database connection pool.
    Supports both SQLite (dev) and PostgreSQL (prod).

    Queries are written with ``?`` placeholders and rewritten for PostgreSQL.
    Every backend failure surfaces as ``StorageError``.
    """

    def __init__(self, config: DatabaseConfig = None):
        self.config = config or DatabaseConfig.from_env()
        self._pool = None
        self._sqlite_conn = None
        self._is_initialized = False

    @property
    def is_postgres(self) -> bool:
        return self.config.db_type == DatabaseType.POSTGRESQL

    async def initialize(self):
        """Initialize the database pool"""
        if self._is_initialized:
            return

        try:
            if self.is_postgres:
                self._pool = await asyncpg.create_pool(
                    dsn=self.config.pg_dsn,
                    min_size=self.config.pg_pool_min,
                    max_size=self.config.pg_pool_max,
                    command_timeout=self.config.query_timeout,
                )
                logger.info("PostgreSQL pool initialized")
            else:
                self._sqlite_conn = await aiosqlite.connect(self.config.sqlite_path)
                self._sqlite_conn.row_factory = aiosqlite.Row
                logger.info(f"SQLite initialized: {self.config.sqlite_path}")
        except Exception as e:
            raise StorageError("Failed to initialize database", original_error=e) from e

        self._is_initialized = True

    async def close(self):
        """Close the database pool"""
        if self.is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        self._is_initialized = False
        logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a database connection from the pool"""
        if not self._is_initialized:
            await self.initialize()

        if self.is_postgres:
            async with self._pool.acquire() as conn:
                yield conn
        else:
            yield self._sqlite_conn

    async def execute(self, query: str, params: tuple = None) -> QueryResult:
        """Execute a query and return results"""
        start_time = datetime.now()

        if self.config.log_queries:
            logger.debug(f"Query: {query[:100]}... Params: {params}")

        try:
            async with self.acquire() as conn:
                if self.is_postgres:
                    rows = await conn.fetch(to_postgres_placeholders(query), *(params or ()))
                    result = QueryResult([dict(row) for row in rows], len(rows))
                else:
                    cursor = await conn.execute(query, params or ())
                    rows = await cursor.fetchall()
                    result = QueryResult(
                        [dict(row) for row in rows],
                        cursor.rowcount
                    )
                    await conn.commit()
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Query failed: {query.strip()[:100]}... Error: {e}")
            raise StorageError("Query failed", original_error=e) from e

        if self.config.log_queries:
            duration = (datetime.now() - start_time).total_seconds() * 1000
            logger.debug(f"Query completed in {duration:.2f}ms, {len(result)} rows")

        return result

    async def execute_many(self, query: str, params_list: List[tuple]) -> int:
        """Execute a query multiple times with different params"""
        try:
            async with self.acquire() as conn:
                if self.is_postgres:
                    await conn.executemany(to_postgres_placeholders(query), params_list)
                else:
                    await conn.executemany(query, params_list)
                    await conn.commit()
        except Exception as e:
            raise StorageError("Batch query failed", original_error=e) from e
        return len(params_list)

    async def execute_script(self, script: str):
        """Execute a SQL script (for schema bootstrap)"""
        try:
            async with self.acquire() as conn:
                if self.is_postgres:
                    await conn.execute(script)
                else:
                    await conn.executescript(script)
                    await conn.commit()
        except Exception as e:
            raise StorageError("Script execution failed", original_error=e) from e


# ============================================
# HEALTH CHECKS
# ============================================

class HealthChecker:
    """Health check for the store"""

    def __init__(self, db: DatabasePool):
        self.db = db

    async def check_database(self) -> Dict:
        """Check database health"""
        try:
            start = datetime.now()
            await self.db.execute("SELECT 1")
            latency = (datetime.now() - start).total_seconds() * 1000

            return {
                "status": "healthy",
                "type": self.db.config.db_type.value,
                "latency_ms": round(latency, 2)
            }
        except StorageError as e:
            return {
                "status": "unhealthy",
                "error": str(e.details.get("original_error", e))
            }

    async def check_all(self) -> Dict:
        """Check all components"""
        database = await self.check_database()
        return {
            "status": database["status"],
            "database": database,
            "timestamp": datetime.now().isoformat()
        }
