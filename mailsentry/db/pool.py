"""
Process-wide Postgres pool.

The API opens it in the FastAPI lifespan and the worker opens it around
its scheduler loop. Every connection handed out uses dict rows, autocommit,
UTC and a statement timeout.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from mailsentry.config import Settings, settings
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATEMENT_TIMEOUT = "30s"
CLOSE_TIMEOUT_SECONDS = 30.0
UTILIZATION_ALERT_PERCENT = 90


class PostgresPool:
    """Owns one AsyncConnectionPool for the lifetime of the process."""

    def __init__(self, config: Settings):
        self.config = config
        self.pool: AsyncConnectionPool | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self.pool is not None and not self._closed

    async def initialize(self) -> None:
        if self.pool is not None:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = self.config.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=self.config.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )

        try:
            await pool.open()
            await pool.wait()
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool initialized",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
            environment=self.config.environment,
        )

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)

        # SET does not accept bind parameters
        app_name = f"mailsentry-{self.config.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
        )

    async def close(self) -> None:
        if not self.is_open:
            return

        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a configured connection; raises if the pool is not open."""
        if not self.is_open:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        try:
            async with self.pool.connection() as conn:
                yield conn
        except psycopg.Error as e:
            logger.error("Database connection error", error=str(e), error_type=type(e).__name__)
            raise

    async def health_check(self) -> dict[str, Any]:
        """Round-trip a query and report pool utilization."""
        if not self.is_open:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        started = time.time()
        try:
            async with self.connection() as conn:
                cur = await conn.execute("SELECT 1 AS ok")
                row = await cur.fetchone()
            if not row or row["ok"] != 1:
                raise RuntimeError("Database test query returned an unexpected result")
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        utilization = (size - available) / size * 100 if size else 0

        return {
            "healthy": utilization < UTILIZATION_ALERT_PERCENT,
            "service": "database_pool",
            "connection_time_ms": round((time.time() - started) * 1000, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = PostgresPool(settings)


async def get_db_connection():
    """Connection context manager from the global pool."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
