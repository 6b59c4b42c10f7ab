"""
Query helpers used by the repositories.

Every helper accepts an optional connection so a caller can run several
statements on one borrowed connection; otherwise a connection is taken
from the global pool for the single statement.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any

import psycopg

from mailsentry.db.pool import get_db_connection
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A statement failed; `recoverable` marks connection-level failures."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def _run(
    operation: str,
    query: str,
    params: tuple,
    connection: psycopg.AsyncConnection | None,
    consume: Callable[[psycopg.AsyncCursor], Awaitable[Any]],
) -> Any:
    try:
        if connection is not None:
            cur = await connection.execute(query, params)
            return await consume(cur)

        async with await get_db_connection() as conn:
            cur = await conn.execute(query, params)
            return await consume(cur)

    except psycopg.Error as e:
        logger.error(
            "Database query failed", operation=operation, query=query[:100], error=str(e)
        )
        raise DatabaseError(
            f"Query failed: {e}",
            operation=operation,
            recoverable=isinstance(e, psycopg.OperationalError),
        ) from e


async def _one(cur: psycopg.AsyncCursor) -> dict[str, Any] | None:
    return await cur.fetchone()


async def _all(cur: psycopg.AsyncCursor) -> list[dict[str, Any]]:
    return await cur.fetchall()


async def _rowcount(cur: psycopg.AsyncCursor) -> int:
    return cur.rowcount


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    return await _run("fetch_one", query, params, connection, _one)


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    return await _run("fetch_all", query, params, connection, _all)


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write statement and return the affected row count."""
    return await _run("execute", query, params, connection, _rowcount)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a coroutine on recoverable DatabaseError with exponential backoff.

    Args:
        max_retries: attempts after the first one
        base_delay: seconds before the first retry, doubled each time
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable:
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "Database operation failed after all retries",
                            operation=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying database operation",
                        operation=func.__name__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
