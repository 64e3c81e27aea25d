"""
PostgreSQL connection pool.

Wraps psycopg2's ThreadedConnectionPool behind a single awaitable
``query`` call. The driver is blocking, so statements run on a worker
pool with exactly as many threads as the connection pool allows; the
executor's FIFO queue hands connections out first-come-first-served
and the connection pool itself can never be exhausted.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, Sequence

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from ..core.config import DatabaseConfig
from ..core.exceptions import QueryError

# Configure logging
logger = logging.getLogger(__name__)


class Database:
    """
    Bounded pool of reusable connections to the relational store.

    Connections are opened lazily (``pool_min`` defaults to zero) and
    run in autocommit mode: every statement commits on its own.
    """

    def __init__(self, config: DatabaseConfig, *, pool_factory=ThreadedConnectionPool):
        self.config = config
        try:
            # pool_min > 0 connects right here
            self._pool = pool_factory(config.pool_min, config.pool_max, config.url)
        except psycopg2.Error as e:
            raise QueryError(f"could not open connection pool: {e}") from e
        self._executor = ThreadPoolExecutor(
            max_workers=config.pool_max,
            thread_name_prefix="db"
        )
        self._closed = False
        logger.info(
            f"Connection pool created (max {config.pool_max} connections), "
            "connecting on first query"
        )

    async def query(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None
    ) -> list[dict[str, Any]]:
        """
        Execute a parameterized statement and return its rows.

        Args:
            sql: Statement with ``%s`` placeholders
            params: Values bound to the placeholders

        Returns:
            Rows as dictionaries keyed by column name, in result order;
            an empty list for statements without a result set

        Raises:
            QueryError: The connection or the statement failed
        """
        if self._closed:
            raise QueryError("connection pool is closed", sql)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._execute, sql, params)

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> list[dict[str, Any]]:
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise QueryError(f"could not obtain a connection: {e}", sql) from e

        try:
            conn.autocommit = True
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(sql, params)
                if cursor.description is None:
                    return []
                return [dict(row) for row in cursor.fetchall()]
        except (psycopg2.Error, ValueError) as e:
            # The driver raises ValueError for parameters it cannot quote,
            # e.g. strings containing NUL
            raise QueryError(str(e).strip() or type(e).__name__, sql) from e
        finally:
            # Broken connections are dropped instead of being reused
            self._pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        """Close every pooled connection and stop the worker threads."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        self._pool.closeall()
        logger.info("Connection pool closed")
