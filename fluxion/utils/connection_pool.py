"""
Thread-safe PostgreSQL connection pool shared by all services.
"""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.pool

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionPoolError(Exception):
    """Raised when the pool cannot be created or used."""


class ConnectionTimeoutError(ConnectionPoolError):
    """Raised when no connection became available in time."""


class ConnectionPool:
    """
    Wraps ``psycopg2.pool.ThreadedConnectionPool``.

    Usage:
        pool = ConnectionPool(connection_params={...})
        conn = pool.get_connection()
        try:
            ...
        finally:
            pool.release_connection(conn)
    """

    def __init__(
        self,
        connection_params: Optional[Dict[str, Any]] = None,
        *,
        pg_config: Optional[Dict[str, Any]] = None,
        min_connections: int = 1,
        max_connections: int = 10,
        acquire_timeout: float = 10.0,
    ):
        params = connection_params or pg_config
        if not params:
            raise ValueError("Either pg_config or connection_params must be provided")
        if min_connections < 0 or max_connections < max(1, min_connections):
            raise ValueError(
                f"Invalid pool size (min={min_connections}, max={max_connections})"
            )

        self._params = dict(params)
        self._acquire_timeout = acquire_timeout
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                min_connections,
                max_connections,
                **self._params,
            )
        except psycopg2.Error as e:
            raise ConnectionPoolError(f"Could not create connection pool: {e}") from e
        logger.info(
            "Connection pool ready (host=%s, database=%s, min=%d, max=%d)",
            self._params.get("host"),
            self._params.get("database"),
            min_connections,
            max_connections,
        )

    def get_connection(self):
        """Borrow a connection, waiting up to ``acquire_timeout`` seconds."""
        if self._pool is None:
            raise ConnectionPoolError("Connection pool is closed")
        deadline = time.monotonic() + self._acquire_timeout
        while True:
            try:
                return self._pool.getconn()
            except psycopg2.pool.PoolError:
                if time.monotonic() >= deadline:
                    raise ConnectionTimeoutError(
                        f"No database connection available after {self._acquire_timeout}s"
                    )
                time.sleep(0.05)

    def release_connection(self, conn) -> None:
        if self._pool is None or conn is None:
            return
        try:
            # leave no transaction open for the next borrower
            if not conn.closed:
                conn.rollback()
        except psycopg2.Error:
            logger.warning("Discarding broken connection on release")
            self._pool.putconn(conn, close=True)
            return
        self._pool.putconn(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
