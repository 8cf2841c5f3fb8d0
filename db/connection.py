"""
db/connection.py
----------------
Manages the PostgreSQL connection pool.
Uses psycopg2's ThreadedConnectionPool: connections are checked out from
worker threads (via ``asyncio.to_thread``) while the bot's event loop
keeps running.

Also provides the client-lease helpers used by the services:
    - ``acquire_connection`` / ``lease_connection`` for async callers.
    - ``safely_release_connection`` for a release that tolerates being
      called twice for the same connection.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import psycopg2
from psycopg2 import pool

from config import (
    DATABASE_URL,
    PG_IDLE_TIMEOUT_MS,
    PG_MAX_CONNECTIONS,
    PG_STATEMENT_TIMEOUT_MS,
)
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.ThreadedConnectionPool | None = None
_idle_timeout_s: float = PG_IDLE_TIMEOUT_MS / 1000
# id(conn) -> (conn, monotonic time it went back to the pool), only for
# connections the pool kept open. Holding conn pins its id.
_returned_at: dict[int, tuple[object, float]] = {}


def init_pool(
    min_conn: int = 1,
    max_conn: int = PG_MAX_CONNECTIONS,
    dsn: str = DATABASE_URL,
    statement_timeout_ms: int = PG_STATEMENT_TIMEOUT_MS,
    idle_timeout_ms: int = PG_IDLE_TIMEOUT_MS,
) -> None:
    """
    Initialize the database connection pool.

    Args:
        min_conn: Minimum number of connections to keep open.
        max_conn: Maximum number of connections allowed.
        dsn: libpq connection string or URL.
        statement_timeout_ms: Server-side cutoff applied to every statement.
        idle_timeout_ms: Pooled connections idle longer than this are
            closed and replaced on the next checkout.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool, _idle_timeout_s
    if _pool is not None:
        return
    try:
        _pool = pool.ThreadedConnectionPool(
            min_conn,
            max_conn,
            dsn,
            options=f"-c statement_timeout={statement_timeout_ms}",
        )
        _idle_timeout_s = idle_timeout_ms / 1000
        logger.info(
            f"Database connection pool initialized (max={max_conn}, "
            f"statement_timeout={statement_timeout_ms}ms, idle_timeout={idle_timeout_ms}ms)."
        )
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise


def get_connection():
    """
    Get a connection from the pool.

    Connections that sat idle in the pool for longer than the idle timeout
    are closed and another one is taken instead.

    Returns:
        A psycopg2 connection object.

    Raises:
        RuntimeError: If the pool has not been initialized.
        psycopg2.pool.PoolError: If the pool is exhausted.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    while True:
        conn = _pool.getconn()
        entry = _returned_at.pop(id(conn), None)
        if entry is None or entry[0] is not conn or time.monotonic() - entry[1] <= _idle_timeout_s:
            return conn
        logger.debug("Closing pooled connection idle past the idle timeout.")
        _pool.putconn(conn, close=True)


def release_connection(conn) -> None:
    """
    Return a connection back to the pool.

    Args:
        conn: The psycopg2 connection to release.

    Raises:
        psycopg2.pool.PoolError: If the connection is not checked out
            from this pool (for example, released twice).
    """
    if _pool is not None:
        _pool.putconn(conn)
        # The pool closes connections beyond minconn instead of keeping them
        if not conn.closed:
            _returned_at[id(conn)] = (conn, time.monotonic())
        _prune_returned()


def _prune_returned() -> None:
    """Forget connections that were closed while sitting in the pool."""
    for key, (conn, _) in list(_returned_at.items()):
        if conn.closed:
            del _returned_at[key]


def safely_release_connection(conn) -> bool:
    """
    Return a connection to the pool, logging instead of raising when the
    pool rejects it (already released, pool closed, ...).

    Returns:
        True if the pool accepted the connection.
    """
    try:
        release_connection(conn)
        return True
    except Exception as e:
        logger.error(f"Error releasing connection (may already be released): {e}")
        return False


async def acquire_connection():
    """
    Check a connection out of the pool without blocking the event loop.

    If the caller is cancelled while the worker thread is still checking
    out, the connection it eventually returns goes straight back to the pool.
    """
    checkout = asyncio.ensure_future(asyncio.to_thread(get_connection))
    try:
        return await asyncio.shield(checkout)
    except asyncio.CancelledError:
        checkout.add_done_callback(_release_abandoned_checkout)
        raise


def _release_abandoned_checkout(checkout: asyncio.Future) -> None:
    if checkout.cancelled() or checkout.exception() is not None:
        return
    logger.warning("Checkout finished after its caller was cancelled; returning the connection.")
    safely_release_connection(checkout.result())


@asynccontextmanager
async def lease_connection() -> AsyncIterator:
    """
    Scoped checkout: the connection is released on every exit path.

    Usage:
        async with lease_connection() as conn:
            ...
    """
    conn = await acquire_connection()
    try:
        yield conn
    finally:
        safely_release_connection(conn)


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        _returned_at.clear()
        logger.info("Database connection pool closed.")
