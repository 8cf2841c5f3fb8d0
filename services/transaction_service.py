"""
services/transaction_service.py
-------------------------------
Write statements that stay open until the user confirms them.

    execute()  → runs the statement in a fresh transaction and parks the
                 connection in the registry under a new transaction id.
    commit()   → commits a parked transaction and releases its connection.
    rollback() → rolls it back and releases its connection.
"""

import asyncio
import time

import psycopg2

from config import MAX_CONCURRENT_TRANSACTIONS, TRANSACTION_TIMEOUT_MS
from db.connection import acquire_connection, safely_release_connection
from repositories.transaction_registry import TransactionRegistry
from services.errors import (
    AlreadyReleased,
    CommitFailed,
    ConnectionUnavailable,
    MissingArgument,
    RollbackFailed,
    StatementFailed,
    TooManyTransactions,
    TransactionNotFound,
)
from utils.logger import get_logger
from utils.sql import generate_transaction_id

logger = get_logger(__name__)


def _run_statement(conn, sql: str) -> dict:
    """Execute one statement inside the connection's current transaction."""
    conn.readonly = False
    with conn.cursor() as cur:
        cur.execute(sql)
        status = cur.statusmessage or ""
        return {
            "command": status.split(" ", 1)[0] if status else None,
            "row_count": cur.rowcount if cur.rowcount >= 0 else None,
        }


def _release_after_cancel(statement: asyncio.Future, conn) -> None:
    if not statement.cancelled() and statement.exception() is not None:
        logger.error(f"Cancelled statement failed: {statement.exception()}")
    safely_release_connection(conn)


class TransactionService:
    """Runs write/DDL statements and resolves the transactions they open."""

    def __init__(
        self,
        registry: TransactionRegistry,
        max_concurrent: int = MAX_CONCURRENT_TRANSACTIONS,
        timeout_ms: int = TRANSACTION_TIMEOUT_MS,
    ):
        self.registry = registry
        self.max_concurrent = max_concurrent
        self.timeout_ms = timeout_ms

    # ── WRITE ─────────────────────────────────────────────

    async def execute(self, sql: str) -> dict:
        """
        Execute a DML/DDL/DCL statement and hold its transaction open.

        Args:
            sql: The statement. It is not required to be read-only.

        Returns:
            Dict with transaction_id, status, command, row_count,
            execution_time_ms and timeout_ms.

        Raises:
            MissingArgument: Empty statement.
            TooManyTransactions: The concurrency ceiling is reached.
            ConnectionUnavailable: No connection could be acquired.
            StatementFailed: The database rejected the statement.
        """
        if not sql or not sql.strip():
            raise MissingArgument("No SQL statement provided.")
        if self.registry.count >= self.max_concurrent:
            raise TooManyTransactions(
                f"Maximum concurrent transactions limit reached ({self.max_concurrent}). Try again later."
            )

        try:
            conn = await acquire_connection()
        except (psycopg2.Error, RuntimeError) as e:
            logger.error(f"Could not acquire a connection: {e}")
            raise ConnectionUnavailable(f"Could not acquire a database connection: {e}") from e

        transaction_id = generate_transaction_id()
        start = time.perf_counter()
        statement = asyncio.ensure_future(asyncio.to_thread(_run_statement, conn, sql))
        try:
            result = await asyncio.shield(statement)
        except asyncio.CancelledError:
            # The worker thread still owns conn until the statement returns.
            # putconn rolls back the half-finished transaction.
            logger.warning(f"Execute cancelled; releasing connection for {transaction_id} once the statement returns.")
            statement.add_done_callback(lambda done: _release_after_cancel(done, conn))
            raise
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"Statement failed after {elapsed_ms}ms: {e}")
            try:
                await asyncio.to_thread(conn.rollback)
            except Exception as rollback_error:
                logger.error(f"Rollback after failed statement also failed: {rollback_error}")
            safely_release_connection(conn)
            raise StatementFailed(f"Error executing statement: {e}", sql=sql) from e
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        # From here on the connection belongs to the registry
        self.registry.add(transaction_id, conn, sql)
        return {
            "transaction_id": transaction_id,
            "status": "pending",
            "command": result["command"],
            "row_count": result["row_count"],
            "execution_time_ms": elapsed_ms,
            "timeout_ms": self.timeout_ms,
        }

    # ── RESOLVE ───────────────────────────────────────────

    def _lookup(self, transaction_id: str, action: str):
        if not transaction_id:
            raise MissingArgument("No transaction ID provided.")
        entry = self.registry.get(transaction_id)
        if entry is None:
            raise TransactionNotFound(
                f"Transaction not found or already {action}.", transaction_id=transaction_id
            )
        if entry.released:
            self.registry.remove(transaction_id)
            raise AlreadyReleased("Transaction connection already released.", transaction_id=transaction_id)
        return entry

    async def commit(self, transaction_id: str) -> dict:
        """
        Commit a held transaction.

        Raises:
            MissingArgument, TransactionNotFound, AlreadyReleased, CommitFailed
        """
        entry = self._lookup(transaction_id, "committed")

        async with entry.lock:
            # The monitor may have resolved it while we waited for the lock
            if entry.released:
                self.registry.remove(transaction_id)
                raise AlreadyReleased("Transaction connection already released.", transaction_id=transaction_id)
            try:
                await asyncio.to_thread(entry.connection.commit)
            except Exception as e:
                logger.error(f"Commit of {transaction_id} failed: {e}")
                try:
                    await asyncio.to_thread(entry.connection.rollback)
                except Exception as rollback_error:
                    logger.error(f"Error during rollback of {transaction_id}: {rollback_error}")
                self.registry.release(entry)
                raise CommitFailed(
                    f"Error committing transaction: {e}", transaction_id=transaction_id
                ) from e
            self.registry.release(entry)

        logger.info(f"Committed transaction {transaction_id}.")
        return {
            "status": "committed",
            "message": "Transaction successfully committed.",
            "transaction_id": transaction_id,
        }

    async def rollback(self, transaction_id: str) -> dict:
        """
        Roll back a held transaction. The connection is released even when
        the rollback itself fails.

        Raises:
            MissingArgument, TransactionNotFound, AlreadyReleased, RollbackFailed
        """
        entry = self._lookup(transaction_id, "rolled back")

        async with entry.lock:
            if entry.released:
                self.registry.remove(transaction_id)
                raise AlreadyReleased("Transaction connection already released.", transaction_id=transaction_id)
            try:
                await asyncio.to_thread(entry.connection.rollback)
            except Exception as e:
                logger.error(f"Rollback of {transaction_id} failed: {e}")
                raise RollbackFailed(
                    f"Error rolling back transaction: {e}", transaction_id=transaction_id
                ) from e
            finally:
                self.registry.release(entry)

        logger.info(f"Rolled back transaction {transaction_id}.")
        return {
            "status": "rolled_back",
            "message": "Transaction successfully rolled back.",
            "transaction_id": transaction_id,
        }

    # ── DIAGNOSTICS ───────────────────────────────────────

    def list_open(self) -> list[dict]:
        """Open transactions, oldest first."""
        entries = sorted(self.registry.snapshot(), key=lambda e: e.started_at)
        return [e.to_dict() for e in entries if not e.released]
