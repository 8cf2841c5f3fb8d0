"""
repositories/transaction_registry.py
------------------------------------
In-memory store of write transactions that are held open between requests.

The registry owns each registered connection until it is released. One
instance is created at startup and handed to every service that needs it.
Nothing here is persisted: a restart abandons whatever was open and the
database server reclaims those sessions.
"""

from typing import Callable, Optional

from db.connection import safely_release_connection
from models.transaction import TrackedTransaction
from utils.logger import get_logger
from utils.sql import preview

logger = get_logger(__name__)


class TransactionRegistry:
    """Maps transaction ids to their tracked connection."""

    def __init__(self, release: Callable[[object], bool] = safely_release_connection):
        self._transactions: dict[str, TrackedTransaction] = {}
        self._release = release

    # ── CREATE ────────────────────────────────────────────

    def add(self, transaction_id: str, connection, sql: str) -> TrackedTransaction:
        """
        Register a connection under a new transaction id.

        Raises:
            ValueError: If the id is taken or the connection is already
                registered under another id.
        """
        if transaction_id in self._transactions:
            raise ValueError(f"Transaction {transaction_id} is already registered.")
        for existing in self._transactions.values():
            if existing.connection is connection:
                raise ValueError(
                    f"Connection already registered under transaction {existing.id}."
                )
        entry = TrackedTransaction(
            id=transaction_id,
            connection=connection,
            sql_preview=preview(sql),
        )
        self._transactions[transaction_id] = entry
        logger.info(f"Registered transaction {transaction_id} ({self.count} open).")
        return entry

    # ── READ ──────────────────────────────────────────────

    def get(self, transaction_id: str) -> Optional[TrackedTransaction]:
        return self._transactions.get(transaction_id)

    def has(self, transaction_id: str) -> bool:
        return transaction_id in self._transactions

    @property
    def count(self) -> int:
        return len(self._transactions)

    def snapshot(self) -> list[TrackedTransaction]:
        """Copy of the current entries, safe to iterate across awaits."""
        return list(self._transactions.values())

    # ── DELETE ────────────────────────────────────────────

    def remove(self, transaction_id: str) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    def release(self, entry: TrackedTransaction) -> bool:
        """
        Return the entry's connection to the pool and drop the entry.

        The ``released`` flag is checked and set with no await in between,
        so only the first caller for a given entry releases the connection.
        The entry is removed either way.

        Returns:
            True if this call performed the release.
        """
        if entry.released:
            self.remove(entry.id)
            return False
        entry.released = True
        self._release(entry.connection)
        self.remove(entry.id)
        return True

    def clear(self) -> None:
        self._transactions.clear()
