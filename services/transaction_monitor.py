"""
services/transaction_monitor.py
-------------------------------
Background sweep that rolls back transactions left open past the timeout,
plus the shutdown drain that resolves everything still open.

Lifecycle of an entry as seen by the monitor:
    active --(age > timeout)--> terminating --(rollback attempted)--> removed
"""

import asyncio
import time
from typing import Optional

from config import (
    ENABLE_TRANSACTION_MONITOR,
    MONITOR_INTERVAL_MS,
    TRANSACTION_TIMEOUT_MS,
)
from models.transaction import TrackedTransaction
from repositories.transaction_registry import TransactionRegistry
from utils.logger import get_logger

logger = get_logger(__name__)


class TransactionMonitor:
    """Periodically force-rolls back transactions older than the timeout."""

    def __init__(
        self,
        registry: TransactionRegistry,
        timeout_ms: int = TRANSACTION_TIMEOUT_MS,
        interval_ms: int = MONITOR_INTERVAL_MS,
        enabled: bool = ENABLE_TRANSACTION_MONITOR,
    ):
        self.registry = registry
        self.timeout_ms = timeout_ms
        self.interval_ms = interval_ms
        self.enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Number of forced rollbacks still in flight."""
        return len(self._pending)

    def start(self) -> None:
        """Start the sweep loop. Must be called from a running event loop."""
        if not self.enabled:
            logger.info("Transaction monitor is disabled.")
            return
        if self.running:
            return
        logger.info(
            f"Starting transaction monitor with timeout {self.timeout_ms}ms, "
            f"checking every {self.interval_ms}ms."
        )
        self._task = asyncio.create_task(self._run(), name="transaction-monitor")

    async def stop(self) -> None:
        """Cancel the sweep loop. Forced rollbacks already started keep running."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Transaction monitor sweep failed: {e}")

    def sweep(self) -> int:
        """
        Start a forced rollback for every active entry past the timeout.

        Rollbacks run as separate tasks so one slow connection never delays
        the rest of the sweep.

        Returns:
            Number of transactions moved to 'terminating' by this sweep.
        """
        now = time.monotonic()
        terminated = 0

        for entry in self.registry.snapshot():
            if entry.released:
                continue
            age = entry.age_ms(now)
            if age > self.timeout_ms and entry.mark_terminating():
                logger.warning(
                    f"Transaction {entry.id} has been open for {int(age)}ms and will be rolled back."
                )
                task = asyncio.create_task(
                    self._rollback_and_release(entry, reason="timeout"),
                    name=f"force-rollback-{entry.id}",
                )
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                terminated += 1

        if terminated:
            logger.warning(
                f"Terminated {terminated} stuck transaction(s). Remaining open: {self.registry.count}"
            )
        return terminated

    async def _rollback_and_release(self, entry: TrackedTransaction, reason: str) -> None:
        """Roll back if nobody finalized the entry first, then release it exactly once."""
        async with entry.lock:
            try:
                if not entry.released:
                    await asyncio.to_thread(entry.connection.rollback)
                    logger.info(f"Rolled back transaction {entry.id} ({reason}).")
            except Exception as e:
                logger.error(f"Error rolling back transaction {entry.id} ({reason}): {e}")
            finally:
                self.registry.release(entry)

    async def drain(self) -> None:
        """
        Resolve every open transaction before the process exits.

        Stops the sweep, waits for forced rollbacks in flight, then rolls back
        and releases whatever is left. Failures are logged and the drain
        moves on to the next entry.
        """
        await self.stop()

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        entries = self.registry.snapshot()
        logger.info(f"Cleaning up {len(entries)} open transaction(s).")

        for entry in entries:
            if entry.released:
                logger.info(f"Transaction {entry.id} already released, skipping rollback.")
                self.registry.remove(entry.id)
                continue
            await self._rollback_and_release(entry, reason="shutdown")

        self.registry.clear()
