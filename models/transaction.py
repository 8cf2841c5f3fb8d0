"""
models/transaction.py
---------------------
Domain model for a write transaction held open across requests.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

STATE_ACTIVE = "active"
STATE_TERMINATING = "terminating"


@dataclass
class TrackedTransaction:
    """
    A database transaction whose connection is owned by the registry
    until it is committed, rolled back or timed out.

    Attributes:
        id: Opaque transaction id handed to the user.
        connection: The leased psycopg2 connection. Nothing else may use it
            until the entry is released.
        sql_preview: Truncated copy of the statement that opened the transaction.
        started_at: Monotonic registration time, used to compute age.
        started_wall: Wall-clock registration time, for display only.
        state: 'active' until the monitor starts a forced rollback.
        released: True once the connection went back to the pool
            (or a release was attempted).
        lock: Serializes COMMIT / ROLLBACK round trips on the connection.
    """
    id: str
    connection: Any
    sql_preview: str
    started_at: float = field(default_factory=time.monotonic)
    started_wall: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: str = STATE_ACTIVE  # 'active' | 'terminating'
    released: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def age_ms(self, now: float | None = None) -> float:
        """Milliseconds since registration."""
        now = time.monotonic() if now is None else now
        return (now - self.started_at) * 1000

    def is_active(self) -> bool:
        return self.state == STATE_ACTIVE

    def mark_terminating(self) -> bool:
        """
        Move the entry to 'terminating'.

        Returns:
            False if it was already terminating (the state never goes back).
        """
        if self.state != STATE_ACTIVE:
            return False
        self.state = STATE_TERMINATING
        return True

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.id,
            "state": self.state,
            "age_ms": int(self.age_ms()),
            "started_at": self.started_wall.isoformat(),
            "sql": self.sql_preview,
        }
