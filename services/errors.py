"""
services/errors.py
------------------
Failure kinds raised by the query and transaction services.
Handlers turn them into structured error replies.
"""

from typing import Any, Optional


class SqlGateError(Exception):
    """Base class for every expected, user-facing failure."""

    kind = "Error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.extra = details

    def details(self) -> dict:
        return {"status": "error", "error": self.kind, "message": self.message, **self.extra}


# ── Validation ────────────────────────────────────────────

class MissingArgument(SqlGateError):
    kind = "MissingArgument"


# ── Policy ────────────────────────────────────────────────

class NotReadOnly(SqlGateError):
    kind = "NotReadOnly"


class TooManyTransactions(SqlGateError):
    kind = "TooManyTransactions"


# ── Execution ─────────────────────────────────────────────

class QueryFailed(SqlGateError):
    kind = "QueryFailed"


class StatementFailed(SqlGateError):
    """The write statement was rejected; carries the SQL for diagnostics."""

    kind = "StatementFailed"

    def __init__(self, message: str, sql: str):
        super().__init__(message, sql=sql)
        self.sql = sql


# ── Lifecycle ─────────────────────────────────────────────

class TransactionError(SqlGateError):
    def __init__(self, message: str, transaction_id: Optional[str]):
        super().__init__(message, transaction_id=transaction_id)
        self.transaction_id = transaction_id


class TransactionNotFound(TransactionError):
    kind = "TransactionNotFound"


class AlreadyReleased(TransactionError):
    kind = "AlreadyReleased"


class CommitFailed(TransactionError):
    kind = "CommitFailed"


class RollbackFailed(TransactionError):
    kind = "RollbackFailed"


class TableNotFound(SqlGateError):
    kind = "TableNotFound"


# ── Resources ─────────────────────────────────────────────

class ConnectionUnavailable(SqlGateError):
    """The pool is exhausted or the database cannot be reached."""

    kind = "ConnectionUnavailable"
