"""
utils/sql.py
------------
Small helpers around raw SQL text: read-only classification,
transaction id generation and previews for logs.
"""

import secrets
import string
import time

_READ_ONLY_PREFIXES = ("SELECT", "WITH", "EXPLAIN")
_ID_ALPHABET = string.ascii_lowercase + string.digits

SQL_PREVIEW_LENGTH = 100


def is_read_only_query(sql: str) -> bool:
    """
    Decide whether a statement may run as an isolated read-only transaction.

    This is a prefix check, not a parser. ``WITH x AS (...) INSERT ...``
    is classified read-only; PostgreSQL then rejects the write because the
    transaction is read-only.

    Args:
        sql: Raw SQL text.

    Returns:
        True for SELECT / WITH / EXPLAIN, and SHOW without CREATE.
    """
    normalized = sql.strip().upper()
    if normalized.startswith(_READ_ONLY_PREFIXES):
        return True
    return normalized.startswith("SHOW") and "CREATE" not in normalized


def generate_transaction_id() -> str:
    """Return an id like ``tx_1718000000000_k3j9x0q2m1ab``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(12))
    return f"tx_{int(time.time() * 1000)}_{suffix}"


def preview(sql: str, length: int = SQL_PREVIEW_LENGTH) -> str:
    """First ``length`` characters of a statement, for diagnostics."""
    return sql[:length]
