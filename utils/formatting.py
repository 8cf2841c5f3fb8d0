"""
utils/formatting.py
-------------------
Turns service payloads into Telegram message text.
"""

import json
from typing import Any

# Telegram rejects messages longer than 4096 characters
MAX_MESSAGE_LENGTH = 3800


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def to_json(payload: Any, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Pretty JSON that fits in one message. Non-JSON values (Decimal, datetime)
    are stringified.

    An oversized payload is shrunk rather than cut, so the text always
    parses: the longest list it carries (``rows`` for a query) keeps as many
    leading items as fit and the result gains ``truncated`` and
    ``<key>_shown`` fields.
    """
    text = _dump(payload)
    if len(text) <= limit:
        return text

    if isinstance(payload, list):
        payload = {"items": payload, "total": len(payload)}
    if isinstance(payload, dict):
        lists = [k for k, v in payload.items() if isinstance(v, list) and v]
        if lists:
            key = max(lists, key=lambda k: len(payload[k]))
            items = payload[key]

            def shrunk(n: int) -> str:
                return _dump({**payload, key: items[:n], "truncated": True, f"{key}_shown": n})

            # Largest n whose rendering fits
            lo, hi = 0, len(items)
            while lo < hi:
                mid = (lo + hi + 1) // 2
                if len(shrunk(mid)) <= limit:
                    lo = mid
                else:
                    hi = mid - 1
            candidate = shrunk(lo)
            if len(candidate) <= limit:
                return candidate

    return _dump({"truncated": True, "message": f"Result too large to display ({len(text)} characters)."})


def command_argument(text: str | None) -> str:
    """
    Everything after the command word, with newlines kept.

    Example:
        "/query SELECT 1\\nFROM t" → "SELECT 1\\nFROM t"
    """
    if not text:
        return ""
    parts = text.strip().split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""
