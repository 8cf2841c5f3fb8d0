"""
security/rate_limiter.py
-------------------------
Rate limiting middleware.
Limits the number of messages a user can send within a time window, which
also bounds how fast one user can open transactions.
"""

import time
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)

# {user_id: [timestamp1, timestamp2, ...]}
_user_timestamps: dict[int, list[float]] = {}


def _cleanup(user_id: int, now: float) -> None:
    """Remove expired timestamps for a user."""
    cutoff = now - RATE_LIMIT_WINDOW_SECONDS
    recent = [t for t in _user_timestamps.get(user_id, ()) if t > cutoff]
    if recent:
        _user_timestamps[user_id] = recent
    else:
        # Users who went quiet are forgotten
        _user_timestamps.pop(user_id, None)


def rate_limited(func: Callable):
    """
    Decorator that enforces rate limiting per user.

    Configuration (via .env):
        RATE_LIMIT_MESSAGES: Max messages per window (default: 30).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        now = time.monotonic()
        _cleanup(user.id, now)

        if len(_user_timestamps.get(user.id, ())) >= RATE_LIMIT_MESSAGES:
            logger.warning(f"Rate limit hit for user {user.id}")
            if update.effective_message:
                await update.effective_message.reply_text(
                    "⚠️ Too many messages. Wait a moment and try again."
                )
            return

        _user_timestamps.setdefault(user.id, []).append(now)
        return await func(update, context, *args, **kwargs)

    return wrapper
