"""
handlers/start_handler.py
--------------------------
Handles /start, /help and /myid.
"""

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)

HELP_TEXT = """
🐘 *SqlGate* - PostgreSQL from Telegram

*🔎 Read:*
/query <sql> - run a SELECT / WITH / EXPLAIN / SHOW
/tables [schema] - list tables (default: public)
/describe <table> [schema] - columns, keys and indexes

*✏️ Write:*
/execute <sql> - run INSERT / UPDATE / DDL in an open transaction
/commit [id] - save the changes
/rollback [id] - discard the changes
/transactions - list transactions waiting for a decision
Reply *yes* or *no* to resolve your last pending transaction.

*ℹ️ Other:*
/help - show this message
/myid - show your Telegram ID
"""


@authorized_only
@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command - show welcome message."""
    user = update.effective_user
    logger.info(f"User {user.id} ({user.first_name}) started the bot.")
    await update.message.reply_text(
        f"Hi {user.first_name}! 👋\n"
        f"Send /query to read from the database or /execute to change it.\n\n"
        f"Type /help to see every command.",
    )


@authorized_only
@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command - show all available commands."""
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


@authorized_only
async def myid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /myid command - show user's Telegram ID for whitelisting."""
    user = update.effective_user
    await update.message.reply_text(
        f"🆔 Your Telegram ID: `{user.id}`\n"
        f"Add it to `ALLOWED_USER_IDS` in `.env` to lock the bot down.",
        parse_mode="Markdown",
    )
