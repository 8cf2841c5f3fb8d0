"""
handlers/query_handler.py
--------------------------
Handles read-only commands: /query, /tables and /describe.
Delegates all logic to QueryService.
"""

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import authorized_only
from security.rate_limiter import rate_limited
from services.errors import SqlGateError
from services.query_service import QueryService
from utils.formatting import command_argument, to_json
from utils.logger import get_logger

logger = get_logger(__name__)


def _service(context: ContextTypes.DEFAULT_TYPE) -> QueryService:
    return context.bot_data["query_service"]


@authorized_only
@rate_limited
async def query_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /query - run a read-only statement.

    Usage:
        /query SELECT * FROM users LIMIT 10
    """
    sql = command_argument(update.message.text)
    try:
        result = await _service(context).run_query(sql)
    except SqlGateError as e:
        await update.message.reply_text(to_json(e.details()))
        return
    await update.message.reply_text(to_json(result))


@authorized_only
@rate_limited
async def tables_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tables [schema] - list base tables (default schema: public)."""
    schema = context.args[0] if context.args else "public"
    try:
        tables = await _service(context).list_tables(schema)
    except SqlGateError as e:
        await update.message.reply_text(to_json(e.details()))
        return
    if not tables:
        await update.message.reply_text(f"📭 No tables in schema \"{schema}\".")
        return
    await update.message.reply_text(to_json(tables))


@authorized_only
@rate_limited
async def describe_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /describe - show columns, keys and indexes of a table.

    Usage:
        /describe users
        /describe invoices billing
    """
    if not context.args:
        await update.message.reply_text(
            "⚠️ Usage: `/describe <table> [schema]`", parse_mode="Markdown"
        )
        return
    table = context.args[0]
    schema = context.args[1] if len(context.args) > 1 else "public"
    try:
        description = await _service(context).describe_table(table, schema)
    except SqlGateError as e:
        await update.message.reply_text(to_json(e.details()))
        return
    await update.message.reply_text(to_json(description))
