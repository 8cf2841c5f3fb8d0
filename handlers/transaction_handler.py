"""
handlers/transaction_handler.py
--------------------------------
Handles write statements and their confirmation:
/execute, /commit, /rollback, /transactions and plain "yes" / "no" replies.
Delegates all logic to TransactionService.
"""

from telegram import Update
from telegram.ext import ContextTypes

from security.auth import authorized_only
from security.rate_limiter import rate_limited
from services.errors import SqlGateError, TransactionError
from services.transaction_service import TransactionService
from utils.formatting import command_argument, to_json
from utils.logger import get_logger

logger = get_logger(__name__)

_PENDING_KEY = "pending_transaction_id"
_CONFIRM_WORDS = {"yes", "y", "commit"}
_CANCEL_WORDS = {"no", "n", "rollback"}


def _service(context: ContextTypes.DEFAULT_TYPE) -> TransactionService:
    return context.bot_data["transaction_service"]


def _forget_pending(context: ContextTypes.DEFAULT_TYPE, transaction_id: str | None) -> None:
    if transaction_id and context.user_data.get(_PENDING_KEY) == transaction_id:
        context.user_data.pop(_PENDING_KEY, None)


def _confirmation_text(result: dict) -> str:
    seconds = result["timeout_ms"] // 1000
    tx_id = result["transaction_id"]
    return (
        f"{to_json(result)}\n\n"
        "The statement ran inside an open transaction. Review the result, then:\n"
        f"• reply yes (or /commit {tx_id}) to COMMIT and save the changes\n"
        f"• reply no (or /rollback {tx_id}) to ROLLBACK and discard them\n\n"
        f"The transaction is rolled back automatically if not committed within {seconds} seconds."
    )


async def _resolve(update: Update, context: ContextTypes.DEFAULT_TYPE, transaction_id: str, commit: bool) -> None:
    service = _service(context)
    try:
        if commit:
            result = await service.commit(transaction_id)
        else:
            result = await service.rollback(transaction_id)
    except TransactionError as e:
        _forget_pending(context, e.transaction_id)
        await update.message.reply_text(to_json(e.details()))
        return
    except SqlGateError as e:
        await update.message.reply_text(to_json(e.details()))
        return

    _forget_pending(context, transaction_id)
    user = update.effective_user
    logger.info(f"User {user.id} {result['status']} transaction {transaction_id}.")
    await update.message.reply_text(to_json(result))


@authorized_only
@rate_limited
async def execute_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /execute - run a write/DDL statement and hold it for confirmation.

    Usage:
        /execute UPDATE accounts SET active = false WHERE id = 7
    """
    sql = command_argument(update.message.text)
    try:
        result = await _service(context).execute(sql)
    except SqlGateError as e:
        await update.message.reply_text(to_json(e.details()))
        return

    context.user_data[_PENDING_KEY] = result["transaction_id"]
    logger.info(f"User {update.effective_user.id} opened transaction {result['transaction_id']}.")
    await update.message.reply_text(_confirmation_text(result))


@authorized_only
@rate_limited
async def commit_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /commit [transaction_id] - defaults to your last pending transaction."""
    transaction_id = context.args[0] if context.args else context.user_data.get(_PENDING_KEY, "")
    await _resolve(update, context, transaction_id, commit=True)


@authorized_only
@rate_limited
async def rollback_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /rollback [transaction_id] - defaults to your last pending transaction."""
    transaction_id = context.args[0] if context.args else context.user_data.get(_PENDING_KEY, "")
    await _resolve(update, context, transaction_id, commit=False)


@authorized_only
@rate_limited
async def transactions_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /transactions - list transactions waiting for a decision."""
    open_transactions = _service(context).list_open()
    if not open_transactions:
        await update.message.reply_text("📭 No open transactions.")
        return
    await update.message.reply_text(to_json(open_transactions))


@authorized_only
@rate_limited
async def handle_text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle any plain text message (not a command).
    "yes" / "no" resolve the user's last pending transaction.
    """
    text = update.message.text.strip().lower()
    if text not in _CONFIRM_WORDS | _CANCEL_WORDS:
        await update.message.reply_text("🤔 Unknown input. Type /help to see the available commands.")
        return

    transaction_id = context.user_data.get(_PENDING_KEY)
    if not transaction_id:
        await update.message.reply_text("📭 You have no pending transaction.")
        return

    await _resolve(update, context, transaction_id, commit=text in _CONFIRM_WORDS)
