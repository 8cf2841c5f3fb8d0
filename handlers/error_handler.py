"""
handlers/error_handler.py
--------------------------
Last line of defence for exceptions escaping a handler.
Expected failures are answered by the handlers themselves; anything that
reaches this point is a bug or an infrastructure problem.
"""

from telegram import Update
from telegram.ext import ContextTypes

from utils.formatting import to_json
from utils.logger import get_logger

logger = get_logger(__name__)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log the exception and tell the user the request failed."""
    logger.error(f"Unhandled error while processing an update: {context.error!r}", exc_info=context.error)

    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            to_json({"status": "error", "error": "InternalError", "message": str(context.error)})
        )
