"""
main.py
-------
Entry point for the SqlGate Telegram bot.

Responsibilities:
    - Initialize the database connection pool and check connectivity.
    - Wire the transaction registry, monitor and services.
    - Configure and start the Telegram bot with all handlers.
    - Drain open transactions and close the pool on shutdown.
"""

import asyncio
import sys

from telegram import BotCommand
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters,
)

import config
from db.connection import close_pool, get_connection, init_pool, release_connection
from handlers.error_handler import error_handler
from handlers.query_handler import describe_command, query_command, tables_command
from handlers.start_handler import help_command, myid_command, start_command
from handlers.transaction_handler import (
    commit_command,
    execute_command,
    handle_text_message,
    rollback_command,
    transactions_command,
)
from repositories.transaction_registry import TransactionRegistry
from services.query_service import QueryService
from services.transaction_monitor import TransactionMonitor
from services.transaction_service import TransactionService
from utils.logger import get_logger

logger = get_logger(__name__)


def log_configuration() -> None:
    logger.info(
        "Configuration: "
        f"transaction_timeout={config.TRANSACTION_TIMEOUT_MS}ms, "
        f"monitor_interval={config.MONITOR_INTERVAL_MS}ms, "
        f"monitor_enabled={config.ENABLE_TRANSACTION_MONITOR}, "
        f"max_concurrent_transactions={config.MAX_CONCURRENT_TRANSACTIONS}, "
        f"max_db_connections={config.PG_MAX_CONNECTIONS}"
    )
    if not config.ALLOWED_USER_IDS:
        logger.warning("ALLOWED_USER_IDS is empty: every Telegram user can reach the database!")


def check_database() -> None:
    """Open and return one connection so a bad DATABASE_URL fails at startup."""
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
        conn.rollback()
        logger.info("Successfully connected to database.")
    finally:
        release_connection(conn)


async def on_startup(application: Application) -> None:
    """Register the command menu, start the monitor and guard the event loop."""
    commands = [
        BotCommand("query", "🔎 Run a read-only query"),
        BotCommand("execute", "✏️ Run a write statement"),
        BotCommand("commit", "✅ Commit a pending transaction"),
        BotCommand("rollback", "↩️ Roll back a pending transaction"),
        BotCommand("transactions", "⏳ List pending transactions"),
        BotCommand("tables", "📋 List tables"),
        BotCommand("describe", "🔬 Describe a table"),
        BotCommand("help", "📖 Help"),
        BotCommand("myid", "🆔 Your Telegram ID"),
    ]
    await application.bot.set_my_commands(commands)
    logger.info("Bot commands menu registered successfully.")

    application.bot_data["transaction_monitor"].start()

    def on_loop_error(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        # Stopping the application runs on_shutdown, which drains transactions
        logger.error(f"Unhandled exception in event loop: {context.get('exception') or context.get('message')}")
        application.stop_running()

    asyncio.get_running_loop().set_exception_handler(on_loop_error)


async def on_shutdown(application: Application) -> None:
    """Roll back every open transaction, then close the pool."""
    logger.info("Shutting down...")
    try:
        await application.bot_data["transaction_monitor"].drain()
    except Exception as e:
        logger.error(f"Error during transaction drain: {e}")
    close_pool()


def build_application() -> Application:
    """Create the bot and wire one registry instance through every service."""
    registry = TransactionRegistry()
    monitor = TransactionMonitor(registry)

    app = (
        Application.builder()
        .token(config.TELEGRAM_BOT_TOKEN)
        .post_init(on_startup)
        .post_shutdown(on_shutdown)
        .build()
    )
    app.bot_data["transaction_registry"] = registry
    app.bot_data["transaction_monitor"] = monitor
    app.bot_data["transaction_service"] = TransactionService(registry)
    app.bot_data["query_service"] = QueryService()

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("myid", myid_command))
    app.add_handler(CommandHandler("query", query_command))
    app.add_handler(CommandHandler("tables", tables_command))
    app.add_handler(CommandHandler("describe", describe_command))
    app.add_handler(CommandHandler("execute", execute_command))
    app.add_handler(CommandHandler("commit", commit_command))
    app.add_handler(CommandHandler("rollback", rollback_command))
    app.add_handler(CommandHandler("transactions", transactions_command))

    # Catch-all for yes/no confirmations
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text_message))

    app.add_error_handler(error_handler)
    return app


def main() -> None:
    """Initialize and run the bot."""
    if not config.TELEGRAM_BOT_TOKEN:
        logger.error("TELEGRAM_BOT_TOKEN is not set.")
        sys.exit(1)

    log_configuration()

    logger.info("Initializing database...")
    try:
        init_pool()
        check_database()
    except Exception as e:
        logger.error(f"Failed to start: {e}")
        close_pool()
        sys.exit(1)

    app = build_application()

    logger.info("🚀 SqlGate is running! Press Ctrl+C to stop.")
    try:
        app.run_polling(drop_pending_updates=True, allowed_updates=["message"])
    finally:
        # No-op when on_shutdown already closed it
        close_pool()
        logger.info("SqlGate stopped.")


if __name__ == "__main__":
    main()
