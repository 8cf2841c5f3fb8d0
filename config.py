"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from dotenv import load_dotenv

load_dotenv()


# ── Telegram ──────────────────────────────────────────────
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# ── PostgreSQL ────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_NAME: str = os.getenv("DB_NAME", "postgres")
DB_USER: str = os.getenv("DB_USER", "postgres")
DB_PASS: str = os.getenv("DB_PASS", "")

DATABASE_URL: str = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

# ── Connection pool ───────────────────────────────────────
PG_MAX_CONNECTIONS: int = int(os.getenv("PG_MAX_CONNECTIONS", "20"))
PG_IDLE_TIMEOUT_MS: int = int(os.getenv("PG_IDLE_TIMEOUT_MS", "30000"))
PG_STATEMENT_TIMEOUT_MS: int = int(os.getenv("PG_STATEMENT_TIMEOUT_MS", "30000"))

# ── Transactions ──────────────────────────────────────────
TRANSACTION_TIMEOUT_MS: int = int(os.getenv("TRANSACTION_TIMEOUT_MS", "15000"))
MONITOR_INTERVAL_MS: int = int(os.getenv("MONITOR_INTERVAL_MS", "5000"))
# Anything other than the literal "false" keeps the monitor on
ENABLE_TRANSACTION_MONITOR: bool = os.getenv("ENABLE_TRANSACTION_MONITOR", "true").strip().lower() != "false"
MAX_CONCURRENT_TRANSACTIONS: int = int(os.getenv("MAX_CONCURRENT_TRANSACTIONS", "10"))

# ── Security ──────────────────────────────────────────────
_raw_ids = os.getenv("ALLOWED_USER_IDS", "")
ALLOWED_USER_IDS: list[int] = (
    [int(uid.strip()) for uid in _raw_ids.split(",") if uid.strip()]
    if _raw_ids
    else []
)

# ── Rate Limiting ─────────────────────────────────────────
RATE_LIMIT_MESSAGES: int = int(os.getenv("RATE_LIMIT_MESSAGES", "30"))
RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
