"""
Configuration for the Stock Ledger service.

All settings are read from environment variables once at import time.
"""
import logging
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./stockledger.db")
DB_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "30"))

# JWT settings (must match the service that issues tokens)
SECRET_KEY = os.getenv("SECRET_KEY", "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Ledger write path
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "5"))
LEDGER_RETRY_BACKOFF = float(os.getenv("LEDGER_RETRY_BACKOFF", "0.01"))  # seconds

# Product defaults
DEFAULT_MIN_STOCK_LEVEL = int(os.getenv("DEFAULT_MIN_STOCK_LEVEL", "10"))
DEFAULT_UNIT = os.getenv("DEFAULT_UNIT", "piece")

# Read side
MOVEMENT_PAGE_LIMIT = int(os.getenv("MOVEMENT_PAGE_LIMIT", "50"))
RECENT_MOVEMENTS = 10

# Seeding
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@inventory.com")
ADMIN_NAME = os.getenv("ADMIN_NAME", "System Administrator")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """
    Configure root logging for the service.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
