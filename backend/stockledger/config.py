# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for any single storage call (lock wait, connect, statement)
    STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "5"))

    # Retry policy for lock/deadlock failures inside a unit of work
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF_SECONDS = float(os.environ.get("DB_RETRY_BACKOFF_SECONDS", "0.1"))

    # Read-through cache for transactions, stock and valuations.
    # REDIS_URL selects a shared RedisCache; otherwise CACHE_TYPE (default NullCache).
    # SimpleCache is process-local, so it is honoured only under TESTING or
    # when LEDGER_SINGLE_PROCESS declares a single serving process.
    REDIS_URL = os.environ.get("REDIS_URL")
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "NullCache")
    LEDGER_SINGLE_PROCESS = os.environ.get("LEDGER_SINGLE_PROCESS", "").lower() in ("1", "true", "yes")
    LEDGER_CACHE_TTL_SECONDS = int(os.environ.get("LEDGER_CACHE_TTL_SECONDS", "180"))

    REFERENCE_MAX_ATTEMPTS = int(os.environ.get("REFERENCE_MAX_ATTEMPTS", "5"))
    RECONCILE_DEFAULT_TOLERANCE = os.environ.get("RECONCILE_DEFAULT_TOLERANCE", "0.05")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
