# backend/tradeops/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in the instance folder unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///tradeops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # How long a writer waits for another writer's lock before giving up (seconds).
    # SQLite honours this through the driver's busy timeout.
    LOCK_TIMEOUT_SECONDS = _env_int("TRADEOPS_LOCK_TIMEOUT", 15)

    ORDER_NUMBER_PREFIX = os.environ.get("TRADEOPS_ORDER_PREFIX", "ORD")
    PURCHASE_ORDER_NUMBER_PREFIX = os.environ.get("TRADEOPS_PO_PREFIX", "PO")
    SHIPMENT_NUMBER_PREFIX = os.environ.get("TRADEOPS_SHIPMENT_PREFIX", "SHIP")

    # Retry policy applied by HTTP callers on ConcurrencyConflict; the core never retries.
    STATUS_CHANGE_RETRY_ATTEMPTS = _env_int("TRADEOPS_STATUS_RETRY_ATTEMPTS", 3)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options_for(uri: str, lock_timeout_seconds: int) -> dict:
    """Engine options derived from the database URI."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": lock_timeout_seconds}}
    return {"pool_pre_ping": True}
