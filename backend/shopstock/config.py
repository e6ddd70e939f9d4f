# backend/shopstock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///shopstock.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Optimistic-lock / row-lock conflicts are retried this many times
    RESTOCK_RETRY_ATTEMPTS = int(os.environ.get("RESTOCK_RETRY_ATTEMPTS", "5"))
    RESTOCK_RETRY_BACKOFF = float(os.environ.get("RESTOCK_RETRY_BACKOFF", "0.05"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Auto-generated restock requests ask for min_stock_level * multiplier
    LOW_STOCK_AUTO_MULTIPLIER = int(os.environ.get("LOW_STOCK_AUTO_MULTIPLIER", "2"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",") if o.strip()
    )
