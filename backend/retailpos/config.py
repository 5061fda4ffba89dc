# backend/retailpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Origins allowed to call the API from the admin/POS frontend
    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    }

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Business defaults
    DEFAULT_CURRENCY = "TND"
    DEFAULT_TAX_RATE = float(os.environ.get("DEFAULT_TAX_RATE", "19"))  # Tunisia VAT
    DEFAULT_MIN_STOCK = float(os.environ.get("DEFAULT_MIN_STOCK", "10"))
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100
    TRIAL_DAYS = int(os.environ.get("TRIAL_DAYS", "14"))
    LOYALTY_POINTS_PER_UNIT = int(os.environ.get("LOYALTY_POINTS_PER_UNIT", "1"))

    # Manual stock-out clamps to zero instead of rejecting over-deduction
    STOCK_CLAMP_ON_OVERDRAW = _env_bool("STOCK_CLAMP_ON_OVERDRAW", False)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    LOG_LEVEL = "WARNING"
    STOCK_CLAMP_ON_OVERDRAW = False
