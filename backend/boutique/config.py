# Overview: Application configuration; every value can be overridden from the environment.

import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///boutique.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    # Unexpected errors are reported generically unless this is on
    EXPOSE_ERROR_DETAILS = os.environ.get("EXPOSE_ERROR_DETAILS", "0") == "1"

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_MINUTES = _env_int("SESSION_IDLE_MINUTES", 120)

    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 5)
    MEDIUM_STOCK_THRESHOLD = _env_int("MEDIUM_STOCK_THRESHOLD", 10)
    MAX_INSTALLMENTS = _env_int("MAX_INSTALLMENTS", 6)
    INSTALLMENT_DUE_DAYS = _env_int("INSTALLMENT_DUE_DAYS", 30)

    # Defaults for the store settings row until an admin saves one
    STORE_NAME = os.environ.get("STORE_NAME", "Boutique")

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]
