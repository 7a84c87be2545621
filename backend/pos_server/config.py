# backend/pos_server/config.py
from __future__ import annotations
import os


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Browser origins allowed to call the API (admin UI / terminal UI)
    CORS_ORIGINS = _split_origins(
        os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        )
    )

    # Loyalty points earned per whole currency unit spent
    LOYALTY_POINTS_PER_UNIT = int(os.environ.get("LOYALTY_POINTS_PER_UNIT", "1"))

    # Listing limits; terminals pull the full catalog in one page
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "1000"))

    # Session tokens issued by the CLI
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "720"))
