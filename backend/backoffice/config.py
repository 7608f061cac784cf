# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (e.g. postgresql://...)
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Admin sessions: "database" (shared across workers) or "memory" (single process)
    SESSION_STORE = os.environ.get("SESSION_STORE", "database")
    SESSION_TTL_MINUTES = int(os.environ.get("SESSION_TTL_MINUTES", "60"))
    PENDING_2FA_TTL_MINUTES = int(os.environ.get("PENDING_2FA_TTL_MINUTES", "5"))
    ENROLMENT_TTL_MINUTES = int(os.environ.get("ENROLMENT_TTL_MINUTES", "15"))

    TOTP_ISSUER = os.environ.get("TOTP_ISSUER", "Trendy VybzTech")
    # Accepted time steps before/after the current one
    TOTP_VALID_WINDOW = int(os.environ.get("TOTP_VALID_WINDOW", "2"))

    # Detached work (loyalty points accrual)
    TASKS_EAGER = _env_bool("TASKS_EAGER", False)
    TASK_WORKERS = int(os.environ.get("TASK_WORKERS", "2"))
    TASK_RETRY_ATTEMPTS = int(os.environ.get("TASK_RETRY_ATTEMPTS", "3"))

    # 1 point per POINTS_DIVISOR of order total (1% cashback)
    POINTS_DIVISOR = int(os.environ.get("POINTS_DIVISOR", "100"))

    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if o.strip()
    )

    # bcrypt work factor for admin passwords
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
