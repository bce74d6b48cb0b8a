# backend/ricemart/config.py
from __future__ import annotations
import os


BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ricemart.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///ricemart.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:3001,http://127.0.0.1:3001",
        ).split(",")
        if origin.strip()
    }

    # Password hashing cost; tests drop this to keep bcrypt fast
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Uploads land in UPLOAD_FOLDER/YYYY/MM/DD/<uuid>.<ext> and are served under UPLOAD_URL_PREFIX
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(BASE_DIR, "storage", "uploads"))
    UPLOAD_URL_PREFIX = "/uploads"
    ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
    MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024)
    MAX_UPLOAD_FILES = 10
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES * MAX_UPLOAD_FILES + 1024 * 1024
    # Callable(original_path, processed_path, thumbnail_path); None copies the original
    IMAGE_PROCESSOR = None

    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    # Order policy
    COD_INITIAL_STATUS = os.environ.get("COD_INITIAL_STATUS", "PENDING")
    RETURN_WINDOW_DAYS = _env_int("RETURN_WINDOW_DAYS", None)
    CANCEL_ON_PAYMENT_REJECTION = _env_bool("CANCEL_ON_PAYMENT_REJECTION", False)

    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)

    # Login throttling: lock an email after N failures inside the window
    LOGIN_MAX_FAILED_ATTEMPTS = _env_int("LOGIN_MAX_FAILED_ATTEMPTS", 10)
    LOGIN_LOCKOUT_WINDOW_MINUTES = _env_int("LOGIN_LOCKOUT_WINDOW_MINUTES", 15)
    LOGIN_LOCKOUT_MINUTES = _env_int("LOGIN_LOCKOUT_MINUTES", 15)
