import os
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./consultations.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Fallback grid used when a provider has not declared slots for a date.
DEFAULT_WINDOW_START = os.getenv("DEFAULT_WINDOW_START", "09:00")
DEFAULT_WINDOW_END = os.getenv("DEFAULT_WINDOW_END", "17:00")
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "30"))
BOOKING_LEAD_MINUTES = int(os.getenv("BOOKING_LEAD_MINUTES", "0"))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

REMINDERS_ENABLED = _get_bool(os.getenv("REMINDERS_ENABLED"), default=True)
REMINDER_HOUR = int(os.getenv("REMINDER_HOUR", "8"))
REMINDER_MINUTE = int(os.getenv("REMINDER_MINUTE", "0"))

VERIFICATION_CODE_TTL_MINUTES = int(os.getenv("VERIFICATION_CODE_TTL_MINUTES", "10"))
VERIFICATION_SWEEP_SECONDS = int(os.getenv("VERIFICATION_SWEEP_SECONDS", "300"))

NOTIFY_BACKEND = os.getenv("NOTIFY_BACKEND", "log").strip().lower()
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = _get_bool(os.getenv("SMTP_USE_TLS"), default=True)
SMTP_FROM_ADDRESS = os.getenv("SMTP_FROM_ADDRESS", "no-reply@localhost")
SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "30"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    window_start = datetime.strptime(DEFAULT_WINDOW_START, "%H:%M").time()
    window_end = datetime.strptime(DEFAULT_WINDOW_END, "%H:%M").time()
    if window_end <= window_start or DEFAULT_SLOT_MINUTES <= 0:
        raise RuntimeError("DEFAULT_WINDOW_START/END and DEFAULT_SLOT_MINUTES describe an empty grid.")

    if not 0 <= REMINDER_HOUR <= 23 or not 0 <= REMINDER_MINUTE <= 59:
        raise RuntimeError("REMINDER_HOUR and REMINDER_MINUTE must form a valid time of day.")

    if NOTIFY_BACKEND not in {"smtp", "log"}:
        raise RuntimeError("NOTIFY_BACKEND must be 'smtp' or 'log'.")
