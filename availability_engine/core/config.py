import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./availability.db")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:4200"])

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))
DEFAULT_BUFFER_MINUTES = int(os.getenv("DEFAULT_BUFFER_MINUTES", "0"))
DEFAULT_MIN_LEAD_MINUTES = int(os.getenv("DEFAULT_MIN_LEAD_MINUTES", "0"))
MAX_QUERY_SPAN_DAYS = int(os.getenv("MAX_QUERY_SPAN_DAYS", "31"))

# Bounds offered to providers when they edit their booking policy.
MIN_SLOT_DURATION_MINUTES = 15
MAX_SLOT_DURATION_MINUTES = 120
MAX_BUFFER_MINUTES = 30

BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "5"))
BOOKING_TRANSACTION_TIMEOUT_SECONDS = float(os.getenv("BOOKING_TRANSACTION_TIMEOUT_SECONDS", "10"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at a server database in production.")
    if BOOKING_LOCK_TIMEOUT_SECONDS <= 0 or BOOKING_TRANSACTION_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("Booking timeouts must be positive.")
    if MAX_QUERY_SPAN_DAYS < 1:
        raise RuntimeError("MAX_QUERY_SPAN_DAYS must be at least 1.")
