import os
from datetime import time

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_time(value: str | None, default: time) -> time:
    if value is None or not value.strip():
        return default
    return time.fromisoformat(value.strip())


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mentorhub.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])


JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

SLOT_GRANULARITY_MINUTES = _get_int(os.getenv("SLOT_GRANULARITY_MINUTES"), 30)
DAY_OPEN_TIME = _get_time(os.getenv("DAY_OPEN_TIME"), time(9, 0))
LAST_START_TIME = _get_time(os.getenv("LAST_START_TIME"), time(17, 30))
CANCELLATION_CUTOFF_HOURS = _get_int(os.getenv("CANCELLATION_CUTOFF_HOURS"), 24)
BOOKING_HORIZON_DAYS = _get_int(os.getenv("BOOKING_HORIZON_DAYS"), 7)
LEDGER_LOCK_TIMEOUT_SECONDS = _get_int(os.getenv("LEDGER_LOCK_TIMEOUT_SECONDS"), 5)
MAX_SESSION_NOTES_LENGTH = _get_int(os.getenv("MAX_SESSION_NOTES_LENGTH"), 600)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_GRANULARITY_MINUTES <= 0 or 60 % SLOT_GRANULARITY_MINUTES != 0:
        raise RuntimeError("SLOT_GRANULARITY_MINUTES must evenly divide an hour.")
    if LAST_START_TIME < DAY_OPEN_TIME:
        raise RuntimeError("LAST_START_TIME must not be earlier than DAY_OPEN_TIME.")
