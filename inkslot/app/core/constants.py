from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_int_list(name: str, default: list[int] | None = None) -> list[int]:
    raw = os.getenv(name)
    if raw is None:
        return list(default or [])
    vals: list[int] = []
    for token in raw.replace(";", ",").split(","):
        tok = token.strip()
        if not tok:
            continue
        try:
            vals.append(int(tok))
        except Exception:
            continue
    return vals


def _normalize_currency(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = str(code).strip().upper()
    if len(cleaned) == 3 and cleaned.isalpha():
        return cleaned
    return None


# Service duration bounds (minutes), enforced before any I/O
MIN_SERVICE_DURATION_MINUTES: int = 15
MAX_SERVICE_DURATION_MINUTES: int = 480

# Default working week for artists without any working-hours rule (ISO weekdays)
DEFAULT_WORK_DAYS: list[int] = [d for d in _env_int_list("DEFAULT_WORK_DAYS", [1, 2, 3, 4, 5]) if 1 <= d <= 7]
DEFAULT_DAY_START_HOUR: int = _env_int("DEFAULT_DAY_START_HOUR", 9)
DEFAULT_DAY_END_HOUR: int = _env_int("DEFAULT_DAY_END_HOUR", 18)
DEFAULT_SLOT_STEP_MINUTES: int = _env_int("DEFAULT_SLOT_STEP_MINUTES", 30)

# Timezone used when an artist has none configured
DEFAULT_ARTIST_TIMEZONE: str = os.getenv("DEFAULT_ARTIST_TIMEZONE", "Europe/Paris")

# Availability read path
AVAILABILITY_WINDOW_DAYS: int = _env_int("AVAILABILITY_WINDOW_DAYS", 30)
AVAILABILITY_CACHE_SECONDS: int = _env_int("AVAILABILITY_CACHE_SECONDS", 60)

# Money
DEFAULT_DEPOSIT_PERCENTAGE: int = _env_int("DEFAULT_DEPOSIT_PERCENTAGE", 30)
DEFAULT_CURRENCY: str = _normalize_currency(os.getenv("DEFAULT_CURRENCY") or os.getenv("CURRENCY")) or "EUR"
PLATFORM_FEE_PERCENT: int = _env_int("PLATFORM_FEE_PERCENT", 5)

# Feature flags / logging
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FILE: str = os.getenv("LOG_FILE", "inkslot.log")

# Worker intervals
RESERVATION_HOLD_MINUTES: int = _env_int("RESERVATION_HOLD_MINUTES", 30)
RESERVATION_EXPIRE_CHECK_SECONDS_RAW: str = os.getenv("RESERVATION_EXPIRE_CHECK_SECONDS", "60")
try:
    RESERVATION_EXPIRE_CHECK_SECONDS: int = int(RESERVATION_EXPIRE_CHECK_SECONDS_RAW)
    RESERVATION_EXPIRE_CHECK_SECONDS_INVALID: bool = False
except ValueError:
    RESERVATION_EXPIRE_CHECK_SECONDS = 60
    RESERVATION_EXPIRE_CHECK_SECONDS_INVALID = True
EXPIRATION_WORKER_ENABLED: bool = _env_bool("EXPIRATION_WORKER_ENABLED", True)

__all__ = [
    "MIN_SERVICE_DURATION_MINUTES",
    "MAX_SERVICE_DURATION_MINUTES",
    "DEFAULT_WORK_DAYS",
    "DEFAULT_DAY_START_HOUR",
    "DEFAULT_DAY_END_HOUR",
    "DEFAULT_SLOT_STEP_MINUTES",
    "DEFAULT_ARTIST_TIMEZONE",
    "AVAILABILITY_WINDOW_DAYS",
    "AVAILABILITY_CACHE_SECONDS",
    "DEFAULT_DEPOSIT_PERCENTAGE",
    "DEFAULT_CURRENCY",
    "PLATFORM_FEE_PERCENT",
    "LOG_LEVEL_NAME",
    "LOG_FILE",
    "RESERVATION_HOLD_MINUTES",
    "RESERVATION_EXPIRE_CHECK_SECONDS_RAW",
    "RESERVATION_EXPIRE_CHECK_SECONDS",
    "RESERVATION_EXPIRE_CHECK_SECONDS_INVALID",
    "EXPIRATION_WORKER_ENABLED",
]
