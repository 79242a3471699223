from __future__ import annotations
import logging
import os
from typing import Any, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env before the constants module reads the environment
load_dotenv()

from inkslot.app.core import constants  # noqa: E402

# Runtime settings (secrets and tunables that may change between deployments)
SETTINGS: Dict[str, Any] = {
    "database_url": os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://inkslot:change_me@db:5432/inkslot",
    ),
    "stripe_secret_key": os.getenv("STRIPE_SECRET_KEY", ""),
    "stripe_webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET", ""),
    "cal_com_base_url": os.getenv("CAL_COM_BASE_URL", "https://api.cal.com/v1"),
    "cal_com_api_key": os.getenv("CAL_COM_API_KEY", ""),
    "reservation_hold_minutes": constants.RESERVATION_HOLD_MINUTES,
    "availability_cache_seconds": constants.AVAILABILITY_CACHE_SECONDS,
    "currency": constants.DEFAULT_CURRENCY,
    "platform_fee_percent": constants.PLATFORM_FEE_PERCENT,
    "timezone": constants.DEFAULT_ARTIST_TIMEZONE,
}


def get_setting(key: str, default: Any = None) -> Any:
    """Return a runtime setting by key, or ``default`` when missing."""
    value = SETTINGS.get(key, default)
    logger.debug("Setting read: key=%s", key)
    return value


def get_hold_minutes() -> int:
    """Age after which an unpaid pending reservation is considered stale."""
    try:
        val = SETTINGS.get("reservation_hold_minutes")
        return max(1, int(val)) if val is not None else 30
    except Exception:
        return 30


def get_availability_cache_seconds() -> int:
    try:
        return max(0, int(SETTINGS.get("availability_cache_seconds", 60)))
    except Exception:
        return 60


def get_platform_fee_percent() -> int:
    try:
        return min(100, max(0, int(SETTINGS.get("platform_fee_percent", 5))))
    except Exception:
        return 5


def get_currency() -> str:
    return constants._normalize_currency(SETTINGS.get("currency")) or constants.DEFAULT_CURRENCY


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return ZoneInfo for ``name``; unknown or empty names fall back to the default zone."""
    for candidate in (name, SETTINGS.get("timezone"), "UTC"):
        if not candidate:
            continue
        try:
            return ZoneInfo(str(candidate).strip())
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back", candidate)
    return ZoneInfo("UTC")


__all__ = [
    "SETTINGS",
    "get_setting",
    "get_hold_minutes",
    "get_availability_cache_seconds",
    "get_platform_fee_percent",
    "get_currency",
    "resolve_timezone",
]
