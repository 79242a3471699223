"""Cal.com client used as an alternative slot source."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from inkslot.app.domain.intervals import TimeInterval
from inkslot.config import get_setting

logger = logging.getLogger(__name__)

DEFAULT_SLOT_MINUTES = 60


class CalComError(RuntimeError):
    pass


def _parse_instant(raw: str) -> datetime:
    value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_slots_payload(payload: dict[str, Any]) -> list[TimeInterval]:
    """Convert ``{"slots": {"YYYY-MM-DD": [{"time": ISO, "duration"?}]}}`` into intervals."""
    slots = payload.get("slots") if isinstance(payload, dict) else None
    if not isinstance(slots, dict):
        return []
    out: list[TimeInterval] = []
    for day_key, day_slots in slots.items():
        if not isinstance(day_slots, list):
            continue
        for item in day_slots:
            try:
                start = _parse_instant(str(item["time"]))
                minutes = int(item.get("duration") or DEFAULT_SLOT_MINUTES)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed Cal.com slot on %s: %r", day_key, item)
                continue
            if minutes <= 0:
                continue
            out.append(TimeInterval(start, start + timedelta(minutes=minutes)))
    out.sort(key=lambda iv: iv.start)
    return out


class CalComClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = (base_url or get_setting("cal_com_base_url") or "").rstrip("/")
        self.api_key = api_key if api_key is not None else get_setting("cal_com_api_key", "")
        self._http = http_client
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def get_available_slots(
        self, username: str, event_type_id: str, day: date, tz: ZoneInfo
    ) -> list[TimeInterval]:
        """Fetch the open slots Cal.com reports for ``day`` (local to ``tz``)."""
        if not self.configured:
            raise CalComError("Cal.com API key is not configured")
        day_start = datetime.combine(day, time.min, tzinfo=tz)
        day_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        params = {
            "apiKey": self.api_key,
            "eventTypeId": str(event_type_id),
            "username": username,
            "startTime": day_start.astimezone(UTC).isoformat(),
            "endTime": day_end.astimezone(UTC).isoformat(),
        }
        url = f"{self.base_url}/slots"
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Cal.com slots request failed: %s %s", exc.response.status_code, exc.response.text[:200])
            raise CalComError(f"Cal.com API error: {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Cal.com slots request failed: %s", exc)
            raise CalComError("Cal.com API unreachable") from exc

        intervals = parse_slots_payload(payload)
        logger.info("Cal.com returned %d slots for %s on %s", len(intervals), username, day)
        return intervals


__all__ = ["CalComClient", "CalComError", "parse_slots_payload", "DEFAULT_SLOT_MINUTES"]
