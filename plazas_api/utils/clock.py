# plazas_api/utils/clock.py
"""
Timezone-aware time helpers.
Everything inside the service is UTC-aware; the lot's civil timezone is only
used for calendar-day rules and reservation code dates.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from plazas_api.config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def lot_tz() -> ZoneInfo:
    return ZoneInfo(settings.LOT_TIMEZONE)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_lot_time(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(lot_tz())


def parse_iso(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp coming from a client.
    A trailing 'Z' is accepted. Returns None when the value cannot be parsed.
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Wall-clock time without offset is the lot's local time
        parsed = parsed.replace(tzinfo=lot_tz())
    return parsed.astimezone(timezone.utc)
