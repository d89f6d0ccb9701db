"""
Date and Time utilities

This module handles provider timestamp parsing, schedule date ranges and
XMLTV timestamp formatting.
Centralizes all date logic to maintain consistency across the application.
"""
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo
import logging

logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S"


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'

    Args:
        date_str: ISO8601 datetime string

    Returns:
        Normalized string with explicit timezone offset
    """
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-09-28T20:00:00Z')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str)
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError, TypeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def schedule_dates(days: int, today: date | None = None) -> list[str]:
    """
    Dates requested from the schedule endpoint: today plus the following days

    Args:
        days: Number of days, counting today
        today: Override for the first day (defaults to the current UTC date)

    Returns:
        List of 'YYYY-MM-DD' strings
    """
    start = today or datetime.now(timezone.utc).date()
    return [(start + timedelta(days=offset)).isoformat() for offset in range(max(days, 1))]


def resolve_render_timezone(zone_name: str | None = None, now: datetime | None = None) -> timezone:
    """
    Fixed-offset zone used for every timestamp of one rendered document

    The offset is taken once, at render time, from the configured IANA zone
    or the host's local zone.
    """
    now = now or datetime.now(timezone.utc)
    if zone_name:
        source: tzinfo = ZoneInfo(zone_name)
        offset = now.astimezone(source).utcoffset()
    else:
        offset = now.astimezone().utcoffset()
    return timezone(offset or timedelta(0))


def format_xmltv_offset(offset: timedelta) -> str:
    """Format a UTC offset as ±HHMM (east of UTC is '+')"""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}{minutes:02d}"


def format_xmltv_time(instant: datetime, tz: timezone) -> str:
    """
    Convert a datetime to XMLTV time format

    Args:
        instant: Timezone-aware datetime (naive values are taken as UTC)
        tz: Fixed-offset zone to render in

    Returns:
        XMLTV time like '20250928150000 -0500'
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(tz)
    return f"{local.strftime(XMLTV_TIME_FORMAT)} {format_xmltv_offset(local.utcoffset() or timedelta(0))}"
