"""
Reference-zone date/time helpers.

All human-stated dates and times in incoming messages are interpreted in one
fixed reference zone (Asia/Jerusalem by default). These helpers convert
between local calendar dates / wall-clock times in that zone and the UTC ISO
strings stored on occurrences. Offsets are resolved per calendar date through
zoneinfo, so DST transitions are respected.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from event_ingest.config import settings

ISO_UTC_FORMAT = "%Y-%m-%dT%H:%M:%S.000Z"

_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def reference_zone() -> ZoneInfo:
    return ZoneInfo(settings.reference_timezone)


def parse_calendar_date(value: str | None) -> date | None:
    """Parse a strict YYYY-MM-DD string; None for anything else or impossible dates."""
    if not isinstance(value, str):
        return None
    match = _DATE_PATTERN.match(value.strip()[:10])
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO timestamp into an aware UTC datetime; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(ISO_UTC_FORMAT)


def local_time_to_utc_iso(date_str: str, time_hhmm: str) -> str | None:
    """
    Convert a local wall-clock time on a calendar date to a UTC ISO string.

    >>> local_time_to_utc_iso("2026-02-25", "20:00")
    '2026-02-25T18:00:00.000Z'
    """
    day = parse_calendar_date(date_str)
    match = _TIME_PATTERN.match((time_hhmm or "").strip())
    if day is None or not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    local_moment = datetime.combine(day, time(hour, minute), tzinfo=reference_zone())
    return format_iso_utc(local_moment)


def midnight_to_utc_iso(date_str: str) -> str | None:
    """Local midnight of `date_str` in the reference zone, as a UTC ISO string."""
    return local_time_to_utc_iso(date_str, "00:00")


def local_date_from_iso(iso_value: str | None) -> str | None:
    """Local calendar date (YYYY-MM-DD) in the reference zone of a UTC ISO timestamp."""
    moment = parse_iso_utc(iso_value)
    if moment is None:
        return None
    return moment.astimezone(reference_zone()).date().isoformat()


def local_hhmm_from_iso(iso_value: str | None) -> str | None:
    moment = parse_iso_utc(iso_value)
    if moment is None:
        return None
    return moment.astimezone(reference_zone()).strftime("%H:%M")


def local_date_from_unix(unix_seconds: int | float | None) -> str | None:
    if unix_seconds is None:
        return None
    try:
        moment = datetime.fromtimestamp(float(unix_seconds), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return moment.astimezone(reference_zone()).date().isoformat()


def local_today(now: datetime | None = None) -> date:
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(reference_zone()).date()


def utc_offset_label(day: date | None = None) -> str:
    """Offset of the reference zone on `day`, e.g. 'UTC+2'."""
    day = day or local_today()
    offset = datetime.combine(day, time(12, 0), tzinfo=reference_zone()).utcoffset()
    total_minutes = int(offset.total_seconds() // 60) if offset else 0
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"UTC{sign}{hours}" if not minutes else f"UTC{sign}{hours}:{minutes:02d}"


def date_time_context(now: datetime | None = None) -> str:
    """Human-readable 'today' line injected into model prompts."""
    today = local_today(now)
    tomorrow = today + timedelta(days=1)
    return (
        f"Current date in {settings.reference_timezone}: {today.isoformat()} "
        f"({today.strftime('%A')}), tomorrow is {tomorrow.isoformat()}. "
        f"Local offset today: {utc_offset_label(today)}."
    )
