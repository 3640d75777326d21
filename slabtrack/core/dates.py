"""Timestamp parsing, calendar windows and duration formatting.

Upstream timestamps frequently arrive without a timezone designator and with
fractional seconds attached.  They are always UTC, so every value is parsed
into an aware UTC ``datetime`` with the microseconds dropped before any
arithmetic happens.
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WINDOW_PRESETS = {
    "today",
    "7days",
    "30days",
    "this_week",
    "last_week",
    "next_week",
    "this_month",
    "last_month",
    "next_month",
    "custom",
}
PRESENCE_PRESETS = {"scheduled", "unscheduled"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@lru_cache(maxsize=32)
def get_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def parse_timestamp(value: str | datetime | date | None) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC datetime."""

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        raw = raw.replace(" ", "T", 1) if "T" not in raw and " " in raw else raw
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp the way the session endpoint expects it."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc).replace(microsecond=0, tzinfo=None)
    return value.isoformat()


def to_local_date(value: str | datetime | date | None, tz: str | None = None) -> date | None:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        return date.fromisoformat(value.strip())
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.astimezone(get_zone(tz)).date()


def local_today(tz: str | None = None) -> date:
    return datetime.now(get_zone(tz)).date()


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def date_window(
    preset: str,
    today: date,
    date_from: date | None = None,
    date_to: date | None = None,
) -> tuple[date, date] | None:
    """Return the inclusive calendar range selected by ``preset``.

    ``None`` means the preset does not describe a window: either no filtering
    (``all``, an incomplete custom range) or a preset handled elsewhere.
    """

    if preset == "today":
        return today, today
    if preset == "7days":
        return today - timedelta(days=7), today
    if preset == "30days":
        return today - timedelta(days=30), today
    if preset in {"this_week", "last_week", "next_week"}:
        # Weeks start on Sunday.
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        if preset == "last_week":
            start -= timedelta(days=7)
        elif preset == "next_week":
            start += timedelta(days=7)
        return start, start + timedelta(days=6)
    if preset in {"this_month", "last_month", "next_month"}:
        offset = {"this_month": 0, "last_month": -1, "next_month": 1}[preset]
        year, month = _shift_month(today.year, today.month, offset)
        return _month_bounds(year, month)
    if preset == "custom":
        if date_from is None:
            return None
        end = date_to or date_from
        if end < date_from:
            date_from, end = end, date_from
        return date_from, end
    return None


def format_duration(seconds: float | int | None) -> str:
    """Format seconds as ``HH:MM:SS``; hours are not wrapped at 24."""

    total = max(0, int(seconds or 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
