from __future__ import annotations

import calendar
import logging
import math
from datetime import date, datetime, timezone, tzinfo
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import settings

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
WEEKDAY_ABBRS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

EMPTY_CLOCK = "--:--"
EMPTY_HOURS = "00:00"

_FALLBACK_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %I:%M:%S %p",
    "%Y-%m-%d %I:%M %p",
)

# Epoch values above this are treated as milliseconds.
_EPOCH_MS_THRESHOLD = 100_000_000_000


@lru_cache(maxsize=16)
def _resolve_timezone(name: str) -> tzinfo:
    if name.strip().upper() in {"UTC", "Z", "GMT"}:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown REPORT_TIMEZONE %r; falling back to UTC", name)
        return timezone.utc


def report_timezone() -> tzinfo:
    return _resolve_timezone(settings.report_timezone)


def _localize(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=report_timezone())
    return value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an instant from the shapes stored check-in/out values take.

    Accepts datetimes, epoch seconds/milliseconds and ISO-8601 or common
    "YYYY-MM-DD HH:MM[:SS]" strings. Naive values are read in the report
    timezone. Returns an aware datetime, or None when nothing parses.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _localize(value)
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        seconds = value / 1000.0 if abs(value) >= _EPOCH_MS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if not text:
        return None

    iso_text = text[:-1] + "+00:00" if text[-1] in "Zz" else text
    try:
        return _localize(datetime.fromisoformat(iso_text))
    except ValueError:
        pass

    for pattern in _FALLBACK_FORMATS:
        try:
            return _localize(datetime.strptime(text, pattern))
        except ValueError:
            continue
    return None


def parse_day(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        pass

    parsed = parse_timestamp(text)
    return parsed.date() if parsed else None


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(int(year), int(month))[1]


def month_number(month: Any) -> int:
    if isinstance(month, int) and not isinstance(month, bool):
        number = month
    else:
        text = str(month or "").strip()
        if text.isdigit():
            number = int(text)
        else:
            lowered = text.lower()
            for index, name in enumerate(MONTH_NAMES, start=1):
                if lowered in {name.lower(), name[:3].lower()}:
                    return index
            raise ValueError(f"unknown month: {month!r}")

    if not 1 <= number <= 12:
        raise ValueError(f"month out of range: {month!r}")
    return number


def month_name(month: int) -> str:
    return MONTH_NAMES[month_number(month) - 1]


def weekday_abbr(year: int, month: int, day: int) -> str:
    return WEEKDAY_ABBRS[date(year, month, day).weekday()]


def format_hours(hours: Any) -> str:
    """Render fractional hours as HH:MM on whole rounded minutes.

    Rounding happens once on the total minute count, so the minute part is
    always 00-59 (23.999999 -> "24:00").
    """
    if hours is None or isinstance(hours, bool):
        return EMPTY_HOURS
    try:
        value = float(hours)
    except (TypeError, ValueError):
        return EMPTY_HOURS
    if math.isnan(value) or math.isinf(value) or value <= 0:
        return EMPTY_HOURS

    total_minutes = int(math.floor((value * 60) + 0.5))
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def format_clock(value: Any) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return EMPTY_CLOCK
    return parsed.astimezone(report_timezone()).strftime("%H:%M")


def hours_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds() / 3600.0)
