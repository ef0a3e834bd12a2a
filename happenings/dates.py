"""Calendar date keys in the single reference time zone.

Every date that crosses a module boundary is a ``datetime.date`` (or its
``YYYY-MM-DD`` string form on the wire). "Today" is resolved once at the
outermost boundary with :func:`today_in_zone` and passed down explicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator
from zoneinfo import ZoneInfo

from .config import settings

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
WEEKDAY_ABBREVS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_RRULE_DAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


@dataclass(frozen=True)
class DateWindow:
    """Inclusive ``[start, end]`` range of calendar dates."""

    start: date
    end: date

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def __contains__(self, value: date) -> bool:
        return self.start <= value <= self.end

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def as_dict(self) -> dict[str, str]:
        return {"start": to_date_key(self.start), "end": to_date_key(self.end)}

    @classmethod
    def ahead(cls, start: date, days: int) -> DateWindow:
        return cls(start=start, end=start + timedelta(days=days))


def is_valid_date_key(value: str | None) -> bool:
    return parse_date_key(value) is not None


def parse_date_key(value: str | date | None) -> date | None:
    """Parse ``YYYY-MM-DD`` into a date, returning ``None`` for anything else."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not DATE_KEY_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_date_key(value: date) -> str:
    return value.isoformat()


def today_in_zone(tz: str | ZoneInfo | None = None, *, now: datetime | None = None) -> date:
    """Return today's civil date in the reference zone."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz or settings.timezone)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        # Naive datetimes are UTC throughout the codebase.
        now = now.replace(tzinfo=ZoneInfo("UTC"))
    return now.astimezone(zone).date()


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def parse_weekday(name: str | None) -> int | None:
    """Map ``"Monday"``, ``"mon"`` or ``"MO"`` to 0..6 (Monday first)."""
    if not name:
        return None
    lowered = name.strip().lower()
    if not lowered:
        return None
    for index, full in enumerate(WEEKDAY_NAMES):
        if lowered == full.lower():
            return index
    if lowered in WEEKDAY_ABBREVS:
        return WEEKDAY_ABBREVS.index(lowered)
    upper = lowered.upper()
    if upper in _RRULE_DAY_CODES:
        return _RRULE_DAY_CODES.index(upper)
    return None


def weekday_abbrev(value: date) -> str:
    return WEEKDAY_ABBREVS[value.weekday()]


def first_weekday_on_or_after(value: date, weekday: int) -> date:
    return value + timedelta(days=(weekday - value.weekday()) % 7)


def format_day_header(value: date) -> str:
    """Digest section header, e.g. ``MONDAY, JANUARY 27``."""
    return f"{WEEKDAY_NAMES[value.weekday()]}, {value:%B} {value.day}".upper()


def format_date_group_header(value: date, today: date) -> str:
    """Listing header: ``Today``, ``Tomorrow`` or ``Fri, Jan 3``."""
    if value == today:
        return "Today"
    if value == today + timedelta(days=1):
        return "Tomorrow"
    return f"{value:%a}, {value:%b} {value.day}"


def format_time_display(value: str | None) -> str:
    """Render ``HH:MM[:SS]`` as ``7:00 PM``; empty string when unset."""
    if not value:
        return ""
    parts = value.split(":")
    try:
        hour = int(parts[0])
    except ValueError:
        return ""
    minute = parts[1] if len(parts) > 1 and parts[1] else "00"
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = 12 if hour == 0 else hour - 12 if hour > 12 else hour
    return f"{display_hour}:{minute} {suffix}"


def compute_week_key(value: date) -> str:
    """ISO week key (``2026-W03``) used to make weekly sends idempotent."""
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"
