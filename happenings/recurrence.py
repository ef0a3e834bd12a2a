"""Recurrence interpretation for event schedules.

One function, :func:`interpret`, decides whether an event repeats and whether
its schedule carries enough information to project concrete dates. Both the
occurrence expander and the cadence labels consume its result, so the label a
visitor reads always matches the dates that are generated.

Accepted ``recurrence_rule`` values:

* ``weekly``, ``biweekly`` (alias ``every other week``) with ``day_of_week``
* ``monthly``: same day-of-month as the anchor date
* monthly ordinals with ``day_of_week``: ``1st``, ``last``, ``2nd/4th``,
  ``1st & 3rd``, ``second and fourth``
* ``custom``: the explicit ``custom_dates`` list
* RFC 5545 strings such as ``FREQ=WEEKLY;INTERVAL=2;BYDAY=TU``

Anything else is treated as recurring but not confident.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from dateutil.rrule import rrulestr

from .dates import WEEKDAY_NAMES, parse_weekday
from .schedule import EventSchedule

ONE_TIME = "one-time"
WEEKLY = "weekly"
BIWEEKLY = "biweekly"
MONTHLY = "monthly"
CUSTOM = "custom"
RRULE = "rrule"
UNKNOWN = "unknown"

_NULL_RULES = {"", "none"}
_BIWEEKLY_RULES = {"biweekly", "every other week"}

ORDINAL_TOKENS: dict[str, int] = {
    "1st": 1,
    "2nd": 2,
    "3rd": 3,
    "4th": 4,
    "5th": 5,
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "last": -1,
}
_ORDINAL_LABELS = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th", -1: "Last"}
_ORDINAL_SPLIT = re.compile(r"[/&,]|\band\b")
_BYDAY_PART = re.compile(r"^([+-]?\d+)?(MO|TU|WE|TH|FR|SA|SU)$")
_RRULE_FREQUENCIES = {"DAILY", "WEEKLY", "MONTHLY", "YEARLY"}


@dataclass(frozen=True)
class Recurrence:
    """Normalized reading of an event's schedule fields."""

    is_recurring: bool
    is_confident: bool
    frequency: str
    weekday: int | None = None
    ordinals: tuple[int, ...] = ()
    interval: int = 1
    rrule_text: str | None = None
    rrule_freq: str | None = None
    count: int | None = None
    until: date | None = None

    @property
    def cadence_description(self) -> str | None:
        if not (self.is_recurring and self.is_confident):
            return None
        return _describe(self)

    @property
    def day_name(self) -> str | None:
        return WEEKDAY_NAMES[self.weekday] if self.weekday is not None else None

    def as_dict(self) -> dict:
        return {
            "is_recurring": self.is_recurring,
            "is_confident": self.is_confident,
            "frequency": self.frequency,
            "day_of_week": self.day_name,
            "ordinals": list(self.ordinals),
            "interval": self.interval,
            "cadence_description": self.cadence_description,
        }


def normalize_rule(rule: str | None) -> str | None:
    """Collapse blank and legacy ``none`` rules to ``None``."""
    if rule is None:
        return None
    cleaned = rule.strip()
    if cleaned.lower() in _NULL_RULES:
        return None
    return cleaned


def interpret(event: EventSchedule) -> Recurrence:
    rule = normalize_rule(event.recurrence_rule)
    has_custom_dates = bool(event.custom_dates)

    if rule is None and not has_custom_dates:
        if event.anchor_date is None:
            return Recurrence(is_recurring=False, is_confident=False, frequency=UNKNOWN)
        return Recurrence(is_recurring=False, is_confident=True, frequency=ONE_TIME)

    if rule is None or rule.lower() == CUSTOM:
        return Recurrence(
            is_recurring=True, is_confident=has_custom_dates, frequency=CUSTOM
        )

    if "freq=" in rule.lower():
        return _interpret_rrule(rule, event)

    lowered = rule.lower()
    weekday = parse_weekday(event.day_of_week)

    if lowered == WEEKLY:
        return Recurrence(
            is_recurring=True,
            is_confident=weekday is not None,
            frequency=WEEKLY,
            weekday=weekday,
        )
    if lowered in _BIWEEKLY_RULES:
        return Recurrence(
            is_recurring=True,
            is_confident=weekday is not None,
            frequency=BIWEEKLY,
            weekday=weekday,
            interval=2,
        )
    if lowered == MONTHLY:
        return Recurrence(
            is_recurring=True,
            is_confident=event.anchor_date is not None,
            frequency=MONTHLY,
        )

    ordinals = parse_ordinals(lowered)
    if ordinals:
        return Recurrence(
            is_recurring=True,
            is_confident=weekday is not None,
            frequency=MONTHLY,
            weekday=weekday,
            ordinals=ordinals,
        )

    return Recurrence(is_recurring=True, is_confident=False, frequency=UNKNOWN)


def parse_ordinals(rule: str | None) -> tuple[int, ...]:
    """Parse ``"2nd/4th"``-style rules; empty when any part is unrecognized."""
    if not rule:
        return ()
    parts = [part.strip() for part in _ORDINAL_SPLIT.split(rule.lower())]
    parts = [part for part in parts if part]
    if not parts or any(part not in ORDINAL_TOKENS for part in parts):
        return ()
    ordinals = {ORDINAL_TOKENS[part] for part in parts}
    return tuple(sorted(ordinals, key=lambda value: (value < 0, value)))


def _rrule_parts(rule: str) -> dict[str, str]:
    text = re.sub(r"^rrule:", "", rule.strip(), flags=re.IGNORECASE)
    parts: dict[str, str] = {}
    for chunk in re.split(r"[;\n]+", text):
        if "=" not in chunk:
            continue
        key, value = chunk.split("=", 1)
        key = key.strip().upper()
        value = value.strip().upper()
        if key and value:
            parts[key] = value
    return parts


def _interpret_rrule(rule: str, event: EventSchedule) -> Recurrence:
    parts = _rrule_parts(rule)
    freq = parts.get("FREQ")
    if freq not in _RRULE_FREQUENCIES:
        return Recurrence(is_recurring=True, is_confident=False, frequency=UNKNOWN)
    until: date | None = None
    if "UNTIL" in parts:
        raw_until = parts["UNTIL"][:8]
        try:
            until = datetime.strptime(raw_until, "%Y%m%d").date()
        except ValueError:
            return Recurrence(is_recurring=True, is_confident=False, frequency=UNKNOWN)
        # Date-only UNTIL keeps dateutil from comparing naive and aware values.
        parts["UNTIL"] = raw_until

    rrule_text = ";".join(f"{key}={value}" for key, value in parts.items())
    try:
        rrulestr(rrule_text, dtstart=datetime(2000, 1, 1))
    except (ValueError, TypeError):
        return Recurrence(is_recurring=True, is_confident=False, frequency=UNKNOWN)

    weekday: int | None = None
    ordinals: list[int] = []
    for token in parts.get("BYDAY", "").split(","):
        match = _BYDAY_PART.match(token.strip())
        if not match:
            continue
        if weekday is None:
            weekday = parse_weekday(match.group(2))
        if match.group(1):
            ordinals.append(int(match.group(1)))

    try:
        interval = max(int(parts.get("INTERVAL", "1")), 1)
    except ValueError:
        interval = 1
    try:
        count = int(parts["COUNT"]) if "COUNT" in parts else None
    except ValueError:
        count = None

    anchored = (
        weekday is not None
        or "BYMONTHDAY" in parts
        or freq == "DAILY"
        or event.anchor_date is not None
    )
    return Recurrence(
        is_recurring=True,
        is_confident=anchored,
        frequency=RRULE,
        weekday=weekday,
        ordinals=tuple(sorted(set(ordinals), key=lambda value: (value < 0, value))),
        interval=interval,
        # COUNT is enforced on distinct dates during expansion.
        rrule_text=";".join(
            f"{key}={value}" for key, value in parts.items() if key != "COUNT"
        ),
        rrule_freq=freq,
        count=count,
        until=until,
    )


def _ordinal_label(recurrence: Recurrence) -> str:
    day = recurrence.day_name
    labels = [_ORDINAL_LABELS.get(value, f"{value}th") for value in recurrence.ordinals]
    if len(labels) == 1:
        return f"{labels[0]} {day} of the month"
    return f"{' & '.join(labels)} {day}s"


def _describe(recurrence: Recurrence) -> str:
    day = recurrence.day_name
    if recurrence.frequency == WEEKLY:
        return f"Every {day}"
    if recurrence.frequency == BIWEEKLY:
        return f"Every other {day}"
    if recurrence.frequency == MONTHLY:
        return _ordinal_label(recurrence) if recurrence.ordinals else "Monthly"
    if recurrence.frequency == CUSTOM:
        return "Custom dates"
    if recurrence.frequency == RRULE:
        return _describe_rrule(recurrence)
    return "Recurring"


def _describe_rrule(recurrence: Recurrence) -> str:
    day = recurrence.day_name
    interval = recurrence.interval
    freq = recurrence.rrule_freq
    if freq == "DAILY":
        return "Daily" if interval == 1 else f"Every {interval} days"
    if freq == "WEEKLY":
        if day is None:
            return "Weekly" if interval == 1 else f"Every {interval} weeks"
        if interval == 1:
            return f"Every {day}"
        if interval == 2:
            return f"Every other {day}"
        return f"Every {interval} weeks on {day}"
    if freq == "MONTHLY":
        if recurrence.ordinals and day:
            return _ordinal_label(recurrence)
        return "Monthly"
    if freq == "YEARLY":
        return "Yearly"
    return "Recurring"
