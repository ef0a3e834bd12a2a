"""Project event schedules onto calendar windows.

:func:`expand` turns one event into the concrete dates it happens on inside
an inclusive window. Rule-based cadences are generated from the start of the
series (the anchor date) so ``max_occurrences`` always counts from the first
date of the series, never from the window start.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time

from dateutil.rrule import MONTHLY as RR_MONTHLY
from dateutil.rrule import WEEKLY as RR_WEEKLY
from dateutil.rrule import rrule, rrulestr, weekday as rr_weekday

from .config import settings
from .dates import DateWindow, first_weekday_on_or_after
from .overrides import OccurrenceOverride, effective_start_time, override_key
from .recurrence import (
    BIWEEKLY,
    CUSTOM,
    MONTHLY,
    RRULE,
    WEEKLY,
    Recurrence,
    interpret,
)
from .schedule import EventSchedule, Occurrence

logger = logging.getLogger("uvicorn.error")

MISSING_TIME_SORT_KEY = "99:99"


@dataclass(frozen=True)
class ExpansionCaps:
    max_events: int = 200
    max_total_occurrences: int = 500
    max_per_event: int = 40

    @classmethod
    def from_settings(cls) -> ExpansionCaps:
        return cls(
            max_events=settings.max_events,
            max_total_occurrences=settings.max_total_occurrences,
            max_per_event=settings.max_occurrences_per_event,
        )


def expand(
    event: EventSchedule,
    window: DateWindow,
    *,
    recurrence: Recurrence | None = None,
    limit: int | None = None,
) -> list[Occurrence]:
    """Return the occurrences of ``event`` inside ``window``, ascending.

    ``limit`` truncates the windowed result (a per-page cap) and is separate
    from the event's own anchor-relative ``max_occurrences``.
    """
    if window.is_empty:
        return []
    recurrence = recurrence or interpret(event)
    if not recurrence.is_confident:
        return []

    if not recurrence.is_recurring:
        dates = [event.anchor_date] if event.anchor_date in window else []
    elif recurrence.frequency == CUSTOM:
        dates = _custom_dates(event, window)
    else:
        dates = list(_rule_dates(event, recurrence, window))

    if limit is not None:
        dates = dates[: max(limit, 0)]
    return [Occurrence(event_id=event.id, date_key=value) for value in dates]


def _custom_dates(event: EventSchedule, window: DateWindow) -> list[date]:
    ordered = sorted(set(event.custom_dates or ()))
    if event.max_occurrences is not None:
        ordered = ordered[: max(event.max_occurrences, 0)]
    if event.recurrence_end_date is not None:
        ordered = [value for value in ordered if value <= event.recurrence_end_date]
    return [value for value in ordered if value in window]


def _series_start(event: EventSchedule, window: DateWindow) -> date:
    return event.anchor_date or window.start


def _build_rule(event: EventSchedule, recurrence: Recurrence, window: DateWindow):
    start = _series_start(event, window)
    if recurrence.frequency in (WEEKLY, BIWEEKLY):
        # Parity for biweekly series comes from the first matching weekday
        # on or after the anchor.
        first = first_weekday_on_or_after(start, recurrence.weekday)
        return rrule(
            RR_WEEKLY,
            dtstart=datetime.combine(first, time.min),
            interval=recurrence.interval,
            byweekday=recurrence.weekday,
        )
    if recurrence.frequency == MONTHLY and recurrence.ordinals:
        return rrule(
            RR_MONTHLY,
            dtstart=datetime.combine(start, time.min),
            byweekday=[rr_weekday(recurrence.weekday, n) for n in recurrence.ordinals],
        )
    if recurrence.frequency == MONTHLY:
        # Months without the anchor's day are skipped, never rolled over.
        return rrule(
            RR_MONTHLY,
            dtstart=datetime.combine(start, time.min),
            bymonthday=start.day,
        )
    if recurrence.frequency == RRULE:
        return rrulestr(recurrence.rrule_text, dtstart=datetime.combine(start, time.min))
    return None


def _rule_dates(
    event: EventSchedule, recurrence: Recurrence, window: DateWindow
) -> Iterator[date]:
    rule = _build_rule(event, recurrence, window)
    if rule is None:
        return
    cap = min(
        (value for value in (event.max_occurrences, recurrence.count) if value is not None),
        default=None,
    )
    until = min(
        (value for value in (event.recurrence_end_date, recurrence.until) if value),
        default=None,
    )
    previous: date | None = None
    emitted = 0
    for moment in rule:
        current = moment.date()
        if current > window.end:
            break
        if until is not None and current > until:
            break
        if current == previous:
            continue
        if cap is not None and emitted >= cap:
            break
        previous = current
        emitted += 1
        if current >= window.start:
            yield current


@dataclass(frozen=True)
class NextOccurrence:
    date_key: date
    is_today: bool
    is_tomorrow: bool
    is_confident: bool


def next_occurrence(
    event: EventSchedule, today: date, *, window_days: int | None = None
) -> NextOccurrence | None:
    """First occurrence on or after ``today``.

    Unknown schedules report ``is_confident=False`` with ``today`` as a
    placeholder; a confident schedule with nothing ahead returns ``None``.
    """
    recurrence = interpret(event)
    if not recurrence.is_confident:
        return NextOccurrence(
            date_key=today, is_today=False, is_tomorrow=False, is_confident=False
        )
    days = window_days if window_days is not None else settings.expansion_window_days
    upcoming = expand(
        event, DateWindow.ahead(today, days), recurrence=recurrence, limit=1
    )
    if not upcoming:
        return None
    found = upcoming[0].date_key
    return NextOccurrence(
        date_key=found,
        is_today=found == today,
        is_tomorrow=(found - today).days == 1,
        is_confident=True,
    )


@dataclass(frozen=True)
class OccurrenceEntry:
    event: EventSchedule
    date_key: date
    is_confident: bool = True
    override: OccurrenceOverride | None = None

    @property
    def is_cancelled(self) -> bool:
        return bool(self.override and self.override.is_cancelled)

    @property
    def sort_time(self) -> str:
        return effective_start_time(self.event, self.override) or MISSING_TIME_SORT_KEY


@dataclass
class ExpansionMetrics:
    events_processed: int = 0
    events_skipped: int = 0
    total_occurrences: int = 0
    cancelled_count: int = 0
    was_capped: bool = False

    def as_dict(self) -> dict:
        return {
            "events_processed": self.events_processed,
            "events_skipped": self.events_skipped,
            "total_occurrences": self.total_occurrences,
            "cancelled_count": self.cancelled_count,
            "was_capped": self.was_capped,
        }


@dataclass
class ExpansionResult:
    grouped: dict[date, list[OccurrenceEntry]] = field(default_factory=dict)
    cancelled: list[OccurrenceEntry] = field(default_factory=list)
    unknown: list[EventSchedule] = field(default_factory=list)
    metrics: ExpansionMetrics = field(default_factory=ExpansionMetrics)


def expand_and_group(
    events: Sequence[EventSchedule],
    window: DateWindow,
    *,
    overrides: Mapping[tuple[str, date], OccurrenceOverride] | None = None,
    caps: ExpansionCaps | None = None,
) -> ExpansionResult:
    """Expand many events for a listing page and group them by date.

    Cancelled occurrences are kept aside rather than dropped, and events that
    project nothing land in ``unknown`` so they can be shown separately.
    """
    caps = caps or ExpansionCaps.from_settings()
    overrides = overrides or {}
    result = ExpansionResult()
    metrics = result.metrics

    to_process = list(events[: caps.max_events])
    metrics.events_skipped = len(events) - len(to_process)
    if metrics.events_skipped > 0:
        metrics.was_capped = True

    grouped: dict[date, list[OccurrenceEntry]] = {}
    for event in to_process:
        if metrics.total_occurrences >= caps.max_total_occurrences:
            metrics.was_capped = True
            break
        metrics.events_processed += 1
        occurrences = expand(event, window, limit=caps.max_per_event)
        if not occurrences:
            result.unknown.append(event)
            continue
        for occurrence in occurrences:
            if metrics.total_occurrences >= caps.max_total_occurrences:
                metrics.was_capped = True
                break
            metrics.total_occurrences += 1
            entry = OccurrenceEntry(
                event=event,
                date_key=occurrence.date_key,
                is_confident=occurrence.is_confident,
                override=overrides.get(override_key(event.id, occurrence.date_key)),
            )
            if entry.is_cancelled:
                metrics.cancelled_count += 1
                result.cancelled.append(entry)
            else:
                grouped.setdefault(occurrence.date_key, []).append(entry)

    result.grouped = {
        key: sorted(grouped[key], key=lambda entry: entry.sort_time)
        for key in sorted(grouped)
    }
    result.cancelled.sort(key=lambda entry: entry.date_key)
    if metrics.was_capped:
        logger.info(
            "Occurrence expansion capped: processed=%s skipped=%s occurrences=%s",
            metrics.events_processed,
            metrics.events_skipped,
            metrics.total_occurrences,
        )
    return result
