"""Choose which date of a series a detail page shows."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from urllib.parse import urlencode

from .config import settings
from .dates import parse_date_key, to_date_key
from .schedule import Occurrence


@dataclass(frozen=True)
class DateSelection:
    effective_date: date | None
    message: str | None = None
    requested_valid: bool = False

    @property
    def date_key(self) -> str | None:
        return to_date_key(self.effective_date) if self.effective_date else None


def out_of_window_message(window_days: int | None = None) -> str:
    days = window_days if window_days is not None else settings.expansion_window_days
    return f"That date isn't in the next {days} days. Showing next upcoming date."


def select_occurrence_date(
    requested: str | None,
    occurrences: Sequence[Occurrence],
    *,
    anchor_date: date | None = None,
    window_days: int | None = None,
) -> DateSelection:
    """Validate a ``?date=`` value against the expanded occurrences.

    Never raises: malformed or unknown dates fall back to the first upcoming
    occurrence with an advisory message.
    """
    available = [occurrence.date_key for occurrence in occurrences]
    fallback = available[0] if available else anchor_date

    if not requested:
        return DateSelection(effective_date=fallback)

    parsed = parse_date_key(requested)
    if parsed is not None and parsed in available:
        return DateSelection(effective_date=parsed, requested_valid=True)
    return DateSelection(
        effective_date=fallback,
        message=out_of_window_message(window_days),
    )


def canonical_event_path(identifier: str, date_key: date | str | None = None) -> str:
    path = f"/events/{identifier}"
    if date_key is None:
        return path
    value = date_key if isinstance(date_key, str) else to_date_key(date_key)
    return f"{path}?{urlencode({'date': value})}"
