"""Weekly happenings digest: build, personalize and hand off for delivery.

The digest covers one Sunday-through-Saturday window. It is built once from
the expander output and then re-filtered per recipient without re-querying.
Rendering and email delivery belong to the caller-supplied sender.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any

from .config import settings
from .dates import (
    DateWindow,
    compute_week_key,
    format_day_header,
    format_time_display,
    to_date_key,
    weekday_abbrev,
)
from .location import (
    centroid,
    compute_bounding_box,
    haversine_distance_miles,
    normalize_city,
    normalize_radius_miles,
    normalize_zip,
)
from .occurrences import expand
from .overrides import cancelled_keys
from .saved_filters import (
    SHOW_TYPES,
    SavedFilters,
    has_digest_applicable_filters,
    sanitize_saved_filters,
    to_digest_applicable,
)
from .schedule import EventSchedule, Venue

if TYPE_CHECKING:
    from .repository import HappeningsRepository

logger = logging.getLogger("uvicorn.error")

DIGEST_TYPE = "weekly_happenings"
MISSING_TIME_SORT_KEY = "23:59:59"


@dataclass(frozen=True)
class DigestItem:
    event: EventSchedule
    date_key: date

    @property
    def venue(self) -> Venue | None:
        return self.event.venue

    def as_dict(self) -> dict[str, Any]:
        event = self.event
        return {
            "event_id": event.id,
            "slug": event.slug,
            "title": event.title,
            "date_key": to_date_key(self.date_key),
            "start_time": event.start_time,
            "time_display": format_time_display(event.start_time),
            "event_types": list(event.event_types),
            "is_free": event.is_free,
            "cost_label": event.cost_label,
            "venue": (
                {
                    "id": event.venue.id,
                    "name": event.venue.name,
                    "city": event.venue.city,
                    "zip": event.venue.zip,
                }
                if event.venue
                else None
            ),
        }


@dataclass(frozen=True)
class Digest:
    window: DateWindow
    by_date: dict[date, list[DigestItem]]
    total_count: int
    venue_count: int

    def items(self) -> Iterable[DigestItem]:
        for entries in self.by_date.values():
            yield from entries

    def as_dict(self) -> dict[str, Any]:
        return {
            "date_range": self.window.as_dict(),
            "total_count": self.total_count,
            "venue_count": self.venue_count,
            "days": [
                {
                    "date_key": to_date_key(day),
                    "header": format_day_header(day),
                    "items": [item.as_dict() for item in entries],
                }
                for day, entries in self.by_date.items()
            ],
        }


@dataclass(frozen=True)
class DigestRecipient:
    user_id: str
    email: str
    first_name: str | None = None


@dataclass
class PersonalizationResult:
    recipients: list[DigestRecipient] = field(default_factory=list)
    digest_by_user: dict[str, Digest] = field(default_factory=dict)
    personalized_count: int = 0
    skipped_count: int = 0
    fallback_count: int = 0

    def digest_for(self, recipient: DigestRecipient, default: Digest) -> Digest:
        return self.digest_by_user.get(recipient.user_id, default)


def digest_window(today: date) -> DateWindow:
    """Sunday through Saturday of the week containing ``today``."""
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return DateWindow(start=start, end=start + timedelta(days=6))


def _sort_key(item: DigestItem) -> tuple[str, str]:
    return (item.event.start_time or MISSING_TIME_SORT_KEY, item.event.title)


def _assemble(window: DateWindow, grouped: Mapping[date, list[DigestItem]]) -> Digest:
    by_date: dict[date, list[DigestItem]] = {}
    venues: set[str] = set()
    total = 0
    for day in sorted(grouped):
        entries = sorted(grouped[day], key=_sort_key)
        if not entries:
            continue
        by_date[day] = entries
        total += len(entries)
        venues.update(item.event.venue_id for item in entries if item.event.venue_id)
    return Digest(window=window, by_date=by_date, total_count=total, venue_count=len(venues))


def build_digest(
    events: Iterable[EventSchedule],
    window: DateWindow,
    cancelled: Collection[tuple[str, date]] = frozenset(),
) -> Digest:
    """Group confident, non-cancelled occurrences in ``window`` by date."""
    grouped: dict[date, list[DigestItem]] = {}
    for event in events:
        for occurrence in expand(event, window):
            if not occurrence.is_confident:
                continue
            if (event.id, occurrence.date_key) in cancelled:
                continue
            grouped.setdefault(occurrence.date_key, []).append(
                DigestItem(event=event, date_key=occurrence.date_key)
            )
    return _assemble(window, grouped)


def _matches_criteria(item: DigestItem, filters: SavedFilters) -> bool:
    event = item.event
    if filters.type:
        if filters.type == "shows":
            if not SHOW_TYPES.intersection(event.event_types):
                return False
        elif filters.type not in event.event_types:
            return False
    if filters.cost == "free" and event.is_free is not True:
        return False
    if filters.cost == "paid" and event.is_free is not False:
        return False
    if filters.cost == "unknown" and event.is_free is not None:
        return False
    # The occurrence date decides the weekday, so rescheduled dates filter right.
    if filters.days and weekday_abbrev(item.date_key) not in filters.days:
        return False
    return True


def _venues_near(
    venues: Mapping[str, Venue], filters: SavedFilters
) -> set[str]:
    zip_code = normalize_zip(filters.zip)
    city = normalize_city(filters.city)
    city = city.lower() if city else None

    exact: set[str] = set()
    for venue_id, venue in venues.items():
        if zip_code:
            if normalize_zip(venue.zip) == zip_code:
                exact.add(venue_id)
        elif city:
            venue_city = normalize_city(venue.city)
            if venue_city and venue_city.lower() == city:
                exact.add(venue_id)
    if not exact:
        return set()

    included = set(exact)
    center = centroid(
        (venues[venue_id].latitude, venues[venue_id].longitude)
        for venue_id in exact
        if venues[venue_id].has_coordinates
    )
    if center is None:
        return included

    radius = normalize_radius_miles(filters.radius)
    box = compute_bounding_box(center[0], center[1], radius)
    for venue_id, venue in venues.items():
        if venue_id in included or not venue.has_coordinates:
            continue
        if not box.contains(venue.latitude, venue.longitude):
            continue
        distance = haversine_distance_miles(
            center[0], center[1], venue.latitude, venue.longitude
        )
        if distance <= radius:
            included.add(venue_id)
    return included


def filter_for_recipient(digest: Digest, filters: SavedFilters) -> Digest:
    """Subset an already-built digest by a recipient's saved filters.

    A zip or city that matches no venue exactly yields an empty digest; the
    radius only widens an exact match, it never replaces one.
    """
    grouped: dict[date, list[DigestItem]] = {}
    for day, entries in digest.by_date.items():
        kept = [item for item in entries if _matches_criteria(item, filters)]
        if kept:
            grouped[day] = kept

    if filters.zip or filters.city:
        venues = {
            item.venue.id: item.venue
            for entries in grouped.values()
            for item in entries
            if item.venue is not None
        }
        allowed = _venues_near(venues, filters)
        grouped = {
            day: [item for item in entries if item.event.venue_id in allowed]
            for day, entries in grouped.items()
        }
    return _assemble(digest.window, grouped)


def personalize_recipients(
    recipients: Sequence[DigestRecipient],
    digest: Digest,
    saved_filters: Mapping[str, Any],
    *,
    enabled: bool = True,
) -> PersonalizationResult:
    """Decide which digest each recipient gets.

    Recipients without applicable filters get the shared digest. A filter that
    cannot be read falls back to the shared digest instead of failing the
    batch. A filtered digest with nothing in it means the recipient is skipped.
    """
    if not enabled or not recipients:
        return PersonalizationResult(recipients=list(recipients))

    result = PersonalizationResult()
    for recipient in recipients:
        raw = saved_filters.get(recipient.user_id)
        if raw is None:
            result.recipients.append(recipient)
            continue
        try:
            saved = raw if isinstance(raw, SavedFilters) else sanitize_saved_filters(raw)
            applicable = to_digest_applicable(saved)
            if not has_digest_applicable_filters(applicable):
                result.recipients.append(recipient)
                continue
            personalized = filter_for_recipient(digest, applicable)
        except (TypeError, ValueError):
            logger.warning(
                "Unreadable saved filters for %s; sending the full digest",
                recipient.email,
                exc_info=True,
            )
            result.fallback_count += 1
            result.recipients.append(recipient)
            continue

        if personalized.total_count == 0:
            result.skipped_count += 1
            logger.info(
                "Skipping digest for %s: filters produced 0 results", recipient.email
            )
            continue
        result.personalized_count += 1
        result.recipients.append(recipient)
        result.digest_by_user[recipient.user_id] = personalized
    return result


DigestSender = Callable[[DigestRecipient, Digest], None]


def log_sender(recipient: DigestRecipient, digest: Digest) -> None:
    logger.info(
        "Digest for %s: %s happenings at %s venues",
        recipient.email,
        digest.total_count,
        digest.venue_count,
    )


@dataclass
class DigestRunResult:
    week_key: str
    window: DateWindow
    total_count: int = 0
    venue_count: int = 0
    sent_count: int = 0
    failed_count: int = 0
    personalized_count: int = 0
    skipped_count: int = 0
    fallback_count: int = 0
    already_sent: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "week_key": self.week_key,
            "date_range": self.window.as_dict(),
            "total_count": self.total_count,
            "venue_count": self.venue_count,
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "personalized_count": self.personalized_count,
            "skipped_count": self.skipped_count,
            "fallback_count": self.fallback_count,
            "already_sent": self.already_sent,
        }


def build_weekly_digest(repository: HappeningsRepository, today: date) -> Digest:
    window = digest_window(today)
    events = repository.list_published_events()
    overrides = repository.list_overrides([event.id for event in events], window)
    return build_digest(events, window, cancelled_keys(overrides))


def run_weekly_digest(
    repository: HappeningsRepository,
    today: date,
    *,
    sender: DigestSender | None = None,
    personalization: bool | None = None,
    force: bool = False,
) -> DigestRunResult:
    """Build and send this week's digest once per ISO week.

    Fetch errors from the repository propagate. A failing sender only costs
    that recipient.
    """
    window = digest_window(today)
    week_key = compute_week_key(today)
    result = DigestRunResult(week_key=week_key, window=window)
    if not force and repository.digest_already_sent(DIGEST_TYPE, week_key):
        logger.info("Weekly digest for %s already sent; skipping", week_key)
        result.already_sent = True
        return result

    digest = build_weekly_digest(repository, today)
    result.total_count = digest.total_count
    result.venue_count = digest.venue_count

    enabled = (
        settings.digest_personalization if personalization is None else personalization
    )
    recipients = repository.list_digest_recipients()
    saved = (
        repository.saved_filters_for([recipient.user_id for recipient in recipients])
        if enabled
        else {}
    )
    personalized = personalize_recipients(recipients, digest, saved, enabled=enabled)
    result.personalized_count = personalized.personalized_count
    result.skipped_count = personalized.skipped_count
    result.fallback_count = personalized.fallback_count

    send = sender or log_sender
    for recipient in personalized.recipients:
        try:
            send(recipient, personalized.digest_for(recipient, digest))
        except Exception:
            logger.exception("Failed to send weekly digest to %s", recipient.email)
            result.failed_count += 1
            continue
        result.sent_count += 1

    repository.record_digest_send(DIGEST_TYPE, week_key, result.sent_count)
    logger.info(
        "Weekly digest %s: sent=%s failed=%s skipped=%s personalized=%s",
        week_key,
        result.sent_count,
        result.failed_count,
        result.skipped_count,
        result.personalized_count,
    )
    return result
