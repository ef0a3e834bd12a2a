"""CRUD helpers for venues, events, overrides, recipients and the send log."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .dates import parse_date_key, parse_weekday, to_date_key, WEEKDAY_NAMES
from .models import DigestSendLog, Event, OccurrenceOverride, Recipient, SavedFilter, Venue
from .overrides import OVERRIDE_STATUSES, STATUS_ACTIVE, OverridePatch
from .saved_filters import sanitize_saved_filters
from .utils import clean_optional, is_uuid, slugify, utcnow

EVENT_VISIBILITIES = {"public", "private"}
EVENT_STATUSES = {"active", "cancelled", "draft"}
_time_pattern = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def normalize_time(value: str | None) -> str | None:
    """Return ``HH:MM:SS`` for ``H:MM``/``HH:MM[:SS]`` input."""
    cleaned = clean_optional(value)
    if cleaned is None:
        return None
    match = _time_pattern.match(cleaned)
    if not match:
        raise ValueError(f"Invalid time {value!r}; use HH:MM")
    hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Invalid time {value!r}; use HH:MM")
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def _require_date(value: str | date | None, *, field_name: str) -> date:
    parsed = parse_date_key(value)
    if parsed is None:
        raise ValueError(f"Invalid {field_name}; use YYYY-MM-DD")
    return parsed


def _optional_date(value: str | date | None, *, field_name: str) -> date | None:
    if value is None or value == "":
        return None
    return _require_date(value, field_name=field_name)


def _unique_slug(session: Session, model: type, base: str) -> str | None:
    if not base:
        return None
    candidate = base
    suffix = 2
    while session.scalars(select(model).where(model.slug == candidate)).first():
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def create_venue(
    session: Session,
    *,
    name: str,
    address: str | None = None,
    city: str | None = None,
    state: str | None = None,
    zip: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    google_maps_url: str | None = None,
    website_url: str | None = None,
) -> Venue:
    """Create and persist a venue with a unique slug."""
    cleaned_name = clean_optional(name)
    if not cleaned_name:
        raise ValueError("Venue name is required")
    venue = Venue(
        name=cleaned_name,
        slug=_unique_slug(session, Venue, slugify(cleaned_name)),
        address=clean_optional(address),
        city=clean_optional(city),
        state=clean_optional(state),
        zip=clean_optional(zip),
        latitude=latitude,
        longitude=longitude,
        google_maps_url=clean_optional(google_maps_url),
        website_url=clean_optional(website_url),
    )
    session.add(venue)
    session.flush()
    return venue


def create_event(
    session: Session,
    *,
    title: str,
    event_date: str | date | None = None,
    day_of_week: str | None = None,
    recurrence_rule: str | None = None,
    custom_dates: Iterable[str | date] | None = None,
    max_occurrences: int | None = None,
    recurrence_end_date: str | date | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    event_types: Sequence[str] | None = None,
    is_free: bool | None = None,
    cost_label: str | None = None,
    description: str | None = None,
    venue: Venue | None = None,
    custom_location_name: str | None = None,
    custom_address: str | None = None,
    custom_city: str | None = None,
    custom_state: str | None = None,
    location_notes: str | None = None,
    cover_image_url: str | None = None,
    host_notes: str | None = None,
    signup_time: str | None = None,
    external_url: str | None = None,
    is_published: bool = True,
    visibility: str = "public",
    status: str = "active",
) -> Event:
    """Create and persist a new event."""
    cleaned_title = clean_optional(title)
    if not cleaned_title:
        raise ValueError("Event title is required")
    visibility = visibility.lower()
    if visibility not in EVENT_VISIBILITIES:
        raise ValueError("Invalid event visibility")
    status = status.lower()
    if status not in EVENT_STATUSES:
        raise ValueError("Invalid event status")
    weekday_name = None
    if clean_optional(day_of_week):
        weekday = parse_weekday(day_of_week)
        if weekday is None:
            raise ValueError(f"Invalid day_of_week {day_of_week!r}")
        weekday_name = WEEKDAY_NAMES[weekday]
    if max_occurrences is not None and max_occurrences < 1:
        raise ValueError("max_occurrences must be >= 1")
    dates = None
    if custom_dates is not None:
        dates = sorted(
            {
                to_date_key(_require_date(value, field_name="custom date"))
                for value in custom_dates
            }
        )

    event = Event(
        title=cleaned_title,
        slug=_unique_slug(session, Event, slugify(cleaned_title)),
        description=description,
        event_type=[item.strip().lower() for item in (event_types or []) if item.strip()],
        event_date=_optional_date(event_date, field_name="event_date"),
        day_of_week=weekday_name,
        recurrence_rule=clean_optional(recurrence_rule),
        custom_dates=dates,
        max_occurrences=max_occurrences,
        recurrence_end_date=_optional_date(
            recurrence_end_date, field_name="recurrence_end_date"
        ),
        start_time=normalize_time(start_time),
        end_time=normalize_time(end_time),
        is_free=is_free,
        cost_label=clean_optional(cost_label),
        venue=venue,
        custom_location_name=None if venue else clean_optional(custom_location_name),
        custom_address=None if venue else clean_optional(custom_address),
        custom_city=None if venue else clean_optional(custom_city),
        custom_state=None if venue else clean_optional(custom_state),
        location_notes=clean_optional(location_notes),
        cover_image_url=clean_optional(cover_image_url),
        host_notes=host_notes,
        signup_time=clean_optional(signup_time),
        external_url=clean_optional(external_url),
        is_published=is_published,
        visibility=visibility,
        status=status,
    )
    session.add(event)
    session.flush()
    return event


def get_event_by_identifier(session: Session, identifier: str) -> Event | None:
    """Look an event up by UUID or slug."""
    cleaned = (identifier or "").strip()
    if not cleaned:
        return None
    if is_uuid(cleaned):
        found = session.get(Event, cleaned)
        if found:
            return found
    stmt = select(Event).where(Event.slug == cleaned.lower())
    return session.scalars(stmt).first()


def get_override(
    session: Session, *, event_id: str, date_key: date
) -> OccurrenceOverride | None:
    stmt = select(OccurrenceOverride).where(
        OccurrenceOverride.event_id == event_id,
        OccurrenceOverride.date_key == date_key,
    )
    return session.scalars(stmt).first()


def _clean_patch(session: Session, patch: Mapping[str, Any] | None) -> dict[str, Any]:
    if not patch:
        return {}
    unknown = set(patch) - OverridePatch.field_names()
    if unknown:
        raise ValueError(f"Unsupported override fields: {', '.join(sorted(unknown))}")
    raw = dict(patch)
    for key in ("start_time", "end_time"):
        if raw.get(key) is not None:
            raw[key] = normalize_time(raw[key])
    if raw.get("event_date") is not None:
        raw["event_date"] = to_date_key(
            _require_date(raw["event_date"], field_name="event_date")
        )
    venue_id = raw.get("venue_id")
    if venue_id is not None and session.get(Venue, venue_id) is None:
        raise ValueError("Unknown venue_id in override")
    return OverridePatch.from_mapping(raw).as_dict()


def upsert_override(
    session: Session,
    *,
    event: Event,
    date_key: str | date,
    status: str = STATUS_ACTIVE,
    patch: Mapping[str, Any] | None = None,
    override_start_time: str | None = None,
    override_cover_image_url: str | None = None,
    override_notes: str | None = None,
) -> OccurrenceOverride:
    """Create or replace the override for one date (last write wins)."""
    key = _require_date(date_key, field_name="date_key")
    normalized_status = (status or "").strip().lower()
    if normalized_status not in OVERRIDE_STATUSES:
        raise ValueError("Invalid override status")
    cleaned_patch = _clean_patch(session, patch)

    override = get_override(session, event_id=event.id, date_key=key)
    if override is None:
        override = OccurrenceOverride(event_id=event.id, date_key=key)
    override.status = normalized_status
    override.patch = cleaned_patch or None
    override.override_start_time = normalize_time(override_start_time)
    override.override_cover_image_url = clean_optional(override_cover_image_url)
    override.override_notes = clean_optional(override_notes)
    override.updated_at = utcnow()
    session.add(override)
    session.flush()
    return override


def delete_override(session: Session, *, event: Event, date_key: str | date) -> bool:
    key = _require_date(date_key, field_name="date_key")
    override = get_override(session, event_id=event.id, date_key=key)
    if override is None:
        return False
    session.delete(override)
    session.flush()
    return True


def create_recipient(
    session: Session,
    *,
    email: str,
    full_name: str | None = None,
    email_enabled: bool = True,
    email_digests: bool = True,
) -> Recipient:
    normalized_email = (email or "").strip().lower()
    if "@" not in normalized_email:
        raise ValueError("Invalid email address")
    recipient = Recipient(
        email=normalized_email,
        full_name=clean_optional(full_name),
        email_enabled=email_enabled,
        email_digests=email_digests,
    )
    session.add(recipient)
    session.flush()
    return recipient


def save_filters(
    session: Session,
    *,
    recipient: Recipient,
    filters: Mapping[str, Any],
    auto_apply: bool = False,
) -> SavedFilter:
    """Store a recipient's sanitized happenings filters."""
    sanitized = sanitize_saved_filters(filters).as_dict()
    saved = recipient.saved_filter
    if saved is None:
        saved = SavedFilter(recipient=recipient)
    saved.filters = sanitized
    saved.auto_apply = auto_apply
    saved.updated_at = utcnow()
    session.add(saved)
    session.flush()
    return saved


def get_send_log(
    session: Session, *, digest_type: str, week_key: str
) -> DigestSendLog | None:
    stmt = select(DigestSendLog).where(
        DigestSendLog.digest_type == digest_type,
        DigestSendLog.week_key == week_key,
    )
    return session.scalars(stmt).first()


def record_digest_send(
    session: Session, *, digest_type: str, week_key: str, recipient_count: int
) -> DigestSendLog:
    log = get_send_log(session, digest_type=digest_type, week_key=week_key)
    if log is None:
        log = DigestSendLog(digest_type=digest_type, week_key=week_key)
    log.recipient_count = recipient_count
    log.sent_at = utcnow()
    session.add(log)
    session.flush()
    return log
