"""Per-date override records and the read-time merge onto base events."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Any

from .dates import parse_date_key, to_date_key
from .schedule import EventSchedule, Occurrence, Venue
from .utils import clean_optional

logger = logging.getLogger("uvicorn.error")

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
OVERRIDE_STATUSES = {STATUS_ACTIVE, STATUS_CANCELLED}

VenueLookup = Callable[[str], Venue | None]


@dataclass(frozen=True)
class OverridePatch:
    """Partial field set that replaces base values for a single date.

    ``None`` means "unset"; only set fields take part in the merge.
    """

    title: str | None = None
    description: str | None = None
    event_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    venue_id: str | None = None
    custom_location_name: str | None = None
    custom_address: str | None = None
    custom_city: str | None = None
    custom_state: str | None = None
    location_notes: str | None = None
    is_free: bool | None = None
    cost_label: str | None = None
    signup_time: str | None = None
    cover_image_url: str | None = None
    host_notes: str | None = None
    external_url: str | None = None

    @classmethod
    def field_names(cls) -> set[str]:
        return {item.name for item in fields(cls)}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> OverridePatch:
        """Build a patch from stored JSON, dropping unknown keys and blanks."""
        if not raw:
            return cls()
        allowed = cls.field_names()
        values: dict[str, Any] = {}
        for key, value in raw.items():
            if key not in allowed or value is None:
                continue
            if key == "event_date":
                parsed = parse_date_key(value)
                if parsed is not None:
                    values[key] = parsed
            elif key == "is_free":
                if isinstance(value, bool):
                    values[key] = value
            else:
                cleaned = clean_optional(str(value))
                if cleaned is not None:
                    values[key] = cleaned
        return cls(**values)

    @property
    def has_custom_location(self) -> bool:
        return any(
            value is not None
            for value in (
                self.custom_location_name,
                self.custom_address,
                self.custom_city,
                self.custom_state,
            )
        )

    @property
    def is_empty(self) -> bool:
        return not self.as_dict()

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            payload[key] = to_date_key(value) if isinstance(value, date) else value
        return payload


@dataclass(frozen=True)
class OccurrenceOverride:
    event_id: str
    date_key: date
    status: str = STATUS_ACTIVE
    patch: OverridePatch = field(default_factory=OverridePatch)
    # Single-column overrides kept for rows written before patches existed.
    override_start_time: str | None = None
    override_cover_image_url: str | None = None
    override_notes: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    @property
    def key(self) -> tuple[str, date]:
        return override_key(self.event_id, self.date_key)

    def as_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "date_key": to_date_key(self.date_key),
            "status": self.status,
            "patch": self.patch.as_dict(),
            "override_start_time": self.override_start_time,
            "override_cover_image_url": self.override_cover_image_url,
            "override_notes": self.override_notes,
        }


def override_key(event_id: str, date_key: date) -> tuple[str, date]:
    return (event_id, date_key)


def build_override_map(
    overrides: Iterable[OccurrenceOverride],
) -> dict[tuple[str, date], OccurrenceOverride]:
    """Index overrides by ``(event_id, date_key)``; later rows win."""
    return {override.key: override for override in overrides}


def cancelled_keys(overrides: Iterable[OccurrenceOverride]) -> set[tuple[str, date]]:
    return {override.key for override in overrides if override.is_cancelled}


def first_present(*sources: Any) -> Any:
    """Return the first source that is not ``None``."""
    for value in sources:
        if value is not None:
            return value
    return None


def effective_start_time(
    event: EventSchedule, override: OccurrenceOverride | None
) -> str | None:
    if override is None:
        return event.start_time
    return first_present(
        override.patch.start_time, override.override_start_time, event.start_time
    )


@dataclass(frozen=True)
class EffectiveLocation:
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    venue_id: str | None = None
    venue_slug: str | None = None
    google_maps_url: str | None = None
    website_url: str | None = None
    is_custom_location: bool = False
    notes: str | None = None

    @classmethod
    def for_venue(cls, venue: Venue, *, notes: str | None = None) -> EffectiveLocation:
        return cls(
            name=venue.name,
            address=venue.address,
            city=venue.city,
            state=venue.state,
            zip=venue.zip,
            venue_id=venue.id,
            venue_slug=venue.slug,
            google_maps_url=venue.google_maps_url,
            website_url=venue.website_url,
            is_custom_location=False,
            notes=notes,
        )


@dataclass(frozen=True)
class EffectiveOccurrence:
    """Base event fields with one date's override applied."""

    event_id: str
    date_key: date
    display_date: date
    title: str
    description: str | None
    start_time: str | None
    end_time: str | None
    cover_image_url: str | None
    host_notes: str | None
    is_free: bool | None
    cost_label: str | None
    signup_time: str | None
    external_url: str | None
    location: EffectiveLocation
    is_cancelled: bool = False
    has_override: bool = False

    @property
    def is_actionable(self) -> bool:
        """Whether RSVP and signup are allowed for this date."""
        return not self.is_cancelled

    @property
    def is_rescheduled(self) -> bool:
        return self.display_date != self.date_key

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["date_key"] = to_date_key(self.date_key)
        payload["display_date"] = to_date_key(self.display_date)
        payload["is_actionable"] = self.is_actionable
        payload["is_rescheduled"] = self.is_rescheduled
        return payload


def _base_location(event: EventSchedule, notes: str | None) -> EffectiveLocation:
    if event.venue is not None:
        return EffectiveLocation.for_venue(event.venue, notes=notes)
    return EffectiveLocation(
        name=event.custom_location_name,
        address=event.custom_address,
        city=event.custom_city,
        state=event.custom_state,
        is_custom_location=bool(event.custom_location_name),
        notes=notes,
    )


def _resolve_location(
    event: EventSchedule,
    patch: OverridePatch,
    venue_lookup: VenueLookup | None,
) -> EffectiveLocation:
    notes = first_present(patch.location_notes, event.location_notes)
    if patch.venue_id is not None and patch.venue_id != event.venue_id:
        venue = venue_lookup(patch.venue_id) if venue_lookup else None
        if venue is not None:
            return EffectiveLocation.for_venue(venue, notes=notes)
        logger.warning(
            "Override for event %s points at unknown venue %s; keeping base location",
            event.id,
            patch.venue_id,
        )
        return _base_location(event, notes)
    if patch.has_custom_location:
        return EffectiveLocation(
            name=first_present(patch.custom_location_name, event.custom_location_name),
            address=first_present(patch.custom_address, event.custom_address),
            city=first_present(patch.custom_city, event.custom_city),
            state=first_present(patch.custom_state, event.custom_state),
            is_custom_location=True,
            notes=notes,
        )
    return _base_location(event, notes)


def apply_override(
    event: EventSchedule,
    occurrence: Occurrence,
    override: OccurrenceOverride | None = None,
    venue_lookup: VenueLookup | None = None,
) -> EffectiveOccurrence:
    """Merge ``override`` onto ``event`` for ``occurrence``'s date.

    Every field resolves patch value, then the legacy single-column override,
    then the base event. Cancelled overrides still resolve display fields so
    callers can render what was cancelled.
    """
    patch = override.patch if override else OverridePatch()
    legacy_start = override.override_start_time if override else None
    legacy_cover = override.override_cover_image_url if override else None
    legacy_notes = override.override_notes if override else None

    return EffectiveOccurrence(
        event_id=event.id,
        date_key=occurrence.date_key,
        display_date=first_present(patch.event_date, occurrence.date_key),
        title=first_present(patch.title, event.title),
        description=first_present(patch.description, event.description),
        start_time=first_present(patch.start_time, legacy_start, event.start_time),
        end_time=first_present(patch.end_time, event.end_time),
        cover_image_url=first_present(
            patch.cover_image_url, legacy_cover, event.cover_image_url
        ),
        host_notes=first_present(patch.host_notes, legacy_notes, event.host_notes),
        is_free=first_present(patch.is_free, event.is_free),
        cost_label=first_present(patch.cost_label, event.cost_label),
        signup_time=first_present(patch.signup_time, event.signup_time),
        external_url=first_present(patch.external_url, event.external_url),
        location=_resolve_location(event, patch, venue_lookup),
        is_cancelled=bool(override and override.is_cancelled),
        has_override=override is not None,
    )
