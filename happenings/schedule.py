"""Plain data carried through the scheduling core.

These are detached from SQLAlchemy so the recurrence, occurrence, override
and digest modules stay pure functions over in-memory values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    slug: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    google_maps_url: str | None = None
    website_url: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class EventSchedule:
    """Schedule and display fields of one published event."""

    id: str
    title: str
    slug: str | None = None
    anchor_date: date | None = None
    day_of_week: str | None = None
    recurrence_rule: str | None = None
    custom_dates: tuple[date, ...] | None = None
    max_occurrences: int | None = None
    recurrence_end_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    event_types: tuple[str, ...] = field(default_factory=tuple)
    is_free: bool | None = None
    cost_label: str | None = None
    description: str | None = None
    cover_image_url: str | None = None
    host_notes: str | None = None
    signup_time: str | None = None
    external_url: str | None = None
    venue: Venue | None = None
    custom_location_name: str | None = None
    custom_address: str | None = None
    custom_city: str | None = None
    custom_state: str | None = None
    location_notes: str | None = None

    @property
    def venue_id(self) -> str | None:
        return self.venue.id if self.venue else None

    @property
    def is_custom_location(self) -> bool:
        return self.venue is None and bool(self.custom_location_name)

    @property
    def identifier(self) -> str:
        return self.slug or self.id


@dataclass(frozen=True)
class Occurrence:
    event_id: str
    date_key: date
    is_confident: bool = True
