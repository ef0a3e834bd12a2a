"""Read side of the store as plain schedule values.

The core modules depend on :class:`HappeningsRepository` only, so tests and
the scheduler can hand them an in-memory double or :class:`SqlRepository`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import crud, models
from .dates import DateWindow, parse_date_key
from .digest import DigestRecipient
from .overrides import OccurrenceOverride, OverridePatch
from .schedule import EventSchedule, Venue


class HappeningsRepository(Protocol):
    def list_published_events(self) -> list[EventSchedule]: ...

    def list_overrides(
        self, event_ids: Sequence[str], window: DateWindow
    ) -> list[OccurrenceOverride]: ...

    def get_venue(self, venue_id: str) -> Venue | None: ...

    def list_digest_recipients(self) -> list[DigestRecipient]: ...

    def saved_filters_for(self, user_ids: Sequence[str]) -> dict[str, Any]: ...

    def digest_already_sent(self, digest_type: str, week_key: str) -> bool: ...

    def record_digest_send(self, digest_type: str, week_key: str, count: int) -> None: ...


def venue_from_model(venue: models.Venue) -> Venue:
    return Venue(
        id=venue.id,
        name=venue.name,
        slug=venue.slug,
        address=venue.address,
        city=venue.city,
        state=venue.state,
        zip=venue.zip,
        latitude=venue.latitude,
        longitude=venue.longitude,
        google_maps_url=venue.google_maps_url,
        website_url=venue.website_url,
    )


def _custom_dates(raw: Iterable[Any] | None) -> tuple[date, ...] | None:
    if raw is None:
        return None
    parsed = (parse_date_key(value) for value in raw)
    return tuple(value for value in parsed if value is not None)


def event_from_model(event: models.Event) -> EventSchedule:
    return EventSchedule(
        id=event.id,
        title=event.title,
        slug=event.slug,
        anchor_date=event.event_date,
        day_of_week=event.day_of_week,
        recurrence_rule=event.recurrence_rule,
        custom_dates=_custom_dates(event.custom_dates),
        max_occurrences=event.max_occurrences,
        recurrence_end_date=event.recurrence_end_date,
        start_time=event.start_time,
        end_time=event.end_time,
        event_types=tuple(event.event_type or ()),
        is_free=event.is_free,
        cost_label=event.cost_label,
        description=event.description,
        cover_image_url=event.cover_image_url,
        host_notes=event.host_notes,
        signup_time=event.signup_time,
        external_url=event.external_url,
        venue=venue_from_model(event.venue) if event.venue else None,
        custom_location_name=event.custom_location_name,
        custom_address=event.custom_address,
        custom_city=event.custom_city,
        custom_state=event.custom_state,
        location_notes=event.location_notes,
    )


def override_from_model(override: models.OccurrenceOverride) -> OccurrenceOverride:
    return OccurrenceOverride(
        event_id=override.event_id,
        date_key=override.date_key,
        status=override.status,
        patch=OverridePatch.from_mapping(override.patch),
        override_start_time=override.override_start_time,
        override_cover_image_url=override.override_cover_image_url,
        override_notes=override.override_notes,
    )


def _first_name(full_name: str | None) -> str | None:
    if not full_name or not full_name.strip():
        return None
    return full_name.split()[0]


class SqlRepository:
    """:class:`HappeningsRepository` over a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def list_published_events(self) -> list[EventSchedule]:
        stmt = (
            select(models.Event)
            .options(selectinload(models.Event.venue))
            .where(
                models.Event.is_published.is_(True),
                models.Event.visibility == "public",
                models.Event.status == "active",
            )
            .order_by(models.Event.title)
        )
        return [event_from_model(event) for event in self.session.scalars(stmt)]

    def list_overrides(
        self, event_ids: Sequence[str], window: DateWindow
    ) -> list[OccurrenceOverride]:
        if not event_ids:
            return []
        stmt = (
            select(models.OccurrenceOverride)
            .where(
                models.OccurrenceOverride.event_id.in_(list(event_ids)),
                models.OccurrenceOverride.date_key >= window.start,
                models.OccurrenceOverride.date_key <= window.end,
            )
            .order_by(models.OccurrenceOverride.updated_at)
        )
        return [override_from_model(row) for row in self.session.scalars(stmt)]

    def get_venue(self, venue_id: str) -> Venue | None:
        venue = self.session.get(models.Venue, venue_id)
        return venue_from_model(venue) if venue else None

    def list_digest_recipients(self) -> list[DigestRecipient]:
        stmt = (
            select(models.Recipient)
            .where(
                models.Recipient.email_enabled.is_(True),
                models.Recipient.email_digests.is_(True),
            )
            .order_by(models.Recipient.email)
        )
        return [
            DigestRecipient(
                user_id=recipient.id,
                email=recipient.email,
                first_name=_first_name(recipient.full_name),
            )
            for recipient in self.session.scalars(stmt)
        ]

    def saved_filters_for(self, user_ids: Sequence[str]) -> dict[str, Any]:
        if not user_ids:
            return {}
        stmt = select(models.SavedFilter).where(
            models.SavedFilter.recipient_id.in_(list(user_ids))
        )
        return {
            saved.recipient_id: saved.filters
            for saved in self.session.scalars(stmt)
            if saved.filters is not None
        }

    def digest_already_sent(self, digest_type: str, week_key: str) -> bool:
        log = crud.get_send_log(
            self.session, digest_type=digest_type, week_key=week_key
        )
        return log is not None

    def record_digest_send(self, digest_type: str, week_key: str, count: int) -> None:
        crud.record_digest_send(
            self.session,
            digest_type=digest_type,
            week_key=week_key,
            recipient_count=count,
        )
