"""SQLAlchemy models for Happenings."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Venue(Base):
    __tablename__ = "venues"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(128), nullable=True, unique=True)
    address = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(64), nullable=True)
    zip = Column(String(16), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    google_maps_url = Column(String(512), nullable=True)
    website_url = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="venue")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    slug = Column(String(128), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    event_type = Column(JSON, nullable=False, default=list)
    event_date = Column(Date, nullable=True)
    day_of_week = Column(String(16), nullable=True)
    recurrence_rule = Column(String(255), nullable=True)
    custom_dates = Column(JSON, nullable=True)
    max_occurrences = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    start_time = Column(String(8), nullable=True)
    end_time = Column(String(8), nullable=True)
    is_free = Column(Boolean, nullable=True)
    cost_label = Column(String(120), nullable=True)
    cover_image_url = Column(String(512), nullable=True)
    host_notes = Column(Text, nullable=True)
    signup_time = Column(String(64), nullable=True)
    external_url = Column(String(512), nullable=True)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=True)
    custom_location_name = Column(String(255), nullable=True)
    custom_address = Column(String(255), nullable=True)
    custom_city = Column(String(120), nullable=True)
    custom_state = Column(String(64), nullable=True)
    location_notes = Column(Text, nullable=True)
    is_published = Column(Boolean, default=True, nullable=False)
    visibility = Column(String(16), default="public", nullable=False)
    status = Column(String(16), default="active", nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_modified = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    venue = relationship("Venue", back_populates="events")
    overrides = relationship(
        "OccurrenceOverride",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OccurrenceOverride.date_key",
    )


class OccurrenceOverride(Base):
    __tablename__ = "occurrence_overrides"
    __table_args__ = (
        UniqueConstraint("event_id", "date_key", name="uq_override_event_date"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    date_key = Column(Date, nullable=False)
    status = Column(String(16), default="active", nullable=False)
    patch = Column(JSON, nullable=True)
    override_start_time = Column(String(8), nullable=True)
    override_cover_image_url = Column(String(512), nullable=True)
    override_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="overrides")


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    email_enabled = Column(Boolean, default=True, nullable=False)
    email_digests = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    saved_filter = relationship(
        "SavedFilter",
        back_populates="recipient",
        cascade="all, delete-orphan",
        uselist=False,
    )


class SavedFilter(Base):
    __tablename__ = "saved_filters"

    id = Column(String(36), primary_key=True, default=_uuid)
    recipient_id = Column(
        String(36),
        ForeignKey("recipients.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    auto_apply = Column(Boolean, default=False, nullable=False)
    filters = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    recipient = relationship("Recipient", back_populates="saved_filter")


class DigestSendLog(Base):
    __tablename__ = "digest_send_log"
    __table_args__ = (
        UniqueConstraint("digest_type", "week_key", name="uq_digest_week"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    digest_type = Column(String(64), nullable=False)
    week_key = Column(String(16), nullable=False)
    recipient_count = Column(Integer, default=0, nullable=False)
    sent_at = Column(DateTime, default=_now, nullable=False)
