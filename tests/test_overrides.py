from __future__ import annotations

import logging
from datetime import date

from happenings.overrides import (
    STATUS_CANCELLED,
    OccurrenceOverride,
    OverridePatch,
    apply_override,
    build_override_map,
    cancelled_keys,
    effective_start_time,
    first_present,
)
from happenings.schedule import EventSchedule, Occurrence, Venue

DAY = date(2026, 10, 19)

BASE_VENUE = Venue(id="venue-1", name="Mercury Cafe", slug="mercury-cafe", city="Denver", zip="80205")
OTHER_VENUE = Venue(id="venue-2", name="Skylark Lounge", slug="skylark-lounge", city="Denver")


def _event(**kwargs) -> EventSchedule:
    defaults = dict(
        id="evt-1",
        title="Open Mic",
        description="Bring a song",
        recurrence_rule="weekly",
        day_of_week="Monday",
        start_time="19:00:00",
        end_time="22:00:00",
        cover_image_url="https://img.example/base.jpg",
        host_notes="Base notes",
        is_free=True,
        venue=BASE_VENUE,
    )
    defaults.update(kwargs)
    return EventSchedule(**defaults)


def _occurrence() -> Occurrence:
    return Occurrence(event_id="evt-1", date_key=DAY)


def test_without_override_base_fields_pass_through():
    effective = apply_override(_event(), _occurrence())
    assert effective.title == "Open Mic"
    assert effective.start_time == "19:00:00"
    assert effective.display_date == DAY
    assert effective.location.venue_id == "venue-1"
    assert not effective.has_override
    assert effective.is_actionable


def test_patch_wins_over_legacy_column_and_base():
    override = OccurrenceOverride(
        event_id="evt-1",
        date_key=DAY,
        patch=OverridePatch(start_time="20:00:00"),
        override_start_time="21:00:00",
        override_notes="Legacy notes",
    )
    effective = apply_override(_event(), _occurrence(), override)
    assert effective.start_time == "20:00:00"
    assert effective.host_notes == "Legacy notes"
    assert effective.has_override


def test_legacy_columns_fill_in_when_patch_is_silent():
    override = OccurrenceOverride(
        event_id="evt-1",
        date_key=DAY,
        override_start_time="21:00:00",
        override_cover_image_url="https://img.example/flyer.jpg",
    )
    effective = apply_override(_event(), _occurrence(), override)
    assert effective.start_time == "21:00:00"
    assert effective.cover_image_url == "https://img.example/flyer.jpg"


def test_false_is_a_real_patch_value():
    override = OccurrenceOverride(
        event_id="evt-1", date_key=DAY, patch=OverridePatch(is_free=False)
    )
    assert apply_override(_event(), _occurrence(), override).is_free is False


def test_cancelled_override_still_resolves_display_fields():
    override = OccurrenceOverride(
        event_id="evt-1",
        date_key=DAY,
        status=STATUS_CANCELLED,
        patch=OverridePatch(title="Open Mic (cancelled for the holiday)"),
    )
    effective = apply_override(_event(), _occurrence(), override)
    assert effective.is_cancelled
    assert not effective.is_actionable
    assert effective.title == "Open Mic (cancelled for the holiday)"


def test_reschedule_moves_display_date_but_keeps_identity():
    override = OccurrenceOverride(
        event_id="evt-1", date_key=DAY, patch=OverridePatch(event_date=date(2026, 10, 20))
    )
    effective = apply_override(_event(), _occurrence(), override)
    assert effective.date_key == DAY
    assert effective.display_date == date(2026, 10, 20)
    assert effective.is_rescheduled
    assert effective.as_dict()["display_date"] == "2026-10-20"


def test_patch_venue_is_resolved_through_lookup():
    override = OccurrenceOverride(
        event_id="evt-1", date_key=DAY, patch=OverridePatch(venue_id="venue-2")
    )
    lookup = {"venue-2": OTHER_VENUE}.get
    effective = apply_override(_event(), _occurrence(), override, lookup)
    assert effective.location.venue_id == "venue-2"
    assert effective.location.name == "Skylark Lounge"
    assert not effective.location.is_custom_location


def test_unknown_patch_venue_keeps_base_location(caplog):
    override = OccurrenceOverride(
        event_id="evt-1", date_key=DAY, patch=OverridePatch(venue_id="missing")
    )
    with caplog.at_level(logging.WARNING, logger="uvicorn.error"):
        effective = apply_override(_event(), _occurrence(), override, lambda _id: None)
    assert effective.location.venue_id == "venue-1"
    assert "unknown venue missing" in caplog.text


def test_patch_custom_location_replaces_venue():
    override = OccurrenceOverride(
        event_id="evt-1",
        date_key=DAY,
        patch=OverridePatch(
            custom_location_name="Washington Park Boathouse",
            custom_city="Denver",
            location_notes="Look for the banner",
        ),
    )
    effective = apply_override(_event(), _occurrence(), override)
    assert effective.location.is_custom_location
    assert effective.location.venue_id is None
    assert effective.location.name == "Washington Park Boathouse"
    assert effective.location.notes == "Look for the banner"


def test_event_without_venue_uses_custom_location_fields():
    event = _event(venue=None, custom_location_name="Backyard", custom_city="Lakewood")
    effective = apply_override(event, _occurrence())
    assert effective.location.is_custom_location
    assert effective.location.city == "Lakewood"


def test_patch_from_mapping_drops_unknown_keys_and_blanks():
    patch = OverridePatch.from_mapping(
        {
            "title": "   ",
            "start_time": "20:00:00",
            "is_free": "yes",
            "event_date": "2026-10-20",
            "rsvp_limit": 5,
            "host_notes": None,
        }
    )
    assert patch == OverridePatch(start_time="20:00:00", event_date=date(2026, 10, 20))
    assert patch.as_dict() == {"start_time": "20:00:00", "event_date": "2026-10-20"}
    assert OverridePatch.from_mapping(None).is_empty


def test_override_map_and_cancelled_keys():
    first = OccurrenceOverride(event_id="evt-1", date_key=DAY)
    second = OccurrenceOverride(event_id="evt-1", date_key=DAY, status=STATUS_CANCELLED)
    other = OccurrenceOverride(event_id="evt-2", date_key=DAY)
    mapping = build_override_map([first, second, other])
    assert mapping[("evt-1", DAY)] is second
    assert cancelled_keys([first, second, other]) == {("evt-1", DAY)}


def test_first_present_and_effective_start_time():
    assert first_present(None, "", "base") == ""
    assert first_present(None, None) is None
    override = OccurrenceOverride(event_id="evt-1", date_key=DAY, override_start_time="18:30:00")
    assert effective_start_time(_event(), override) == "18:30:00"
    assert effective_start_time(_event(), None) == "19:00:00"
