from __future__ import annotations

from datetime import date

import pytest

from happenings import crud
from happenings.dates import DateWindow
from happenings.repository import SqlRepository


def _venue(session, **kwargs):
    defaults = dict(
        name="Mercury Cafe",
        address="2199 California St",
        city="Denver",
        state="CO",
        zip="80205",
        latitude=39.7525,
        longitude=-104.9858,
    )
    defaults.update(kwargs)
    return crud.create_venue(session, **defaults)


def test_create_event_normalizes_schedule_fields(session):
    venue = _venue(session)
    event = crud.create_event(
        session,
        title="Monday Open Mic",
        event_date="2026-09-21",
        day_of_week="mon",
        recurrence_rule="weekly",
        start_time="7:00",
        event_types=["Open_Mic", " "],
        venue=venue,
        custom_location_name="ignored when a venue is set",
    )
    session.commit()

    assert event.slug == "monday-open-mic"
    assert event.day_of_week == "Monday"
    assert event.start_time == "07:00:00"
    assert event.event_type == ["open_mic"]
    assert event.event_date == date(2026, 9, 21)
    assert event.custom_location_name is None


def test_create_event_rejects_bad_input(session):
    with pytest.raises(ValueError):
        crud.create_event(session, title="  ")
    with pytest.raises(ValueError):
        crud.create_event(session, title="Bad Day", day_of_week="Someday")
    with pytest.raises(ValueError):
        crud.create_event(session, title="Bad Time", start_time="25:00")
    with pytest.raises(ValueError):
        crud.create_event(session, title="Bad Dates", custom_dates=["2026-02-30"])
    with pytest.raises(ValueError):
        crud.create_event(session, title="Bad Cap", max_occurrences=0)


def test_slugs_stay_unique_and_lookup_accepts_id_or_slug(session):
    first = crud.create_event(session, title="Blues Jam")
    second = crud.create_event(session, title="Blues Jam")
    session.commit()

    assert second.slug == "blues-jam-2"
    assert crud.get_event_by_identifier(session, first.id) is first
    assert crud.get_event_by_identifier(session, "BLUES-JAM-2") is second
    assert crud.get_event_by_identifier(session, "missing") is None


def test_upsert_override_is_last_write_wins(session):
    event = crud.create_event(
        session, title="Poetry Night", recurrence_rule="weekly", day_of_week="Thursday"
    )
    first = crud.upsert_override(
        session,
        event=event,
        date_key="2026-10-22",
        patch={"start_time": "20:00", "title": "Poetry Night: Slam Edition"},
        override_notes="Host is out",
    )
    session.commit()
    second = crud.upsert_override(
        session, event=event, date_key="2026-10-22", status="cancelled"
    )
    session.commit()

    assert second.id == first.id
    assert second.status == "cancelled"
    assert second.patch is None
    assert second.override_notes is None


def test_upsert_override_validates_input(session):
    event = crud.create_event(session, title="Comedy Hour")
    with pytest.raises(ValueError):
        crud.upsert_override(session, event=event, date_key="tomorrow")
    with pytest.raises(ValueError):
        crud.upsert_override(session, event=event, date_key="2026-10-22", status="moved")
    with pytest.raises(ValueError):
        crud.upsert_override(
            session, event=event, date_key="2026-10-22", patch={"rsvp_limit": 3}
        )
    with pytest.raises(ValueError):
        crud.upsert_override(
            session, event=event, date_key="2026-10-22", patch={"venue_id": "nope"}
        )


def test_delete_override(session):
    event = crud.create_event(session, title="Irish Session")
    crud.upsert_override(session, event=event, date_key="2026-10-22")
    session.commit()
    assert crud.delete_override(session, event=event, date_key="2026-10-22")
    assert not crud.delete_override(session, event=event, date_key="2026-10-22")


def test_repository_reads_published_events_with_venues(session):
    venue = _venue(session)
    crud.create_event(
        session,
        title="Songwriter Showcase",
        recurrence_rule="custom",
        custom_dates=["2026-11-05", "2026-10-25"],
        event_types=["showcase"],
        venue=venue,
    )
    crud.create_event(session, title="Draft Night", status="draft")
    crud.create_event(session, title="Private Jam", visibility="private")
    crud.create_event(session, title="Unpublished", is_published=False)
    session.commit()

    events = SqlRepository(session).list_published_events()

    assert [event.title for event in events] == ["Songwriter Showcase"]
    showcase = events[0]
    assert showcase.custom_dates == (date(2026, 10, 25), date(2026, 11, 5))
    assert showcase.event_types == ("showcase",)
    assert showcase.venue.name == "Mercury Cafe"
    assert showcase.venue.has_coordinates


def test_repository_overrides_are_limited_to_window(session):
    venue = _venue(session)
    event = crud.create_event(session, title="Open Mic", venue=venue)
    crud.upsert_override(
        session,
        event=event,
        date_key="2026-10-19",
        patch={"venue_id": venue.id, "is_free": False},
    )
    crud.upsert_override(session, event=event, date_key="2026-12-01", status="cancelled")
    session.commit()
    repository = SqlRepository(session)

    overrides = repository.list_overrides(
        [event.id], DateWindow(date(2026, 10, 18), date(2026, 10, 24))
    )

    assert len(overrides) == 1
    assert overrides[0].date_key == date(2026, 10, 19)
    assert overrides[0].patch.venue_id == venue.id
    assert overrides[0].patch.is_free is False
    assert repository.get_venue(venue.id).slug == "mercury-cafe"
    assert repository.get_venue("missing") is None
    assert repository.list_overrides([], DateWindow(date(2026, 1, 1), date(2026, 12, 31))) == []


def test_repository_recipients_filters_and_send_log(session):
    ana = crud.create_recipient(session, email="Ana@Example.com", full_name="Ana Lopez")
    crud.create_recipient(session, email="muted@example.com", email_digests=False)
    crud.save_filters(session, recipient=ana, filters={"cost": "free", "bogus": 1})
    session.commit()
    repository = SqlRepository(session)

    recipients = repository.list_digest_recipients()
    assert [(item.email, item.first_name) for item in recipients] == [
        ("ana@example.com", "Ana")
    ]
    assert repository.saved_filters_for([ana.id]) == {ana.id: {"cost": "free"}}

    assert not repository.digest_already_sent("weekly_happenings", "2026-W43")
    repository.record_digest_send("weekly_happenings", "2026-W43", 4)
    repository.record_digest_send("weekly_happenings", "2026-W43", 6)
    session.commit()
    assert repository.digest_already_sent("weekly_happenings", "2026-W43")
    log = crud.get_send_log(session, digest_type="weekly_happenings", week_key="2026-W43")
    assert log.recipient_count == 6


def test_create_recipient_requires_email(session):
    with pytest.raises(ValueError):
        crud.create_recipient(session, email="not-an-email")
