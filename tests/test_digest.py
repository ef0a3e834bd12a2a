from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

import pytest

from happenings.dates import DateWindow
from happenings.digest import (
    DIGEST_TYPE,
    DigestRecipient,
    build_digest,
    digest_window,
    filter_for_recipient,
    personalize_recipients,
    run_weekly_digest,
)
from happenings.overrides import STATUS_CANCELLED, OccurrenceOverride
from happenings.saved_filters import sanitize_saved_filters
from happenings.schedule import EventSchedule, Venue

# A Monday; its digest week runs Sunday 2026-10-18 through Saturday 2026-10-24.
TODAY = date(2026, 10, 19)
WEEK = digest_window(TODAY)

LODO = Venue(id="lodo", name="LoDo Tap", zip="80202", city="Denver", latitude=39.7527, longitude=-104.9994)
FIVE_POINTS = Venue(
    id="five-points", name="Five Points Hall", zip="80205", city="Denver", latitude=39.7590, longitude=-104.9665
)
BOULDER = Venue(id="boulder", name="Pearl St Cafe", zip="80302", city="Boulder", latitude=40.0176, longitude=-105.2797)


def _weekly(event_id: str, day: str = "Monday", **kwargs) -> EventSchedule:
    kwargs.setdefault("title", event_id.replace("-", " ").title())
    return EventSchedule(
        id=event_id,
        recurrence_rule="weekly",
        day_of_week=day,
        anchor_date=date(2026, 1, 1),
        **kwargs,
    )


@dataclass
class InMemoryRepository:
    events: list[EventSchedule] = field(default_factory=list)
    overrides: list[OccurrenceOverride] = field(default_factory=list)
    recipients: list[DigestRecipient] = field(default_factory=list)
    filters: dict[str, Any] = field(default_factory=dict)
    sent: dict[tuple[str, str], int] = field(default_factory=dict)

    def list_published_events(self):
        return list(self.events)

    def list_overrides(self, event_ids, window):
        return [
            item
            for item in self.overrides
            if item.event_id in event_ids and item.date_key in window
        ]

    def get_venue(self, venue_id):
        return None

    def list_digest_recipients(self):
        return list(self.recipients)

    def saved_filters_for(self, user_ids):
        return {key: value for key, value in self.filters.items() if key in user_ids}

    def digest_already_sent(self, digest_type, week_key):
        return (digest_type, week_key) in self.sent

    def record_digest_send(self, digest_type, week_key, count):
        self.sent[(digest_type, week_key)] = count


def test_digest_window_runs_sunday_through_saturday():
    assert WEEK == DateWindow(date(2026, 10, 18), date(2026, 10, 24))
    assert digest_window(date(2026, 10, 18)).start == date(2026, 10, 18)
    assert digest_window(date(2026, 10, 24)).start == date(2026, 10, 18)


def test_cancelled_occurrence_is_excluded_from_digest():
    monday = _weekly("monday-mic", venue=LODO)
    wednesday = _weekly("wednesday-jam", day="Wednesday", venue=FIVE_POINTS)

    digest = build_digest([monday, wednesday], WEEK, {("monday-mic", TODAY)})

    assert TODAY not in digest.by_date
    assert digest.total_count == 1
    assert digest.venue_count == 1
    assert [item.event.id for item in digest.items()] == ["wednesday-jam"]


def test_venue_count_ignores_events_without_a_venue():
    events = [
        _weekly("lodo-mic", venue=LODO),
        _weekly("lodo-jam", day="Tuesday", venue=LODO),
        _weekly("park-jam", day="Wednesday"),
        _weekly("porch-show", day="Thursday", custom_location_name="Someone's Porch"),
    ]

    digest = build_digest(events, WEEK)

    assert digest.total_count == 4
    assert digest.venue_count == 1


def test_unknown_schedules_are_left_out():
    digest = build_digest([_weekly("no-day", day=None), _weekly("ok")], WEEK)
    assert [item.event.id for item in digest.items()] == ["ok"]


def test_items_sort_by_start_time_with_missing_times_last():
    events = [
        _weekly("late", start_time="21:00:00"),
        _weekly("untimed"),
        _weekly("early", start_time="18:30:00"),
    ]
    digest = build_digest(events, WEEK)
    assert [item.event.id for item in digest.by_date[TODAY]] == ["early", "late", "untimed"]
    payload = digest.as_dict()
    assert payload["days"][0]["header"] == "MONDAY, OCTOBER 19"
    assert payload["days"][0]["items"][0]["time_display"] == "6:30 PM"


def test_cost_filter_keeps_only_free_occurrences_and_recounts():
    venues = [
        Venue(id=f"venue-{index}", name=f"Venue {index}", zip="80202") for index in range(8)
    ]
    events = [
        _weekly(f"event-{index}", venue=venues[index], is_free=index < 5) for index in range(8)
    ]
    digest = build_digest(events, WEEK)
    assert digest.total_count == 8

    filtered = filter_for_recipient(digest, sanitize_saved_filters({"cost": "free"}))

    assert filtered.total_count == 5
    assert filtered.venue_count == 5
    assert all(item.event.is_free is True for item in filtered.items())


def test_unknown_cost_matches_unset_flag_only():
    digest = build_digest(
        [_weekly("free", is_free=True), _weekly("paid", is_free=False), _weekly("unset")], WEEK
    )
    filtered = filter_for_recipient(digest, sanitize_saved_filters({"cost": "unknown"}))
    assert [item.event.id for item in filtered.items()] == ["unset"]


def test_shows_type_covers_showcase_gig_and_other():
    digest = build_digest(
        [
            _weekly("showcase", event_types=("showcase",)),
            _weekly("gig", event_types=("gig",)),
            _weekly("open-mic", event_types=("open_mic",)),
        ],
        WEEK,
    )
    shows = filter_for_recipient(digest, sanitize_saved_filters({"type": "shows"}))
    mics = filter_for_recipient(digest, sanitize_saved_filters({"type": "open_mic"}))
    assert {item.event.id for item in shows.items()} == {"showcase", "gig"}
    assert [item.event.id for item in mics.items()] == ["open-mic"]


def test_day_filter_uses_the_occurrence_date():
    custom = EventSchedule(
        id="moved",
        title="Moved Showcase",
        recurrence_rule="custom",
        day_of_week="Monday",
        custom_dates=(date(2026, 10, 22),),
    )
    digest = build_digest([custom, _weekly("monday")], WEEK)
    filtered = filter_for_recipient(digest, sanitize_saved_filters({"days": ["thu"]}))
    assert [item.event.id for item in filtered.items()] == ["moved"]


def test_zip_without_exact_match_yields_nothing_even_within_radius():
    digest = build_digest([_weekly("five-points-mic", venue=FIVE_POINTS)], WEEK)
    filtered = filter_for_recipient(
        digest, sanitize_saved_filters({"zip": "80202", "radius": 50})
    )
    assert filtered.total_count == 0
    assert filtered.by_date == {}


def test_zip_match_expands_by_radius():
    digest = build_digest(
        [
            _weekly("lodo-mic", venue=LODO),
            _weekly("five-points-mic", venue=FIVE_POINTS),
            _weekly("boulder-mic", venue=BOULDER),
        ],
        WEEK,
    )
    filtered = filter_for_recipient(
        digest, sanitize_saved_filters({"zip": "80202", "radius": 5})
    )
    assert {item.event.id for item in filtered.items()} == {"lodo-mic", "five-points-mic"}
    assert filtered.venue_count == 2


def test_city_match_ignores_state_suffix_and_case():
    digest = build_digest(
        [_weekly("boulder-mic", venue=BOULDER), _weekly("lodo-mic", venue=LODO)], WEEK
    )
    filtered = filter_for_recipient(
        digest, sanitize_saved_filters({"city": "boulder, CO", "radius": 5})
    )
    assert [item.event.id for item in filtered.items()] == ["boulder-mic"]


def test_personalize_recipients_shares_skips_and_falls_back():
    digest = build_digest(
        [_weekly("free-mic", is_free=True, venue=LODO)], WEEK
    )
    everyone = DigestRecipient(user_id="u1", email="all@example.com")
    paid_only = DigestRecipient(user_id="u2", email="paid@example.com")
    broken = DigestRecipient(user_id="u3", email="broken@example.com")
    csc_only = DigestRecipient(user_id="u4", email="csc@example.com")
    free_only = DigestRecipient(user_id="u5", email="free@example.com")

    result = personalize_recipients(
        [everyone, paid_only, broken, csc_only, free_only],
        digest,
        {
            "u2": {"cost": "paid"},
            "u3": ["not", "a", "mapping"],
            "u4": {"csc": True},
            "u5": {"cost": "free"},
        },
    )

    assert [item.user_id for item in result.recipients] == ["u1", "u3", "u4", "u5"]
    assert result.skipped_count == 1
    assert result.fallback_count == 1
    assert result.personalized_count == 1
    assert result.digest_for(broken, digest) is digest
    assert result.digest_for(free_only, digest).total_count == 1


def test_personalization_disabled_sends_shared_digest():
    digest = build_digest([_weekly("free-mic", is_free=True)], WEEK)
    recipient = DigestRecipient(user_id="u2", email="paid@example.com")
    result = personalize_recipients(
        [recipient], digest, {"u2": {"cost": "paid"}}, enabled=False
    )
    assert result.recipients == [recipient]
    assert result.skipped_count == 0


def _repository() -> InMemoryRepository:
    return InMemoryRepository(
        events=[
            _weekly("monday-mic", venue=LODO, is_free=True, start_time="19:00:00"),
            _weekly("thursday-show", day="Thursday", venue=BOULDER, is_free=False),
        ],
        overrides=[
            OccurrenceOverride(event_id="monday-mic", date_key=TODAY, status=STATUS_CANCELLED)
        ],
        recipients=[
            DigestRecipient(user_id="u1", email="one@example.com", first_name="Ana"),
            DigestRecipient(user_id="u2", email="two@example.com"),
        ],
        filters={"u2": {"cost": "free"}},
    )


def test_run_weekly_digest_sends_once_per_week():
    repository = _repository()
    deliveries: list[tuple[str, int]] = []

    def sender(recipient, digest):
        deliveries.append((recipient.email, digest.total_count))

    result = run_weekly_digest(repository, TODAY, sender=sender, personalization=True)

    assert result.week_key == "2026-W43"
    assert result.total_count == 1
    # u2 only wants free happenings and the free one is cancelled this week.
    assert deliveries == [("one@example.com", 1)]
    assert result.sent_count == 1
    assert result.skipped_count == 1
    assert repository.sent == {(DIGEST_TYPE, "2026-W43"): 1}

    again = run_weekly_digest(repository, TODAY, sender=sender, personalization=True)
    assert again.already_sent
    assert len(deliveries) == 1

    forced = run_weekly_digest(repository, TODAY, sender=sender, personalization=True, force=True)
    assert not forced.already_sent
    assert len(deliveries) == 2


def test_failing_sender_only_costs_that_recipient():
    repository = _repository()
    repository.filters = {}

    def sender(recipient, digest):
        if recipient.user_id == "u1":
            raise RuntimeError("smtp down")

    result = run_weekly_digest(repository, TODAY, sender=sender)

    assert result.failed_count == 1
    assert result.sent_count == 1
    assert repository.sent[(DIGEST_TYPE, "2026-W43")] == 1


def test_repository_errors_propagate():
    repository = _repository()

    def broken():
        raise ConnectionError("store unavailable")

    repository.list_published_events = broken
    with pytest.raises(ConnectionError):
        run_weekly_digest(repository, TODAY)
    assert repository.sent == {}
