"""Development helpers for populating fake venues, events and recipients."""

from __future__ import annotations

import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, create_recipient, create_venue, save_filters
from .database import get_session
from .dates import WEEKDAY_NAMES, first_weekday_on_or_after, today_in_zone
from .models import Venue
from .storage import init_db

# Denver-area zips with rough coordinates so radius filtering has something to do.
_denver_places = [
    ("Denver", "80202", 39.7527, -104.9994),
    ("Denver", "80205", 39.7590, -104.9665),
    ("Denver", "80210", 39.6780, -104.9627),
    ("Denver", "80211", 39.7666, -105.0201),
    ("Lakewood", "80226", 39.7107, -105.0844),
    ("Aurora", "80012", 39.6988, -104.8375),
    ("Boulder", "80302", 40.0176, -105.2797),
]
_venue_suffixes = ["Tavern", "Lounge", "Taproom", "Coffee House", "Music Hall", "Cafe"]
_event_kinds = [
    ("Open Mic", ["open_mic"]),
    ("Songwriter Showcase", ["showcase"]),
    ("Blues Jam", ["jam_session", "blues"]),
    ("Poetry Night", ["poetry"]),
    ("Comedy Hour", ["comedy"]),
    ("Bluegrass Pick", ["jam_session", "bluegrass"]),
    ("Live Set", ["gig"]),
]
_start_times = ["18:00", "18:30", "19:00", "19:30", "20:00", None]
_schedules = ["weekly", "biweekly", "monthly", "1st/3rd", "custom", "one-time"]


def seed_fake_data(
    *,
    venue_count: int = 6,
    event_count: int = 12,
    recipient_count: int = 3,
    today: date | None = None,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic happenings."""
    if venue_count < 1:
        raise ValueError("venue_count must be >= 1")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if recipient_count < 0:
        raise ValueError("recipient_count must be >= 0")

    init_db()
    fake = Faker()
    today = today or today_in_zone()
    stats = {"venues": 0, "events": 0, "recipients": 0}

    with get_session() as session:
        venues = [_create_venue(session, fake) for _ in range(venue_count)]
        stats["venues"] = len(venues)
        for _ in range(event_count):
            _create_event(session, fake, venue=random.choice(venues), today=today)
            stats["events"] += 1
        for index in range(recipient_count):
            recipient = create_recipient(
                session, email=fake.unique.email(), full_name=fake.name()
            )
            # Every other recipient gets a zip filter to exercise personalization.
            if index % 2 == 1:
                save_filters(
                    session,
                    recipient=recipient,
                    filters={"zip": venues[0].zip, "radius": 10},
                )
            stats["recipients"] += 1

    return stats


def _create_venue(session: Session, fake: Faker) -> Venue:
    city, zip_code, lat, lng = random.choice(_denver_places)
    return create_venue(
        session,
        name=f"{fake.last_name()} {random.choice(_venue_suffixes)}",
        address=fake.street_address(),
        city=city,
        state="CO",
        zip=zip_code,
        latitude=lat + random.uniform(-0.01, 0.01),
        longitude=lng + random.uniform(-0.01, 0.01),
        website_url=fake.url(),
    )


def _create_event(session: Session, fake: Faker, *, venue: Venue, today: date):
    title, event_types = random.choice(_event_kinds)
    weekday = random.randrange(7)
    anchor = first_weekday_on_or_after(today - timedelta(days=14), weekday)
    schedule = random.choice(_schedules)
    options: dict = {"event_date": anchor, "day_of_week": WEEKDAY_NAMES[weekday]}
    if schedule == "custom":
        options = {
            "recurrence_rule": "custom",
            "custom_dates": sorted(
                today + timedelta(days=random.randint(0, 60)) for _ in range(4)
            ),
        }
    elif schedule == "one-time":
        options = {"event_date": today + timedelta(days=random.randint(0, 30))}
    else:
        options["recurrence_rule"] = schedule

    return create_event(
        session,
        title=f"{venue.name} {title}",
        description=fake.paragraph(nb_sentences=3),
        start_time=random.choice(_start_times),
        event_types=event_types,
        is_free=random.choice([True, True, False, None]),
        venue=venue,
        signup_time=random.choice(["6:30 PM", "Sign up at the door", None]),
        **options,
    )
