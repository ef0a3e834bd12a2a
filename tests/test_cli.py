from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from typer.testing import CliRunner

from happenings import crud
from happenings.cli import app
from happenings.models import DigestSendLog, Event, Recipient, Venue
from happenings.seed import seed_fake_data

runner = CliRunner()


def test_occurrences_command_lists_dates(session):
    crud.create_event(
        session,
        title="Thursday Poetry",
        recurrence_rule="weekly",
        day_of_week="Thursday",
        event_date=date(2026, 10, 1),
    )
    session.commit()

    result = runner.invoke(
        app, ["occurrences", "thursday-poetry", "--today", "2026-10-19", "--days", "10"]
    )

    assert result.exit_code == 0, result.output
    assert "Every Thursday" in result.output
    assert "- 2026-10-22" in result.output
    assert "- 2026-10-29" in result.output


def test_occurrences_command_reports_missing_event():
    result = runner.invoke(app, ["occurrences", "nope"])
    assert result.exit_code == 1


def test_digest_send_is_idempotent_per_week(session):
    venue = crud.create_venue(session, name="Mercury Cafe", zip="80205")
    crud.create_event(
        session, title="Monday Mic", recurrence_rule="weekly", day_of_week="Monday", venue=venue
    )
    crud.create_recipient(session, email="fan@example.com", full_name="Fan Person")
    session.commit()

    first = runner.invoke(app, ["digest", "--today", "2026-10-19", "--send"])
    second = runner.invoke(app, ["digest", "--today", "2026-10-19", "--send"])

    assert first.exit_code == 0, first.output
    assert "Digest 2026-W43: 1 sent" in first.output
    assert "already sent" in second.output
    assert session.scalar(select(func.count()).select_from(DigestSendLog)) == 1


def test_digest_preview_prints_json(session):
    result = runner.invoke(app, ["digest", "--today", "2026-10-19"])
    assert result.exit_code == 0, result.output
    assert '"date_range"' in result.output


def test_seed_fake_data_creates_rows(session):
    stats = seed_fake_data(
        venue_count=2, event_count=5, recipient_count=2, today=date(2026, 10, 19)
    )

    assert stats == {"venues": 2, "events": 5, "recipients": 2}
    assert session.scalar(select(func.count()).select_from(Venue)) == 2
    assert session.scalar(select(func.count()).select_from(Event)) == 5
    assert session.scalar(select(func.count()).select_from(Recipient)) == 2
