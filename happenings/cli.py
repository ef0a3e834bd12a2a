"""Typer CLI for Happenings."""

from __future__ import annotations

import json
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import load_settings, settings, settings_as_dict, update_config_file
from .crud import get_event_by_identifier
from .database import get_session
from .dates import DateWindow, parse_date_key, to_date_key, today_in_zone
from .digest import build_weekly_digest, run_weekly_digest
from .occurrences import expand, next_occurrence
from .recurrence import interpret
from .repository import SqlRepository, event_from_model
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="Happenings command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _resolve_today(raw: str | None):
    if raw is None:
        return today_in_zone(settings.timezone)
    parsed = parse_date_key(raw)
    if parsed is None:
        typer.secho(f"Invalid date {raw!r}; use YYYY-MM-DD.", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return parsed


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return
    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    config = uvicorn.Config(
        "happenings.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting Happenings on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("occurrences")
def occurrences(
    identifier: str = typer.Argument(..., help="Event id or slug"),
    today: str | None = typer.Option(None, "--today", help="Override today (YYYY-MM-DD)"),
    days: int = typer.Option(
        settings.expansion_window_days, "--days", min=1, help="Days to look ahead"
    ),
) -> None:
    """List the upcoming dates of one event."""
    today_date = _resolve_today(today)
    init_db()
    with get_session() as session:
        model = get_event_by_identifier(session, identifier)
        if model is None:
            typer.secho(f"Event {identifier!r} not found.", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        event = event_from_model(model)

    recurrence = interpret(event)
    typer.echo(f"{event.title}: {recurrence.cadence_description or 'Schedule unknown'}")
    if not recurrence.is_confident:
        typer.echo("Schedule is not confident; no dates projected.")
        return
    dates = expand(event, DateWindow.ahead(today_date, days), recurrence=recurrence)
    if not dates:
        typer.echo(f"No occurrences in the next {days} days.")
        return
    for occurrence in dates:
        typer.echo(f"- {to_date_key(occurrence.date_key)}")
    upcoming = next_occurrence(event, today_date, window_days=days)
    if upcoming and upcoming.is_today:
        typer.echo("Happening today.")


@app.command("digest")
def digest(
    today: str | None = typer.Option(None, "--today", help="Override today (YYYY-MM-DD)"),
    send: bool = typer.Option(
        False, "--send", help="Run the weekly send instead of printing a preview"
    ),
    force: bool = typer.Option(
        False, "--force", help="Send even if this week's digest already went out"
    ),
) -> None:
    """Preview or send the weekly happenings digest."""
    today_date = _resolve_today(today)
    init_db()
    if not send:
        with get_session() as session:
            preview = build_weekly_digest(SqlRepository(session), today_date)
        typer.echo(json.dumps(preview.as_dict(), indent=2))
        return

    with get_session() as session:
        result = run_weekly_digest(SqlRepository(session), today_date, force=force)
    if result.already_sent:
        typer.echo(f"Digest for {result.week_key} already sent; use --force to resend.")
        return
    typer.echo(
        f"Digest {result.week_key}: {result.sent_count} sent, "
        f"{result.failed_count} failed, {result.skipped_count} skipped."
    )
    if result.failed_count:
        raise typer.Exit(code=1)


@app.command("seed-data")
def seed_data(
    venues: int = typer.Option(
        settings.seed_venues, "--venues", min=1, help="Number of venues to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    recipients: int = typer.Option(
        3, "--recipients", min=0, help="Number of digest recipients to create"
    ),
):
    """Populate the database with fake venues and events for testing."""
    stats = seed_fake_data(
        venue_count=venues, event_count=events, recipient_count=recipients
    )
    typer.echo(
        f"Seed complete: {stats['venues']} venues, {stats['events']} events, "
        f"{stats['recipients']} recipients created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    timezone: str | None = typer.Option(
        None, "--timezone", help="Reference time zone for 'today' (IANA name)"
    ),
    expansion_window_days: int | None = typer.Option(
        None, "--expansion-window-days", min=1, help="Days of occurrences to project"
    ),
    max_events: int | None = typer.Option(
        None, "--max-events", min=1, help="Events expanded per listing"
    ),
    max_total_occurrences: int | None = typer.Option(
        None, "--max-total-occurrences", min=1, help="Occurrences per listing"
    ),
    max_occurrences_per_event: int | None = typer.Option(
        None, "--max-occurrences-per-event", min=1, help="Occurrences per event"
    ),
    default_radius_miles: int | None = typer.Option(
        None, "--default-radius-miles", help="Digest radius when none is saved"
    ),
    digest_personalization: bool | None = typer.Option(
        None,
        "--digest-personalization/--no-digest-personalization",
        help="Apply saved filters to weekly digests",
    ),
    digest_day_of_week: str | None = typer.Option(
        None, "--digest-day", help="Weekday the digest job runs (mon..sun)"
    ),
    digest_hour: int | None = typer.Option(
        None, "--digest-hour", min=0, max=23, help="Hour the digest job runs"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Run the weekly digest job inside the server",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to happenings.toml (default: ./happenings.toml)"
    ),
) -> None:
    """View or update configuration stored in happenings.toml."""
    updates = {
        "timezone": timezone,
        "expansion_window_days": expansion_window_days,
        "max_events": max_events,
        "max_total_occurrences": max_total_occurrences,
        "max_occurrences_per_event": max_occurrences_per_event,
        "default_radius_miles": default_radius_miles,
        "digest_personalization": digest_personalization,
        "digest_day_of_week": digest_day_of_week,
        "digest_hour": digest_hour,
        "enable_scheduler": enable_scheduler,
        "app_host": host,
        "app_port": port,
    }
    updates = {key: value for key, value in updates.items() if value is not None}

    if not updates:
        current = load_settings(config_path) if config_path else settings
        typer.echo(json.dumps(settings_as_dict(current), indent=2))
        return

    if timezone is not None:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            typer.secho(f"Unknown time zone {timezone!r}.", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
    new_settings = update_config_file(updates, path=config_path)
    typer.echo(f"Updated configuration at {new_settings.config_path}")
    if show:
        typer.echo(json.dumps(settings_as_dict(new_settings), indent=2))
