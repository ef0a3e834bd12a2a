"""FastAPI application for Happenings."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .config import settings
from .database import SessionLocal
from .dates import (
    DateWindow,
    format_date_group_header,
    format_time_display,
    parse_date_key,
    to_date_key,
    today_in_zone,
)
from .digest import build_weekly_digest, digest_window, personalize_recipients
from .models import Event, Recipient
from .occurrences import OccurrenceEntry, expand, expand_and_group, next_occurrence
from .overrides import apply_override, build_override_map
from .recurrence import interpret
from .repository import SqlRepository, event_from_model, override_from_model
from .routing import canonical_event_path, select_occurrence_date
from .scheduler import start_scheduler, stop_scheduler
from .schedule import EventSchedule, Occurrence
from .storage import init_db
from .utils import is_uuid

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

API_PREFIX = "/api/v1"


def _load_app_version() -> str:
    """Return the installed package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("happenings")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="Happenings", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class OverridePayload(BaseModel):
    status: str = "active"
    patch: dict[str, Any] = Field(default_factory=dict)
    override_start_time: str | None = None
    override_cover_image_url: str | None = None
    override_notes: str | None = None


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors and answer with a plain 500."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def _parse_today(raw: str | None) -> date:
    """Resolve the request's "today" once, honoring a ``today`` override."""
    if not raw:
        return today_in_zone(settings.timezone)
    parsed = parse_date_key(raw)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid today; use YYYY-MM-DD")
    return parsed


def _parse_date_param(name: str, raw: str | None) -> date | None:
    if not raw:
        return None
    parsed = parse_date_key(raw)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {name}; use YYYY-MM-DD")
    return parsed


def _window(today: date, start: str | None, end: str | None) -> DateWindow:
    start_date = _parse_date_param("start", start) or today
    end_date = _parse_date_param("end", end)
    if end_date is None:
        return DateWindow.ahead(start_date, settings.expansion_window_days)
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end must be on or after start")
    return DateWindow(start=start_date, end=end_date)


def _is_public(event: Event) -> bool:
    return event.is_published and event.visibility == "public" and event.status == "active"


def _ensure_event(db: Session, identifier: str) -> Event:
    event = crud.get_event_by_identifier(db, identifier)
    if not event or not _is_public(event):
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _entry_payload(
    entry: OccurrenceEntry, repository: SqlRepository, today: date
) -> dict[str, Any]:
    occurrence = Occurrence(
        event_id=entry.event.id, date_key=entry.date_key, is_confident=entry.is_confident
    )
    effective = apply_override(entry.event, occurrence, entry.override, repository.get_venue)
    payload = effective.as_dict()
    payload["slug"] = entry.event.slug
    payload["time_display"] = format_time_display(effective.start_time)
    payload["is_today"] = entry.date_key == today
    payload["path"] = canonical_event_path(entry.event.identifier, entry.date_key)
    return payload


def _schedule_summary(event: EventSchedule) -> dict[str, Any]:
    recurrence = interpret(event)
    return {
        "id": event.id,
        "slug": event.slug,
        "title": event.title,
        "recurrence": recurrence.as_dict(),
    }


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.get(f"{API_PREFIX}/happenings")
def list_happenings(
    start: str | None = Query(None),
    end: str | None = Query(None),
    today: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Upcoming occurrences grouped by date with overrides applied."""
    today_date = _parse_today(today)
    window = _window(today_date, start, end)
    repository = SqlRepository(db)
    events = repository.list_published_events()
    overrides = build_override_map(
        repository.list_overrides([event.id for event in events], window)
    )
    result = expand_and_group(events, window, overrides=overrides)
    return {
        "date_range": window.as_dict(),
        "today": to_date_key(today_date),
        "days": [
            {
                "date_key": to_date_key(day),
                "header": format_date_group_header(day, today_date),
                "items": [
                    _entry_payload(entry, repository, today_date) for entry in entries
                ],
            }
            for day, entries in result.grouped.items()
        ],
        "cancelled": [
            _entry_payload(entry, repository, today_date) for entry in result.cancelled
        ],
        "unknown": [_schedule_summary(event) for event in result.unknown],
        "metrics": result.metrics.as_dict(),
    }


@app.get(f"{API_PREFIX}/events/{{identifier}}")
def event_detail(
    identifier: str,
    requested: str | None = Query(None, alias="date"),
    today: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Event detail page data for one selected date of the series."""
    model = _ensure_event(db, identifier)
    if is_uuid(identifier) and model.slug:
        target = canonical_event_path(model.slug, requested)
        return RedirectResponse(url=f"{API_PREFIX}{target}", status_code=307)

    today_date = _parse_today(today)
    event = event_from_model(model)
    recurrence = interpret(event)
    window = DateWindow.ahead(today_date, settings.expansion_window_days)
    occurrences = expand(event, window, recurrence=recurrence)
    selection = select_occurrence_date(
        requested, occurrences, anchor_date=event.anchor_date
    )

    effective = None
    if selection.effective_date is not None:
        override_row = crud.get_override(
            db, event_id=event.id, date_key=selection.effective_date
        )
        effective = apply_override(
            event,
            Occurrence(event_id=event.id, date_key=selection.effective_date),
            override_from_model(override_row) if override_row else None,
            SqlRepository(db).get_venue,
        ).as_dict()

    upcoming = next_occurrence(event, today_date)
    return {
        "event": _schedule_summary(event),
        "occurrences": [to_date_key(item.date_key) for item in occurrences],
        "selection": {
            "date_key": selection.date_key,
            "requested_valid": selection.requested_valid,
            "message": selection.message,
        },
        "effective": effective,
        "next_occurrence": (
            {
                "date_key": to_date_key(upcoming.date_key),
                "is_today": upcoming.is_today,
                "is_tomorrow": upcoming.is_tomorrow,
                "is_confident": upcoming.is_confident,
            }
            if upcoming
            else None
        ),
        "path": canonical_event_path(event.identifier, selection.effective_date),
    }


@app.get(f"{API_PREFIX}/events/{{identifier}}/occurrences")
def event_occurrences(
    identifier: str,
    start: str | None = Query(None),
    end: str | None = Query(None),
    today: str | None = Query(None),
    db: Session = Depends(get_db),
):
    model = _ensure_event(db, identifier)
    window = _window(_parse_today(today), start, end)
    event = event_from_model(model)
    recurrence = interpret(event)
    return {
        "event_id": event.id,
        "recurrence": recurrence.as_dict(),
        "date_range": window.as_dict(),
        "occurrences": [
            to_date_key(item.date_key)
            for item in expand(event, window, recurrence=recurrence)
        ],
    }


@app.put(f"{API_PREFIX}/events/{{event_id}}/overrides/{{date_key}}")
def put_override(
    event_id: str,
    date_key: str,
    payload: OverridePayload,
    db: Session = Depends(get_db),
):
    event = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    try:
        override = crud.upsert_override(
            db,
            event=event,
            date_key=date_key,
            status=payload.status,
            patch=payload.patch,
            override_start_time=payload.override_start_time,
            override_cover_image_url=payload.override_cover_image_url,
            override_notes=payload.override_notes,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(
        "Override saved for event %s on %s (status=%s)",
        event.id,
        date_key,
        override.status,
    )
    return override_from_model(override).as_dict()


@app.delete(f"{API_PREFIX}/events/{{event_id}}/overrides/{{date_key}}", status_code=204)
def delete_override(event_id: str, date_key: str, db: Session = Depends(get_db)):
    event = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    try:
        removed = crud.delete_override(db, event=event, date_key=date_key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="Override not found")
    return Response(status_code=204)


@app.get(f"{API_PREFIX}/digest")
def digest_preview(
    today: str | None = Query(None),
    user_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Preview this week's digest, optionally as one recipient would get it."""
    today_date = _parse_today(today)
    repository = SqlRepository(db)
    digest = build_weekly_digest(repository, today_date)
    if not user_id:
        return {"personalized": False, "skipped": False, **digest.as_dict()}

    if db.get(Recipient, user_id) is None:
        raise HTTPException(status_code=404, detail="Recipient not found")
    recipients = [
        item for item in repository.list_digest_recipients() if item.user_id == user_id
    ]
    if not recipients:
        raise HTTPException(status_code=404, detail="Recipient is not subscribed")
    result = personalize_recipients(
        recipients,
        digest,
        repository.saved_filters_for([user_id]),
        enabled=settings.digest_personalization,
    )
    if not result.recipients:
        empty = {
            "date_range": digest_window(today_date).as_dict(),
            "total_count": 0,
            "venue_count": 0,
            "days": [],
        }
        return {"personalized": True, "skipped": True, **empty}
    chosen = result.digest_for(result.recipients[0], digest)
    return {
        "personalized": user_id in result.digest_by_user,
        "skipped": False,
        **chosen.as_dict(),
    }
