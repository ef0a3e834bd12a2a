"""APScheduler integration."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .config import settings
from .database import get_session
from .dates import today_in_zone
from .digest import DigestRunResult, run_weekly_digest
from .repository import SqlRepository

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None


def weekly_digest_job() -> DigestRunResult:
    """Run the weekly digest against the live database."""
    today = today_in_zone(settings.timezone)
    with get_session() as session:
        return run_weekly_digest(SqlRepository(session), today)


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler and _scheduler.running:
        return _scheduler
    scheduler = BackgroundScheduler(timezone=settings.timezone)
    scheduler.add_job(
        weekly_digest_job,
        "cron",
        day_of_week=settings.digest_day_of_week,
        hour=settings.digest_hour,
        id="weekly-digest",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler started; weekly digest runs %s at %02d:00 %s",
        settings.digest_day_of_week,
        settings.digest_hour,
        settings.timezone,
    )
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
