"""Background scheduler for the auto-release sweep.

APScheduler's AsyncIOScheduler runs inside the API's event loop and is
started and stopped from the FastAPI lifespan. A single interval job is
registered; ``max_instances=1`` with ``coalesce=True`` means a slow sweep
never overlaps the next one and missed runs collapse into one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from creator_escrow.config import get_settings
from creator_escrow.infrastructure.notifications import get_event_publisher
from creator_escrow.logging_config import get_logger
from creator_escrow.orchestration.auto_release import AutoReleaseSweeper

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from creator_escrow.config import Settings

logger = get_logger(__name__)

AUTO_RELEASE_JOB_ID = "auto_release_sweep"

_scheduler: AsyncIOScheduler | None = None


def build_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
) -> AsyncIOScheduler:
    """Create a scheduler with the auto-release job registered (not started)."""
    settings = settings or get_settings()
    scheduler = AsyncIOScheduler(
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60},
        timezone="UTC",
    )
    sweeper = AutoReleaseSweeper(
        session_factory,
        settings=settings,
        publisher=get_event_publisher(),
    )
    scheduler.add_job(
        sweeper.run_once,
        trigger=IntervalTrigger(minutes=settings.auto_release_sweep_interval_minutes),
        id=AUTO_RELEASE_JOB_ID,
        name="Auto-release delivered bookings",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


def start_scheduler(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIOScheduler | None:
    """Start the sweep unless disabled in settings. Called during app startup."""
    global _scheduler
    settings = get_settings()
    if not settings.auto_release_sweep_enabled:
        logger.info("scheduler.disabled")
        return None
    _scheduler = build_scheduler(session_factory, settings)
    _scheduler.start()
    logger.info(
        "scheduler.started",
        job=AUTO_RELEASE_JOB_ID,
        interval_minutes=settings.auto_release_sweep_interval_minutes,
    )
    return _scheduler


def stop_scheduler() -> None:
    """Stop the sweep. Called during app shutdown."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler.stopped")
        _scheduler = None


def scheduler_state() -> str:
    """Report the sweep's state for the health endpoint."""
    if _scheduler is None:
        return "stopped"
    return "running" if _scheduler.running else "stopped"
