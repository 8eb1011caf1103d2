"""
APScheduler setup for periodic maintenance jobs.

Every worker process runs its own AsyncIOScheduler with an in-memory job
store; jobs that must only run once per tick take a PostgreSQL advisory lock.
"""

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from brandflow.deps.db import background_session
from brandflow.services.workflow_session_service import expire_stale_sessions
from brandflow.settings import settings
from brandflow.utils.locking_utils import advisory_lock, lock_key_for

structured_logger = structlog.stdlib.get_logger(__name__)

SESSION_REAPER_JOB_ID = "session_reaper"


async def reap_stale_sessions() -> int:
    """Expire sessions that never got a callback. Returns how many were expired."""
    async with background_session() as session:
        async with advisory_lock(
            session, lock_key_for(SESSION_REAPER_JOB_ID)
        ) as lock_acquired:
            if not lock_acquired:
                structured_logger.info(
                    "Skipping session reaper - lock held by another worker"
                )
                return 0

            expired = await expire_stale_sessions(
                session, settings.SESSION_TIMEOUT_MINUTES
            )

    if expired:
        structured_logger.info("Session reaper expired sessions", expired=expired)
    return expired


def get_scheduler() -> AsyncIOScheduler:
    job_defaults = {
        "coalesce": True,  # Combine multiple missed executions into one
        "max_instances": 1,  # Only one instance of each job can run at a time
        "misfire_grace_time": 30,
    }

    scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone="UTC")
    scheduler.add_job(
        reap_stale_sessions,
        IntervalTrigger(seconds=settings.SESSION_REAPER_INTERVAL_SECONDS),
        id=SESSION_REAPER_JOB_ID,
        replace_existing=True,
    )

    structured_logger.info(
        "AsyncIOScheduler configured",
        jobs=[job.id for job in scheduler.get_jobs()],
        reaper_interval_seconds=settings.SESSION_REAPER_INTERVAL_SECONDS,
    )
    return scheduler
