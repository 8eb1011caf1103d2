from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import update

from brandflow.models import WorkflowKind, WorkflowSession, WorkflowStatus
from brandflow.services.scheduler_service import (
    SESSION_REAPER_JOB_ID,
    get_scheduler,
    reap_stale_sessions,
)
from brandflow.services.user_service import get_or_create_user
from brandflow.settings import settings
from brandflow.utils.locking_utils import lock_key_for


def test_lock_key_is_stable_and_in_range():
    key = lock_key_for(SESSION_REAPER_JOB_ID)
    assert key == lock_key_for(SESSION_REAPER_JOB_ID)
    assert key != lock_key_for("another_job")
    assert 0 <= key < 2**63


def test_scheduler_registers_session_reaper():
    with patch.object(settings, "SESSION_REAPER_INTERVAL_SECONDS", 45):
        scheduler = get_scheduler()

    job = scheduler.get_job(SESSION_REAPER_JOB_ID)
    assert job is not None
    assert job.trigger.interval.total_seconds() == 45


async def test_reap_stale_sessions(session):
    user = await get_or_create_user(session, "test_reaper_user")
    workflow_session = WorkflowSession(
        user_id=user.id,
        workflow_kind=WorkflowKind.MASCOT_GENERATION,
        scope_key="",
        status=WorkflowStatus.PROCESSING,
    )
    session.add(workflow_session)
    await session.flush()
    await session.execute(
        update(WorkflowSession)
        .where(WorkflowSession.id == workflow_session.id)
        .values(updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
    )
    await session.commit()

    @asynccontextmanager
    async def test_session():
        yield session

    with patch(
        "brandflow.services.scheduler_service.background_session", test_session
    ):
        assert await reap_stale_sessions() == 1
        assert await reap_stale_sessions() == 0

    reaped = await session.get(
        WorkflowSession, workflow_session.id, populate_existing=True
    )
    assert reaped.status == WorkflowStatus.ERROR
