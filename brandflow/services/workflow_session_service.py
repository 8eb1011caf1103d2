from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, null, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.models import (
    WebhookConfiguration,
    WorkflowKind,
    WorkflowLog,
    WorkflowLogEvent,
    WorkflowSession,
    WorkflowStatus,
)
from brandflow.utils.uuid_utils import generate_ulid_uuid

logger = structlog.stdlib.get_logger(__name__)

SESSION_TIMEOUT_MESSAGE = "Workflow timed out waiting for callback"


def scope_key_for(parent_entity_id: Optional[UUID]) -> str:
    return str(parent_entity_id) if parent_entity_id else ""


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Upsert is not supported on {dialect}")


async def upsert_processing_session(
    session: AsyncSession,
    user_id: UUID,
    kind: WorkflowKind,
    parent_entity_id: Optional[UUID],
    params: dict[str, Any],
    configuration: WebhookConfiguration,
) -> WorkflowSession:
    """
    Arm the single session for (user, kind, parent) for a new run.

    A single INSERT ... ON CONFLICT statement either creates the row or moves
    the existing one back to processing with a bumped attempt, so two
    concurrent triggers end up on the same row and the later one supersedes
    the earlier one.
    """
    insert = _insert_for(session)
    stmt = insert(WorkflowSession).values(
        id=generate_ulid_uuid(),
        user_id=user_id,
        workflow_kind=kind,
        parent_entity_id=parent_entity_id,
        scope_key=scope_key_for(parent_entity_id),
        status=WorkflowStatus.PROCESSING,
        params=params,
        webhook_configuration_id=configuration.id,
        attempt=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "workflow_kind", "scope_key"],
        set_={
            "status": stmt.excluded.status,
            "params": stmt.excluded.params,
            "parent_entity_id": stmt.excluded.parent_entity_id,
            "webhook_configuration_id": stmt.excluded.webhook_configuration_id,
            "result": null(),
            "error_message": null(),
            "completed_at": null(),
            "attempt": WorkflowSession.attempt + 1,
            "updated_at": func.now(),
        },
    ).returning(WorkflowSession.id)

    session_id = (await session.execute(stmt)).scalar_one()

    result = await session.execute(
        select(WorkflowSession)
        .where(WorkflowSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    workflow_session = result.scalar_one()

    logger.info(
        "Workflow session armed",
        session_id=str(workflow_session.id),
        workflow_kind=kind.value,
        attempt=workflow_session.attempt,
    )
    return workflow_session


async def get_session_for_update(
    session: AsyncSession, session_id: UUID
) -> Optional[WorkflowSession]:
    """Row-locks the session until the transaction ends (no-op on SQLite)."""
    result = await session.execute(
        select(WorkflowSession)
        .where(WorkflowSession.id == session_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def add_log(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    event: WorkflowLogEvent,
    payload: Any = None,
    message: Optional[str] = None,
) -> WorkflowLog:
    log = WorkflowLog(
        session_id=workflow_session.id,
        user_id=workflow_session.user_id,
        workflow_kind=workflow_session.workflow_kind,
        event=event,
        attempt=workflow_session.attempt,
        payload=payload,
        message=message,
    )
    session.add(log)
    return log


def mark_completed(workflow_session: WorkflowSession, result: Any) -> None:
    workflow_session.status = WorkflowStatus.COMPLETED
    workflow_session.result = result
    workflow_session.error_message = None
    workflow_session.completed_at = datetime.now(timezone.utc)


def mark_error(workflow_session: WorkflowSession, error_message: str) -> None:
    workflow_session.status = WorkflowStatus.ERROR
    workflow_session.error_message = error_message
    workflow_session.completed_at = datetime.now(timezone.utc)


async def error_if_still_processing(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    error_message: str,
    event: WorkflowLogEvent,
    payload: Any = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move the session to error only if it is still on the same processing run.

    The condition lives in the UPDATE so a callback that completed the run,
    or a newer trigger that re-armed it, is never overwritten.
    """
    now = now or datetime.now(timezone.utc)
    update_result = await session.execute(
        update(WorkflowSession)
        .where(
            WorkflowSession.id == workflow_session.id,
            WorkflowSession.status == WorkflowStatus.PROCESSING,
            WorkflowSession.attempt == workflow_session.attempt,
        )
        .values(
            status=WorkflowStatus.ERROR,
            error_message=error_message,
            completed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if update_result.rowcount != 1:
        return False

    add_log(session, workflow_session, event, payload=payload, message=error_message)
    return True


async def list_user_sessions(
    session: AsyncSession,
    user_id: UUID,
    kind: Optional[WorkflowKind] = None,
    status: Optional[WorkflowStatus] = None,
) -> list[WorkflowSession]:
    query = select(WorkflowSession).where(WorkflowSession.user_id == user_id)
    if kind is not None:
        query = query.where(WorkflowSession.workflow_kind == kind)
    if status is not None:
        query = query.where(WorkflowSession.status == status)
    query = query.order_by(WorkflowSession.updated_at.desc())

    result = await session.execute(query)
    return list(result.scalars().all())


async def get_user_session(
    session: AsyncSession, user_id: UUID, session_id: UUID
) -> Optional[WorkflowSession]:
    result = await session.execute(
        select(WorkflowSession)
        .where(
            WorkflowSession.id == session_id,
            WorkflowSession.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def expire_stale_sessions(
    session: AsyncSession,
    timeout_minutes: int,
    now: Optional[datetime] = None,
) -> int:
    """
    Move sessions stuck in processing longer than the timeout to error.

    A callback that lands between the SELECT and the UPDATE wins.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=timeout_minutes)

    result = await session.execute(
        select(WorkflowSession).where(
            WorkflowSession.status == WorkflowStatus.PROCESSING,
            WorkflowSession.updated_at < cutoff,
        )
    )
    stale_sessions = list(result.scalars().all())

    expired = 0
    for workflow_session in stale_sessions:
        if not await error_if_still_processing(
            session,
            workflow_session,
            SESSION_TIMEOUT_MESSAGE,
            WorkflowLogEvent.EXPIRED,
            now=now,
        ):
            continue

        expired += 1
        logger.warning(
            "Workflow session expired",
            session_id=str(workflow_session.id),
            workflow_kind=workflow_session.workflow_kind.value,
            attempt=workflow_session.attempt,
        )

    await session.commit()
    return expired
