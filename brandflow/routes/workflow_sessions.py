from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.exceptions import NotFoundError
from brandflow.models import WorkflowKind, WorkflowStatus
from brandflow.services.crud_helpers import ListResult, to_list_result, to_read
from brandflow.services.workflow_session_service import (
    get_user_session,
    list_user_sessions,
)

router = APIRouter(prefix="/workflow-sessions", tags=["Workflow Sessions"])


class WorkflowSessionRead(BaseModel):
    id: UUID
    workflow_kind: WorkflowKind
    status: WorkflowStatus
    parent_entity_id: Optional[UUID] = None
    params: Optional[dict] = None
    result: Optional[Any] = None
    error_message: Optional[str] = None
    attempt: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


@router.get("", response_model=ListResult[WorkflowSessionRead])
async def list_sessions(
    current_user: CurrentUser,
    session: SessionDep,
    workflow_kind: Optional[WorkflowKind] = None,
    status: Optional[WorkflowStatus] = None,
):
    sessions = await list_user_sessions(
        session, current_user.id, kind=workflow_kind, status=status
    )
    return to_list_result(WorkflowSessionRead, sessions)


@router.get("/{session_id}", response_model=WorkflowSessionRead)
async def get_session(session_id: UUID, current_user: CurrentUser, session: SessionDep):
    """Polled by clients until the status is completed or error."""
    workflow_session = await get_user_session(session, current_user.id, session_id)
    if workflow_session is None:
        raise NotFoundError("Session not found")
    return to_read(WorkflowSessionRead, workflow_session)
