from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body

from brandflow.deps.api_key import SessionKind
from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.services.workflow_trigger_service import (
    WORKFLOW_LABELS,
    trigger_workflow,
)

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post("/{kind}")
async def start_workflow(
    kind: SessionKind,
    current_user: CurrentUser,
    session: SessionDep,
    params: Annotated[Any, Body()] = None,
):
    """
    Start a workflow run and return without waiting for it.

    The client polls `/workflow-sessions/{sessionId}` for the outcome.
    """
    workflow_session = await trigger_workflow(
        session, current_user, kind, params if params is not None else {}
    )
    return {
        "success": True,
        "sessionId": str(workflow_session.id),
        "message": f"{WORKFLOW_LABELS[kind]} started",
    }
