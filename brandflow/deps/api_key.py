"""
Dependencies for the receiver endpoints the workflow engine calls back into.

The engine authenticates with an `x-api-key` header. Keys are scoped to one
workflow kind, so the kind has to be known before the key can be checked.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header

from brandflow.deps.db import SessionDep
from brandflow.exceptions import NotFoundError
from brandflow.models import SESSION_KINDS, ApiKey, WorkflowKind
from brandflow.services.api_key_service import (
    authenticate_api_key,
    record_api_key_usage,
)


def get_session_kind(kind: str) -> WorkflowKind:
    """Path parameter for the per-kind endpoints. Registry-only keys have no endpoint."""
    try:
        workflow_kind = WorkflowKind(kind)
    except ValueError:
        raise NotFoundError(f"Unknown workflow kind: {kind}")
    if workflow_kind not in SESSION_KINDS:
        raise NotFoundError(f"Unknown workflow kind: {kind}")
    return workflow_kind


SessionKind = Annotated[WorkflowKind, Depends(get_session_kind)]


async def _authenticate(
    session: SessionDep, raw_key: Optional[str], kind: WorkflowKind
) -> ApiKey:
    api_key = await authenticate_api_key(session, raw_key, kind)
    await record_api_key_usage(session, api_key)
    return api_key


async def get_receiver_api_key(
    kind: SessionKind,
    session: SessionDep,
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> ApiKey:
    return await _authenticate(session, x_api_key, kind)


async def get_post_revision_api_key(
    session: SessionDep,
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> ApiKey:
    return await _authenticate(session, x_api_key, WorkflowKind.POST_REVISION)


ReceiverApiKey = Annotated[ApiKey, Depends(get_receiver_api_key)]
PostRevisionApiKey = Annotated[ApiKey, Depends(get_post_revision_api_key)]
