from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Body
from pydantic import BaseModel

from brandflow.deps.api_key import PostRevisionApiKey, ReceiverApiKey, SessionKind
from brandflow.deps.db import SessionDep
from brandflow.models import CompanyProfile, Post, SocialPostsCollection
from brandflow.routes.company_profiles import CompanyProfileRead
from brandflow.routes.posts import PostRead
from brandflow.routes.workflow_sessions import WorkflowSessionRead
from brandflow.services.crud_helpers import to_read
from brandflow.services.post_service import (
    PostContentRevision,
    PostImageRevision,
    apply_content_revision,
    apply_image_revision,
    parse_revision,
)
from brandflow.services.workflow_receiver_service import receive_callback

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/receivers", tags=["Receivers"])


class SocialPostsCollectionRead(BaseModel):
    id: UUID
    session_id: UUID
    user_id: UUID
    platforms: list
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None
    posts_data: list
    created_at: datetime
    updated_at: datetime


ENTITY_READ_MODELS: dict[type, type[BaseModel]] = {
    CompanyProfile: CompanyProfileRead,
    Post: PostRead,
    SocialPostsCollection: SocialPostsCollectionRead,
}


def _dump_entity(entity: Any) -> dict:
    read_model = ENTITY_READ_MODELS[type(entity)]
    return to_read(read_model, entity).model_dump(mode="json")


# Registered before /{kind} so the fixed paths are matched first


@router.post("/post-content-update")
async def receive_post_content_update(
    api_key: PostRevisionApiKey,
    session: SessionDep,
    body: Annotated[Any, Body()] = None,
):
    revision = parse_revision(PostContentRevision, body)
    post = await apply_content_revision(session, revision)
    await session.commit()
    await session.refresh(post)
    return {
        "success": True,
        "message": "Post content updated",
        "post": _dump_entity(post),
    }


@router.post("/post-image-update")
async def receive_post_image_update(
    api_key: PostRevisionApiKey,
    session: SessionDep,
    body: Annotated[Any, Body()] = None,
):
    revision = parse_revision(PostImageRevision, body)
    post = await apply_image_revision(session, revision)
    await session.commit()
    await session.refresh(post)
    return {
        "success": True,
        "message": "Post image updated",
        "post": _dump_entity(post),
    }


@router.post("/{kind}")
async def receive_workflow_callback(
    kind: SessionKind,
    api_key: ReceiverApiKey,
    session: SessionDep,
    body: Annotated[Any, Body()] = None,
):
    """
    Callback from the workflow engine.

    Duplicate and stale callbacks are acknowledged with 200 and change nothing,
    so the engine can retry freely.
    """
    outcome = await receive_callback(session, kind, body)

    response = {
        "success": True,
        "message": outcome.message,
        "session": to_read(WorkflowSessionRead, outcome.session).model_dump(
            mode="json"
        ),
    }
    if outcome.entity_name and outcome.entity is not None:
        response[outcome.entity_name] = _dump_entity(outcome.entity)
    return response
