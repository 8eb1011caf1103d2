from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel

from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.exceptions import NotFoundError
from brandflow.services.company_profile_service import get_profile
from brandflow.services.content_generation_service import (
    PostGenerationRequest,
    generate_posts,
)
from brandflow.services.crud_helpers import ListResult, to_list_result, to_read
from brandflow.services.post_service import get_user_post, list_posts

router = APIRouter(prefix="/posts", tags=["Posts"])


class PostRead(BaseModel):
    id: UUID
    user_id: UUID
    session_id: Optional[UUID] = None
    title: Optional[str] = None
    content: str
    platform: str
    status: str
    ai_generated: bool
    image_url: Optional[str] = None
    hashtags: Optional[list] = None
    generation_params: Optional[dict] = None
    engagement_stats: Optional[dict] = None
    scheduled_for: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


@router.get("", response_model=ListResult[PostRead])
async def list_user_posts(
    current_user: CurrentUser,
    session: SessionDep,
    platform: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    posts = await list_posts(
        session, current_user.id, platform=platform, limit=limit, offset=offset
    )
    return to_list_result(PostRead, posts)


@router.post("/generate")
async def generate(
    request: PostGenerationRequest, current_user: CurrentUser, session: SessionDep
):
    """Generate one post per platform right away. Nothing is saved."""
    profile = await get_profile(session, current_user.id)
    posts = await generate_posts(request, profile)
    return {
        "success": True,
        "posts": [post.model_dump(by_alias=True) for post in posts],
    }


@router.get("/{post_id}", response_model=PostRead)
async def get_post(post_id: UUID, current_user: CurrentUser, session: SessionDep):
    post = await get_user_post(session, current_user.id, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return to_read(PostRead, post)
