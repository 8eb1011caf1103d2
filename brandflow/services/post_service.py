from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.exceptions import NotFoundError, PayloadValidationError
from brandflow.models import Post
from brandflow.services.workflow_payloads import format_validation_error

logger = structlog.stdlib.get_logger(__name__)


class PostContentRevision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    post_id: UUID = Field(alias="postId")
    updated_content: str = Field(alias="updatedContent", min_length=1)
    revision_comments: Optional[str] = Field(
        default=None, alias="postContentRevisionComments"
    )
    generation_params: dict[str, Any] = Field(default_factory=dict)


class PostImageRevision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    post_id: UUID = Field(alias="postId")
    updated_image: str = Field(alias="updatedImage", min_length=1)
    revision_comments: Optional[str] = Field(
        default=None, alias="postImageRevisionComments"
    )
    generation_params: dict[str, Any] = Field(default_factory=dict)


def parse_revision(model: type[BaseModel], body: Any) -> Any:
    if not isinstance(body, dict):
        raise PayloadValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise PayloadValidationError(format_validation_error(e))


async def list_posts(
    session: AsyncSession,
    user_id: UUID,
    platform: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Post]:
    query = select(Post).where(Post.user_id == user_id)
    if platform:
        query = query.where(Post.platform == platform)
    query = query.order_by(Post.created_at.desc(), Post.id).limit(limit).offset(offset)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_user_post(
    session: AsyncSession, user_id: UUID, post_id: UUID
) -> Optional[Post]:
    result = await session.execute(
        select(Post).where(Post.id == post_id, Post.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _get_post(session: AsyncSession, post_id: UUID) -> Post:
    post = await session.get(Post, post_id, populate_existing=True)
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def apply_content_revision(
    session: AsyncSession, revision: PostContentRevision
) -> Post:
    post = await _get_post(session, revision.post_id)
    post.content = revision.updated_content
    post.generation_params = {
        **(post.generation_params or {}),
        **revision.generation_params,
        "revision_comments": revision.revision_comments,
        "revised_at": datetime.now(timezone.utc).isoformat(),
    }
    await session.flush()
    logger.info("Post content revised", post_id=str(post.id))
    return post


async def apply_image_revision(
    session: AsyncSession, revision: PostImageRevision
) -> Post:
    post = await _get_post(session, revision.post_id)
    post.image_url = revision.updated_image
    post.generation_params = {
        **(post.generation_params or {}),
        **revision.generation_params,
        "image_revision_comments": revision.revision_comments,
        "image_revised_at": datetime.now(timezone.utc).isoformat(),
    }
    await session.flush()
    logger.info("Post image revised", post_id=str(post.id))
    return post
