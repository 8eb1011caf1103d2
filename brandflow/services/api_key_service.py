from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.exceptions import AuthenticationError, NotFoundError
from brandflow.models import ApiKey, WorkflowKind
from brandflow.utils.encryption import generate_api_key, hash_api_key

logger = structlog.stdlib.get_logger(__name__)


async def create_api_key(
    session: AsyncSession,
    key_name: str,
    workflow_kind: WorkflowKind,
    created_by_id: Optional[UUID] = None,
    can_read: bool = True,
    can_write: bool = True,
    can_admin: bool = False,
) -> tuple[ApiKey, str]:
    """Returns the stored key and the plain secret, which is never stored."""
    plain_key, prefix = generate_api_key()
    api_key = ApiKey(
        key_name=key_name,
        prefix=prefix,
        hashed_key=hash_api_key(plain_key),
        workflow_kind=workflow_kind,
        is_active=True,
        can_read=can_read,
        can_write=can_write,
        can_admin=can_admin,
        created_by_id=created_by_id,
    )
    session.add(api_key)
    await session.flush()

    logger.info(
        "Created API key",
        api_key_id=str(api_key.id),
        workflow_kind=workflow_kind.value,
        prefix=prefix,
    )
    return api_key, plain_key


async def list_api_keys(session: AsyncSession) -> list[ApiKey]:
    result = await session.execute(select(ApiKey).order_by(ApiKey.created_at.desc()))
    return list(result.scalars().all())


async def deactivate_api_key(session: AsyncSession, api_key_id: UUID) -> ApiKey:
    api_key = await session.get(ApiKey, api_key_id)
    if api_key is None:
        raise NotFoundError("API key not found")

    api_key.is_active = False
    await session.flush()
    logger.info("Deactivated API key", api_key_id=str(api_key_id))
    return api_key


async def authenticate_api_key(
    session: AsyncSession, raw_key: Optional[str], workflow_kind: WorkflowKind
) -> ApiKey:
    """
    Resolve the `x-api-key` header for a receiver of the given kind.

    Raises:
        AuthenticationError: Key missing, unknown, inactive, not allowed to
            write or scoped to another kind.
    """
    if not raw_key:
        raise AuthenticationError("API key required")

    result = await session.execute(
        select(ApiKey).where(ApiKey.hashed_key == hash_api_key(raw_key))
    )
    api_key = result.scalar_one_or_none()

    if api_key is None or not api_key.is_active:
        raise AuthenticationError("Invalid API key")

    if api_key.workflow_kind != workflow_kind or not api_key.can_write:
        logger.warning(
            "API key used outside its scope",
            api_key_id=str(api_key.id),
            key_scope=api_key.workflow_kind.value,
            requested_scope=workflow_kind.value,
        )
        raise AuthenticationError("API key is not valid for this workflow")

    structlog.contextvars.bind_contextvars(api_key_id=str(api_key.id))
    return api_key


async def record_api_key_usage(session: AsyncSession, api_key: ApiKey) -> None:
    """Commit `last_used_at` on its own. A failure is logged and ignored."""
    try:
        await session.execute(
            update(ApiKey)
            .where(ApiKey.id == api_key.id)
            .values(last_used_at=datetime.now(timezone.utc))
        )
        await session.commit()
    except SQLAlchemyError as e:
        logger.warning(
            "Could not record API key usage", api_key_id=str(api_key.id), error=str(e)
        )
        await session.rollback()
