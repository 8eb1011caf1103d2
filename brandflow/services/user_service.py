from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.models import User
from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)


def _is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.lower() in {e.lower() for e in settings.ADMIN_EMAILS}


async def get_or_create_user(
    session: AsyncSession,
    external_id: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
) -> User:
    """
    Look up the local user for an auth provider subject, creating it on first sight.

    Email and name are refreshed from the token on every call because the
    identity platform owns them.
    """
    result = await session.execute(select(User).where(User.external_id == external_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            external_id=external_id,
            email=email,
            full_name=full_name,
            is_admin=_is_admin_email(email),
        )
        session.add(user)
        await session.flush()
        logger.info("Created user", user_id=str(user.id), is_admin=user.is_admin)
        return user

    changed = False
    if email and user.email != email:
        user.email = email
        changed = True
    if full_name and user.full_name != full_name:
        user.full_name = full_name
        changed = True
    if changed:
        await session.flush()

    return user
