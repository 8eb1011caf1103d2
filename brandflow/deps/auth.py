from typing import Annotated, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from brandflow.deps.db import SessionDep
from brandflow.factories import auth_provider_factory
from brandflow.models import User
from brandflow.services.user_service import get_or_create_user

logger = structlog.stdlib.get_logger(__name__)

security = HTTPBearer(auto_error=False)


def _credentials_exception(message: str):
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: SessionDep,
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(security)
    ] = None,
) -> User:
    if not credentials or not credentials.credentials:
        raise _credentials_exception("No credentials provided")

    try:
        token_user = await auth_provider_factory().validate_token(
            credentials.credentials
        )
    except jwt.ExpiredSignatureError:
        raise _credentials_exception("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid access token", error=str(e))
        raise _credentials_exception("Invalid JWT token")

    user = await get_or_create_user(
        session,
        token_user.id,
        email=token_user.email,
        full_name=token_user.full_name,
    )
    # The user row may have just been created
    await session.commit()

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_current_admin(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return current_user


CurrentAdmin = Annotated[User, Depends(get_current_admin)]
