from typing import Optional

import pytest
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.deps.auth import get_current_user
from brandflow.deps.db import get_async_db
from brandflow.main import app
from brandflow.models import User
from brandflow.services.user_service import get_or_create_user


class UserClient(AsyncClient):
    user: User


def _client_args(session):
    async def expunge(response):
        session.expunge_all()

    return {
        "transport": ASGITransport(app=app),
        "base_url": "http://localhost",
        "event_hooks": {"response": [expunge]},
    }


async def _get_test_user(session: AsyncSession, token: str) -> User:
    user = await get_or_create_user(
        session, token, email=f"{token}@example.com", full_name=token
    )
    if token.startswith("test_admin") and not user.is_admin:
        user.is_admin = True
        await session.flush()
    return user


async def mock_get_current_user(
    session=Depends(get_async_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(
        HTTPBearer(auto_error=False)
    ),
) -> User:
    """Maps `test_*` bearer tokens to users, falls back to JWT validation otherwise."""

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No credentials provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    if token.startswith("test_"):
        return await _get_test_user(session, token)

    return await get_current_user(session, credentials)


@pytest.fixture(scope="function")
async def dependency_overrides(session: AsyncSession):
    async def override_get_db():
        yield session

    app.dependency_overrides[get_async_db] = override_get_db
    app.dependency_overrides[get_current_user] = mock_get_current_user
    yield
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(session: AsyncSession, dependency_overrides):
    """Client without credentials, as used by the workflow engine."""

    async with AsyncClient(**_client_args(session)) as ac:
        yield ac


async def _user_client(session: AsyncSession, token: str):
    ac = UserClient(**_client_args(session))
    ac.user = await _get_test_user(session, token)
    ac.headers["Authorization"] = f"Bearer {token}"
    return ac


@pytest.fixture(scope="function")
async def client_a(session, dependency_overrides):
    async with await _user_client(session, "test_user_a") as ac:
        yield ac


@pytest.fixture(scope="function")
async def client_b(session, dependency_overrides):
    async with await _user_client(session, "test_user_b") as ac:
        yield ac


@pytest.fixture(scope="function")
async def admin_client(session, dependency_overrides):
    async with await _user_client(session, "test_admin") as ac:
        yield ac
