import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from brandflow.models import Base
from brandflow.settings import settings


def get_test_database_url():
    """
    In-memory SQLite by default. Point TEST_DATABASE_URL at a PostgreSQL
    database to run the suite against the production dialect.
    """
    return settings.TEST_DATABASE_URL


def _create_test_engine(url: str):
    if url.startswith("sqlite"):
        # Every connection has to see the same in-memory database
        return create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, poolclass=NullPool)


@pytest.fixture(scope="function")
async def db_engine():
    """
    Create an async engine and a fresh schema.
    """
    engine = _create_test_engine(get_test_database_url())

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
async def session(db_engine):
    """
    Create an async session with a rollback after the test.

    Commits made by the code under test only end the session's own
    transaction; the outer connection transaction is rolled back at the end.
    """
    async with db_engine.connect() as connection:
        async with connection.begin():
            session = async_sessionmaker(
                bind=connection,
                expire_on_commit=False,
                class_=AsyncSession,
            )()

            try:
                yield session
            finally:
                await session.rollback()
                await session.close()
