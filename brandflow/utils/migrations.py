"""Run the Alembic migrations from inside the application's event loop."""

from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


async def run_migrations():
    """Upgrade the database to head.

    The connection is handed to Alembic through `config.attributes`, so the
    upgrade runs on the current loop instead of starting a new one.
    """
    engine = create_async_engine(
        str(settings.DATABASE_URL),
        poolclass=pool.NullPool,
        future=True,
    )

    def run_upgrade(connection, cfg):
        cfg.attributes["connection"] = connection
        command.upgrade(cfg, "head")

    alembic_cfg = Config(str(ALEMBIC_INI))

    logger.info("Running database migrations")
    async with engine.begin() as conn:
        await conn.run_sync(run_upgrade, alembic_cfg)

    await engine.dispose()
