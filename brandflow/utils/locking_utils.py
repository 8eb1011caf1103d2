import hashlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

structured_logger = structlog.stdlib.get_logger(__name__)


def lock_key_for(name: str) -> int:
    """
    Deterministic 64-bit advisory lock key for a job name.

    The SHA-256 digest is truncated to 8 bytes and folded into PostgreSQL's
    signed BIGINT range [0, 2^63-1].
    """
    truncated_digest = hashlib.sha256(name.encode("utf-8")).digest()[:8]
    return int.from_bytes(truncated_digest, "big") % (2**63)


@asynccontextmanager
async def advisory_lock(session: AsyncSession, key: int) -> AsyncGenerator[bool, None]:
    """
    Try to take a PostgreSQL session-level advisory lock without blocking.

    Other dialects have no advisory locks and run a single worker, so the
    lock is reported as acquired.

    Yields:
        bool: True if the lock was acquired, False otherwise.
    """
    if not 0 <= key <= (2**63 - 1):
        structured_logger.error("Lock key out of signed 64-bit range.", key=key)
        raise ValueError(
            "Lock key must be a valid signed 64-bit integer (0 to 2^63-1)."
        )

    conn: AsyncConnection = await session.connection()
    if conn.dialect.name != "postgresql":
        yield True
        return

    lock_acquired = False
    try:
        result = await conn.execute(
            text("SELECT pg_try_advisory_lock(:key)"), {"key": key}
        )
        lock_acquired = bool(result.scalar())

        if not lock_acquired:
            structured_logger.info(
                "Lock already held by another worker. Skipping.", lock_key=key
            )
        else:
            structured_logger.debug("Advisory lock acquired.", lock_key=key)
        yield lock_acquired

    finally:
        if lock_acquired:
            if conn.closed:
                structured_logger.debug(
                    "Connection already closed, lock will be released automatically.",
                    lock_key=key,
                )
            else:
                try:
                    await conn.execute(
                        text("SELECT pg_advisory_unlock(:key)"), {"key": key}
                    )
                    structured_logger.debug("Advisory lock released.", lock_key=key)
                except Exception as exc:
                    structured_logger.critical(
                        "Failed to release advisory lock.",
                        lock_key=key,
                        error=str(exc),
                    )
