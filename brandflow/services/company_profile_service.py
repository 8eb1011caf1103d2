from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.models import CompanyProfile

logger = structlog.stdlib.get_logger(__name__)

# Columns the owner edits. The narrative and mascot columns belong to the workflows.
PROFILE_FIELDS = (
    "company_name",
    "website_url",
    "social_urls",
    "industry",
    "description",
    "voice_tone",
    "brand_guidelines",
)


async def get_profile(
    session: AsyncSession, user_id: UUID
) -> Optional[CompanyProfile]:
    result = await session.execute(
        select(CompanyProfile)
        .where(CompanyProfile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_profile(
    session: AsyncSession, user_id: UUID, values: dict[str, Any]
) -> CompanyProfile:
    """Create the user's profile or update the given fields on it. None values are skipped."""
    changes = {k: v for k, v in values.items() if k in PROFILE_FIELDS and v is not None}

    profile = await get_profile(session, user_id)
    if profile is None:
        profile = CompanyProfile(user_id=user_id, **changes)
        session.add(profile)
        await session.flush()
        logger.info("Created company profile", company_profile_id=str(profile.id))
        return profile

    for key, value in changes.items():
        setattr(profile, key, value)
    await session.flush()
    return profile
