from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.exceptions import NotFoundError, PayloadValidationError
from brandflow.services.company_profile_service import get_profile, upsert_profile
from brandflow.services.crud_helpers import to_read

router = APIRouter(prefix="/company-profile", tags=["Company Profile"])


class CompanyProfileRead(BaseModel):
    id: UUID
    user_id: UUID
    company_name: str
    website_url: Optional[str] = None
    social_urls: Optional[dict] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    voice_tone: Optional[str] = None
    brand_guidelines: Optional[str] = None
    business_overview: Optional[str] = None
    value_proposition: Optional[str] = None
    ideal_customer_profile: Optional[str] = None
    brand_voice_analysis: Optional[dict] = None
    mascot_data: Optional[dict] = None
    mascot_image_path: Optional[str] = None
    mascot_personality: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CompanyProfileUpdate(BaseModel):
    company_name: Optional[str] = None
    website_url: Optional[str] = None
    social_urls: Optional[dict[str, str]] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    voice_tone: Optional[str] = None
    brand_guidelines: Optional[str] = None


@router.get("", response_model=CompanyProfileRead)
async def get_company_profile(current_user: CurrentUser, session: SessionDep):
    profile = await get_profile(session, current_user.id)
    if profile is None:
        raise NotFoundError("Company profile not found")
    return to_read(CompanyProfileRead, profile)


@router.put("", response_model=CompanyProfileRead)
async def update_company_profile(
    data: CompanyProfileUpdate, current_user: CurrentUser, session: SessionDep
):
    """Create or update the current user's profile."""
    if not data.company_name and await get_profile(session, current_user.id) is None:
        raise PayloadValidationError("company_name is required")

    profile = await upsert_profile(
        session, current_user.id, data.model_dump(exclude_unset=True)
    )
    await session.commit()
    await session.refresh(profile)
    return to_read(CompanyProfileRead, profile)
