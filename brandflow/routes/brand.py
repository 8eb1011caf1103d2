from fastapi import APIRouter

from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.services.company_profile_service import get_profile
from brandflow.services.content_generation_service import (
    BrandAnalysisRequest,
    analyze_brand,
)

router = APIRouter(prefix="/brand", tags=["Brand"])


@router.post("/analyze")
async def analyze(
    request: BrandAnalysisRequest, current_user: CurrentUser, session: SessionDep
):
    profile = await get_profile(session, current_user.id)
    analysis = await analyze_brand(request, profile)
    return {"success": True, "analysis": analysis}
