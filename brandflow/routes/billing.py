import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from brandflow.deps.auth import CurrentUser
from brandflow.deps.db import SessionDep
from brandflow.services import stripe_service
from brandflow.services.stripe_service import PlanType

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan_type: PlanType
    post_expansions: int = Field(default=0, ge=0, le=100)


@router.post("/checkout-session")
async def create_checkout_session(
    data: CheckoutRequest,
    request: Request,
    current_user: CurrentUser,
    session: SessionDep,
):
    checkout = await stripe_service.create_checkout_session(
        session,
        current_user,
        data.plan_type,
        post_expansions=data.post_expansions,
        origin=request.headers.get("origin"),
    )
    await session.commit()
    return checkout
