import time
from enum import Enum
from typing import Optional

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.models import SubscriptionHistory, User
from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)


class PlanType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    ALL = "all"


# Cents
BASE_PRICES = {
    PlanType.SINGLE: 3900,
    PlanType.MULTI: 10000,
    PlanType.ALL: 29900,
}

PLAN_NAMES = {
    PlanType.SINGLE: "Single platform",
    PlanType.MULTI: "Multi platform",
    PlanType.ALL: "All platforms",
}


def calculate_amount(plan: PlanType, post_expansions: int) -> int:
    """Each expansion pack (10 extra posts) costs 25% of the base price, rounded down."""
    base_price = BASE_PRICES[plan]
    return base_price + (base_price * 25 // 100) * post_expansions


async def get_current_plan(session: AsyncSession, user_id) -> str:
    result = await session.execute(
        select(SubscriptionHistory.to_plan)
        .where(SubscriptionHistory.user_id == user_id)
        .order_by(SubscriptionHistory.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none() or "free"


def _create_stripe_checkout(
    user: User, plan: PlanType, post_expansions: int, amount: int
) -> stripe.checkout.Session:
    product_data = {"name": PLAN_NAMES[plan]}
    if post_expansions:
        product_data["description"] = f"Includes {post_expansions} post expansion(s)"

    return stripe.checkout.Session.create(
        api_key=settings.STRIPE_SECRET_KEY,
        mode="payment",
        customer_email=user.email,
        client_reference_id=str(user.id),
        line_items=[
            {
                "price_data": {
                    "currency": settings.STRIPE_CURRENCY,
                    "unit_amount": amount,
                    "product_data": product_data,
                },
                "quantity": 1,
            }
        ],
        success_url=settings.CHECKOUT_SUCCESS_URL + "?session_id={CHECKOUT_SESSION_ID}",
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        metadata={
            "user_id": str(user.id),
            "plan_type": plan.value,
            "post_expansions": str(post_expansions),
        },
    )


async def create_checkout_session(
    session: AsyncSession,
    user: User,
    plan: PlanType,
    post_expansions: int = 0,
    origin: Optional[str] = None,
) -> dict:
    """
    Start a checkout for a plan and record the upgrade request.

    Without a Stripe key a demo URL pointing at the success page is returned
    so the rest of the flow can be exercised.
    """
    amount = calculate_amount(plan, post_expansions)
    from_plan = await get_current_plan(session, user.id)

    if settings.STRIPE_SECRET_KEY:
        checkout = _create_stripe_checkout(user, plan, post_expansions, amount)
        checkout_id, url = checkout.id, checkout.url
        message = "Checkout session created"
    else:
        checkout_id = f"demo_session_{int(time.time() * 1000)}"
        base = (origin or settings.CHECKOUT_SUCCESS_URL.rsplit("/", 1)[0]).rstrip("/")
        url = f"{base}/payment-success?session_id={checkout_id}"
        message = "Checkout session created (demo mode, Stripe is not configured)"

    session.add(
        SubscriptionHistory(
            user_id=user.id,
            from_plan=from_plan,
            to_plan=plan.value,
            change_reason="upgrade_request",
            amount=amount,
            post_expansions=post_expansions,
            stripe_checkout_session_id=checkout_id,
        )
    )
    await session.flush()

    logger.info(
        "Checkout session created",
        user_id=str(user.id),
        plan_type=plan.value,
        amount=amount,
        demo=not settings.STRIPE_SECRET_KEY,
    )
    return {
        "url": url,
        "amount": amount,
        "planType": plan.value,
        "postExpansions": post_expansions,
        "message": message,
    }
