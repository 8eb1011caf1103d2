from unittest.mock import patch

from sqlalchemy import select

from brandflow.models import SubscriptionHistory
from brandflow.settings import settings
from brandflow.tests.fixtures_clients import UserClient


async def test_demo_checkout_session(client_a: UserClient, session):
    with patch.object(settings, "STRIPE_SECRET_KEY", ""):
        response = await client_a.post(
            "/api/billing/checkout-session",
            json={"planType": "multi", "postExpansions": 2},
            headers={"origin": "https://app.example.com"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["amount"] == 15000
    assert body["planType"] == "multi"
    assert body["postExpansions"] == 2
    assert body["url"].startswith(
        "https://app.example.com/payment-success?session_id=demo_session_"
    )

    history = (await session.execute(select(SubscriptionHistory))).scalar_one()
    assert history.user_id == client_a.user.id
    assert history.from_plan == "free"
    assert history.to_plan == "multi"
    assert history.amount == 15000


async def test_unknown_plan_is_rejected(client_a: UserClient):
    response = await client_a.post(
        "/api/billing/checkout-session", json={"planType": "enterprise"}
    )
    assert response.status_code == 400
    assert "planType" in response.json()["error"]
