import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from brandflow.exceptions import DeliveryError
from brandflow.services.outbound_webhook_service import (
    deliver_webhook,
    notify_best_effort,
)

URL = "https://engine.example.com/webhook"


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_delivers_json_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    async with _client(handler) as client:
        response = await deliver_webhook(URL, {"session_id": "abc"}, client=client)

    assert response.status_code == 202
    assert received[0].method == "POST"
    assert received[0].headers["content-type"] == "application/json"
    assert json.loads(received[0].content) == {"session_id": "abc"}


async def test_non_2xx_answer_is_a_delivery_error():
    async with _client(lambda request: httpx.Response(500)) as client:
        with pytest.raises(DeliveryError) as exc_info:
            await deliver_webhook(URL, {}, client=client)

    assert exc_info.value.message == "Webhook returned 500 Internal Server Error"
    assert exc_info.value.status_code == 502


async def test_timeout_is_a_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(DeliveryError) as exc_info:
            await deliver_webhook(URL, {}, timeout=2, client=client)

    assert exc_info.value.message == "Webhook timed out after 2s"


async def test_connection_error_is_a_delivery_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(DeliveryError) as exc_info:
            await deliver_webhook(URL, {}, client=client)

    assert exc_info.value.message.startswith("Webhook delivery failed:")
    assert "connection refused" in exc_info.value.message


async def test_notify_best_effort_swallows_delivery_errors():
    failing = AsyncMock(side_effect=DeliveryError("Webhook returned 404 Not Found"))
    with patch(
        "brandflow.services.outbound_webhook_service.deliver_webhook", failing
    ):
        assert await notify_best_effort(URL, {"posts": []}) is False

    failing.assert_awaited_once_with(URL, {"posts": []})


async def test_notify_best_effort_reports_success():
    with patch(
        "brandflow.services.outbound_webhook_service.deliver_webhook", AsyncMock()
    ):
        assert await notify_best_effort(URL, {}) is True
