import asyncio
from uuid import uuid4

import httpx
import pytest

from brandflow.client.poller import SessionPoller, poll_session

SESSION_ID = str(uuid4())


def _engine(responses):
    """
    Mock API answering reads with `responses` in order, repeating the last one.

    Entries are a status string, an HTTP error code, or an exception class.
    """
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        answer = responses[min(len(calls), len(responses)) - 1]
        if isinstance(answer, type) and issubclass(answer, Exception):
            raise answer("connection refused", request=request)
        if isinstance(answer, int):
            return httpx.Response(answer, json={"error": "unavailable"})
        return httpx.Response(200, json={"id": SESSION_ID, "status": answer})

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://brandflow.test"
    )
    return client, calls


async def test_stops_after_terminal_status():
    client, calls = _engine(["processing", "processing", "completed"])
    updates = []

    async with client:
        poller = SessionPoller(
            client, SESSION_ID, interval=0.01, on_update=updates.append
        )
        final_state = await poller.wait()

    assert final_state["status"] == "completed"
    assert len(calls) == 3
    assert calls[0].url.path == f"/api/workflow-sessions/{SESSION_ID}"
    assert [u["status"] for u in updates] == ["processing", "processing", "completed"]
    assert not poller.running


async def test_transient_failures_do_not_abort_polling():
    client, calls = _engine([503, httpx.ConnectError, "processing", "error"])

    async with client:
        poller = SessionPoller(
            client, SESSION_ID, interval=0.01, backoff=2, max_interval=0.02
        )
        final_state = await poller.wait()

    assert final_state["status"] == "error"
    assert poller.failures == 2
    assert poller.reads == 2
    assert len(calls) == 4


async def test_client_errors_abort_polling():
    client, calls = _engine([404])

    async with client:
        poller = SessionPoller(client, SESSION_ID, interval=0.01)
        with pytest.raises(httpx.HTTPStatusError):
            await poller.wait()

    assert len(calls) == 1


async def test_no_reads_after_stop():
    client, calls = _engine(["processing"])

    async with client:
        poller = SessionPoller(client, SESSION_ID, interval=0.01)
        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        reads_at_stop = len(calls)
        await asyncio.sleep(0.05)

    assert reads_at_stop >= 1
    assert len(calls) == reads_at_stop
    assert not poller.running

    # Stopping twice is harmless
    await poller.stop()


async def test_async_update_callback_is_awaited():
    client, _ = _engine(["completed"])
    seen = []

    async def on_update(state):
        seen.append(state["status"])

    async with client:
        final_state = await poll_session(
            client, SESSION_ID, interval=0.01, on_update=on_update
        )

    assert final_state["status"] == "completed"
    assert seen == ["completed"]


def test_invalid_configuration():
    client = httpx.AsyncClient()
    with pytest.raises(ValueError):
        SessionPoller(client, SESSION_ID, interval=0)
    with pytest.raises(ValueError):
        SessionPoller(client, SESSION_ID, backoff=0.5)


async def test_start_twice_is_an_error():
    client, _ = _engine(["processing"])

    async with client:
        poller = SessionPoller(client, SESSION_ID, interval=0.01)
        poller.start()
        with pytest.raises(RuntimeError):
            poller.start()
        await poller.stop()
