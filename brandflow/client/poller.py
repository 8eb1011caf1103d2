"""
Polling client for workflow sessions.

Triggering a workflow returns a session id right away; the result arrives
later through the engine's callback. `SessionPoller` re-reads the session
until it reaches a terminal status:

    async with httpx.AsyncClient(base_url=api_url, headers=auth) as client:
        poller = SessionPoller(client, session_id, on_update=print)
        poller.start()
        final_state = await poller.wait()
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import httpx
import structlog

logger = structlog.stdlib.get_logger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "error"})

# Client errors that will not go away by asking again
_RETRYABLE_CLIENT_ERRORS = frozenset({408, 429})

OnUpdate = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


class SessionPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        session_id: Union[UUID, str],
        interval: float = 3.0,
        backoff: float = 1.0,
        max_interval: float = 30.0,
        on_update: Optional[OnUpdate] = None,
        path_template: str = "/api/workflow-sessions/{session_id}",
    ):
        """
        Args:
            interval: Seconds between reads while the session is processing.
            backoff: Factor applied to the delay after each failed read.
                1.0 keeps a fixed interval.
            max_interval: Upper bound for the delay when backing off.
            on_update: Called with every session state read, sync or async.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        if backoff < 1:
            raise ValueError("backoff must be at least 1")

        self.client = client
        self.session_id = str(session_id)
        self.interval = interval
        self.backoff = backoff
        self.max_interval = max(max_interval, interval)
        self.on_update = on_update
        self.path = path_template.format(session_id=self.session_id)

        self.reads = 0
        self.failures = 0
        self.last_state: Optional[dict[str, Any]] = None
        self._task: Optional[asyncio.Task] = None
        self._log = logger.bind(session_id=self.session_id)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("Poller already started")
        self._task = asyncio.create_task(
            self._run(), name=f"session-poller-{self.session_id}"
        )
        return self._task

    async def wait(self) -> dict[str, Any]:
        """Final session state. Raises CancelledError if the poller was stopped."""
        if self._task is None:
            self.start()
        return await self._task

    async def stop(self) -> None:
        """Cancel polling. No read is issued after this returns."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._log.info("Session poller stopped", reads=self.reads)

    async def _read(self) -> dict[str, Any]:
        response = await self.client.get(self.path)
        response.raise_for_status()
        return response.json()

    async def _notify(self, state: dict[str, Any]) -> None:
        if self.on_update is None:
            return
        result = self.on_update(state)
        if inspect.isawaitable(result):
            await result

    async def _run(self) -> dict[str, Any]:
        delay = self.interval
        while True:
            try:
                state = await self._read()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if (
                    400 <= status_code < 500
                    and status_code not in _RETRYABLE_CLIENT_ERRORS
                ):
                    self._log.error("Session poll rejected", status_code=status_code)
                    raise
                self.failures += 1
                delay = min(delay * self.backoff, self.max_interval)
                self._log.warning(
                    "Session poll failed", status_code=status_code, retry_in=delay
                )
            except (httpx.TransportError, ValueError) as e:
                self.failures += 1
                delay = min(delay * self.backoff, self.max_interval)
                self._log.warning("Session poll failed", error=str(e), retry_in=delay)
            else:
                self.reads += 1
                self.last_state = state
                delay = self.interval
                await self._notify(state)
                if state.get("status") in TERMINAL_STATUSES:
                    self._log.info(
                        "Session finished", status=state["status"], reads=self.reads
                    )
                    return state

            await asyncio.sleep(delay)


async def poll_session(
    client: httpx.AsyncClient, session_id: Union[UUID, str], **kwargs: Any
) -> dict[str, Any]:
    """Poll until the session finishes and return its final state."""
    poller = SessionPoller(client, session_id, **kwargs)
    try:
        return await poller.wait()
    finally:
        await poller.stop()
