from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

from brandflow.exceptions import DeliveryError
from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def deliver_webhook(
    url: str,
    payload: dict[str, Any],
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> httpx.Response:
    """
    POST a JSON payload to the workflow engine.

    Raises:
        DeliveryError: Transport error, timeout or a non-2xx answer.
    """
    timeout = timeout or settings.OUTBOUND_WEBHOOK_TIMEOUT_SECONDS
    log = logger.bind(url=url, timeout=timeout)

    try:
        if client is not None:
            response = await client.post(url, json=payload, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned_client:
                response = await owned_client.post(url, json=payload)
    except httpx.TimeoutException:
        log.warning("Outbound webhook timed out")
        raise DeliveryError(f"Webhook timed out after {timeout:g}s")
    except httpx.HTTPError as e:
        log.warning("Outbound webhook transport error", error=str(e))
        raise DeliveryError(f"Webhook delivery failed: {e}")

    if not response.is_success:
        log.warning(
            "Outbound webhook rejected",
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise DeliveryError(
            f"Webhook returned {response.status_code} {response.reason_phrase}".strip()
        )

    log.info("Outbound webhook delivered", status_code=response.status_code)
    return response


async def notify_best_effort(url: str, payload: dict[str, Any]) -> bool:
    """Fire-and-forget notification: failures are logged, never raised."""
    try:
        await deliver_webhook(url, payload)
    except DeliveryError as e:
        logger.warning("Notification webhook failed", url=url, error=e.message)
        return False
    return True
