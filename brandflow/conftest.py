from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from brandflow.tests.fixtures_clients import *  # noqa
from brandflow.tests.fixtures_db import *  # noqa
from brandflow.tests.fixtures_workflows import *  # noqa


# Keep the workflow services from calling the engine during tests
@pytest.fixture(autouse=True)
def mock_outbound_webhooks():
    """Replace outbound webhook calls made by the trigger and receiver services."""

    with (
        patch(
            "brandflow.services.workflow_trigger_service.deliver_webhook",
            new_callable=AsyncMock,
        ) as deliver,
        patch(
            "brandflow.services.workflow_receiver_service.notify_best_effort",
            new_callable=AsyncMock,
            return_value=True,
        ) as notify,
    ):
        yield SimpleNamespace(deliver=deliver, notify=notify)
