from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.models import WebhookConfiguration, WorkflowKind
from brandflow.services.api_key_service import create_api_key
from brandflow.services.webhook_registry_service import create_configuration

ENGINE_URL = "https://engine.example.com/webhook"


@pytest.fixture
def configure_workflow(session: AsyncSession):
    """Register a webhook configuration for a workflow kind."""

    async def _configure(
        kind: WorkflowKind,
        field_mappings: Optional[dict[str, str]] = None,
        is_active: bool = True,
        outbound_webhook_url: Optional[str] = None,
    ) -> WebhookConfiguration:
        configuration = await create_configuration(
            session,
            kind,
            {
                "outbound_webhook_url": outbound_webhook_url
                or f"{ENGINE_URL}/{kind.value}",
                "is_active": is_active,
                "field_mappings": field_mappings or {},
            },
        )
        await session.commit()
        return configuration

    return _configure


@pytest.fixture
def make_api_key(session: AsyncSession):
    """Create an API key and return the plain key."""

    async def _make(kind: WorkflowKind, **kwargs: Any) -> str:
        _, plain_key = await create_api_key(
            session, key_name=f"{kind.value} test key", workflow_kind=kind, **kwargs
        )
        await session.commit()
        return plain_key

    return _make
