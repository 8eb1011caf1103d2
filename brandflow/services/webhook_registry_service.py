from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.exceptions import ConfigurationError, ConflictError, NotFoundError
from brandflow.models import WebhookConfiguration, WorkflowKind

logger = structlog.stdlib.get_logger(__name__)

# Fields an admin may change. Everything else is copied from the previous version.
EDITABLE_FIELDS = (
    "inbound_endpoint",
    "outbound_webhook_url",
    "is_active",
    "field_mappings",
    "expected_payload",
    "documentation",
)


def default_inbound_endpoint(kind: WorkflowKind) -> str:
    return f"/api/receivers/{kind.value}"


async def get_current_configuration(
    session: AsyncSession, kind: WorkflowKind
) -> Optional[WebhookConfiguration]:
    result = await session.execute(
        select(WebhookConfiguration).where(
            WebhookConfiguration.workflow_kind == kind,
            WebhookConfiguration.is_current.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def resolve_active_configuration(
    session: AsyncSession, kind: WorkflowKind
) -> WebhookConfiguration:
    """
    The snapshot a new run is pinned to.

    Raises:
        ConfigurationError: No current entry, the entry is inactive or it has
            no outbound URL.
    """
    configuration = await get_current_configuration(session, kind)
    if (
        configuration is None
        or not configuration.is_active
        or not configuration.outbound_webhook_url
    ):
        logger.error(
            "Webhook not configured",
            workflow_kind=kind.value,
            configuration_id=str(configuration.id) if configuration else None,
        )
        raise ConfigurationError("webhook not configured")
    return configuration


async def list_current_configurations(
    session: AsyncSession,
) -> list[WebhookConfiguration]:
    result = await session.execute(
        select(WebhookConfiguration)
        .where(WebhookConfiguration.is_current.is_(True))
        .order_by(WebhookConfiguration.workflow_kind)
    )
    return list(result.scalars().all())


async def list_configuration_versions(
    session: AsyncSession, kind: WorkflowKind
) -> list[WebhookConfiguration]:
    result = await session.execute(
        select(WebhookConfiguration)
        .where(WebhookConfiguration.workflow_kind == kind)
        .order_by(WebhookConfiguration.version.desc())
    )
    return list(result.scalars().all())


async def create_configuration(
    session: AsyncSession,
    kind: WorkflowKind,
    data: dict[str, Any],
    created_by_id: Optional[UUID] = None,
) -> WebhookConfiguration:
    if await get_current_configuration(session, kind) is not None:
        raise ConflictError(f"A webhook configuration for {kind.value} already exists")

    configuration = WebhookConfiguration(
        workflow_kind=kind,
        version=1,
        is_current=True,
        inbound_endpoint=data.get("inbound_endpoint") or default_inbound_endpoint(kind),
        outbound_webhook_url=data.get("outbound_webhook_url"),
        is_active=data.get("is_active", True),
        field_mappings=data.get("field_mappings") or {},
        expected_payload=data.get("expected_payload"),
        documentation=data.get("documentation"),
        created_by_id=created_by_id,
    )
    session.add(configuration)
    await session.flush()

    logger.info(
        "Created webhook configuration",
        workflow_kind=kind.value,
        configuration_id=str(configuration.id),
    )
    return configuration


async def update_configuration(
    session: AsyncSession,
    kind: WorkflowKind,
    changes: dict[str, Any],
    created_by_id: Optional[UUID] = None,
) -> WebhookConfiguration:
    """
    Append a new version of the registry entry and make it current.

    Previous versions stay untouched, so sessions pinned to them keep their
    field mappings until they finish.
    """
    current = await get_current_configuration(session, kind)
    if current is None:
        raise NotFoundError(f"No webhook configuration for {kind.value}")

    max_version = await session.scalar(
        select(func.max(WebhookConfiguration.version)).where(
            WebhookConfiguration.workflow_kind == kind
        )
    )

    values = {field: getattr(current, field) for field in EDITABLE_FIELDS}
    values.update({k: v for k, v in changes.items() if k in EDITABLE_FIELDS})

    current.is_current = False
    await session.flush()

    new_version = WebhookConfiguration(
        workflow_kind=kind,
        version=(max_version or 0) + 1,
        is_current=True,
        created_by_id=created_by_id,
        **values,
    )
    session.add(new_version)
    await session.flush()

    logger.info(
        "Created webhook configuration version",
        workflow_kind=kind.value,
        version=new_version.version,
        previous_configuration_id=str(current.id),
    )
    return new_version
