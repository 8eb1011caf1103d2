"""
Administrator endpoints for the webhook registry and receiver API keys.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from brandflow.deps.auth import CurrentAdmin
from brandflow.deps.db import SessionDep
from brandflow.models import WorkflowKind
from brandflow.services import api_key_service, webhook_registry_service
from brandflow.services.crud_helpers import ListResult, to_list_result, to_read

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# Webhook registry


class WebhookConfigurationRead(BaseModel):
    id: UUID
    workflow_kind: WorkflowKind
    version: int
    is_current: bool
    inbound_endpoint: str
    outbound_webhook_url: Optional[str] = None
    is_active: bool
    field_mappings: dict
    expected_payload: Optional[dict] = None
    documentation: Optional[str] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime


class WebhookConfigurationCreate(BaseModel):
    workflow_kind: WorkflowKind
    inbound_endpoint: Optional[str] = None
    outbound_webhook_url: Optional[str] = None
    is_active: bool = True
    field_mappings: dict[str, str] = Field(default_factory=dict)
    expected_payload: Optional[dict] = None
    documentation: Optional[str] = None


class WebhookConfigurationUpdate(BaseModel):
    inbound_endpoint: Optional[str] = None
    outbound_webhook_url: Optional[str] = None
    is_active: Optional[bool] = None
    field_mappings: Optional[dict[str, str]] = None
    expected_payload: Optional[dict] = None
    documentation: Optional[str] = None


@router.get(
    "/webhook-configurations", response_model=ListResult[WebhookConfigurationRead]
)
async def list_webhook_configurations(admin: CurrentAdmin, session: SessionDep):
    configurations = await webhook_registry_service.list_current_configurations(
        session
    )
    return to_list_result(WebhookConfigurationRead, configurations)


@router.post(
    "/webhook-configurations",
    response_model=WebhookConfigurationRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_webhook_configuration(
    data: WebhookConfigurationCreate, admin: CurrentAdmin, session: SessionDep
):
    configuration = await webhook_registry_service.create_configuration(
        session,
        data.workflow_kind,
        data.model_dump(exclude={"workflow_kind"}),
        created_by_id=admin.id,
    )
    await session.commit()
    await session.refresh(configuration)
    return to_read(WebhookConfigurationRead, configuration)


@router.get(
    "/webhook-configurations/{kind}/versions",
    response_model=ListResult[WebhookConfigurationRead],
)
async def list_webhook_configuration_versions(
    kind: WorkflowKind, admin: CurrentAdmin, session: SessionDep
):
    versions = await webhook_registry_service.list_configuration_versions(
        session, kind
    )
    return to_list_result(WebhookConfigurationRead, versions)


@router.patch(
    "/webhook-configurations/{kind}", response_model=WebhookConfigurationRead
)
async def update_webhook_configuration(
    kind: WorkflowKind,
    data: WebhookConfigurationUpdate,
    admin: CurrentAdmin,
    session: SessionDep,
):
    """Edits never touch the current row; they append a new version."""
    configuration = await webhook_registry_service.update_configuration(
        session, kind, data.model_dump(exclude_unset=True), created_by_id=admin.id
    )
    await session.commit()
    await session.refresh(configuration)
    return to_read(WebhookConfigurationRead, configuration)


# API keys


class ApiKeyRead(BaseModel):
    id: UUID
    key_name: str
    prefix: str
    workflow_kind: WorkflowKind
    is_active: bool
    can_read: bool
    can_write: bool
    can_admin: bool
    last_used_at: Optional[datetime] = None
    created_by_id: Optional[UUID] = None
    created_at: datetime


class ApiKeyCreate(BaseModel):
    key_name: str = Field(min_length=1)
    workflow_kind: WorkflowKind
    can_read: bool = True
    can_write: bool = True
    can_admin: bool = False


class ApiKeyCreated(ApiKeyRead):
    api_key: str
    """Plain key, shown once"""


@router.get("/api-keys", response_model=ListResult[ApiKeyRead])
async def list_api_keys(admin: CurrentAdmin, session: SessionDep):
    api_keys = await api_key_service.list_api_keys(session)
    return to_list_result(ApiKeyRead, api_keys)


@router.post(
    "/api-keys", response_model=ApiKeyCreated, status_code=status.HTTP_201_CREATED
)
async def create_api_key(data: ApiKeyCreate, admin: CurrentAdmin, session: SessionDep):
    api_key, plain_key = await api_key_service.create_api_key(
        session,
        key_name=data.key_name,
        workflow_kind=data.workflow_kind,
        created_by_id=admin.id,
        can_read=data.can_read,
        can_write=data.can_write,
        can_admin=data.can_admin,
    )
    await session.commit()
    await session.refresh(api_key)
    return ApiKeyCreated(
        **to_read(ApiKeyRead, api_key).model_dump(), api_key=plain_key
    )


@router.post("/api-keys/{api_key_id}/deactivate", response_model=ApiKeyRead)
async def deactivate_api_key(
    api_key_id: UUID, admin: CurrentAdmin, session: SessionDep
):
    api_key = await api_key_service.deactivate_api_key(session, api_key_id)
    await session.commit()
    await session.refresh(api_key)
    return to_read(ApiKeyRead, api_key)
