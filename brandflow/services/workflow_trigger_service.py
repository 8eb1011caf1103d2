from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.exceptions import DeliveryError, NotFoundError
from brandflow.models import (
    CompanyProfile,
    User,
    WebhookConfiguration,
    WorkflowKind,
    WorkflowLogEvent,
    WorkflowSession,
)
from brandflow.services.company_profile_service import get_profile, upsert_profile
from brandflow.services.outbound_webhook_service import deliver_webhook, utc_timestamp
from brandflow.services.webhook_registry_service import resolve_active_configuration
from brandflow.services.workflow_payloads import (
    BrandVoiceAnalysisParams,
    TriggerParams,
    validate_trigger_params,
)
from brandflow.services.workflow_session_service import (
    add_log,
    error_if_still_processing,
    upsert_processing_session,
)
from brandflow.settings import settings

logger = structlog.stdlib.get_logger(__name__)

WORKFLOW_LABELS = {
    WorkflowKind.BRAND_VOICE_ANALYSIS: "Brand voice analysis",
    WorkflowKind.MASCOT_GENERATION: "Mascot generation",
    WorkflowKind.POSTS_COLLECTION: "Posts collection",
    WorkflowKind.POST_GENERATION: "Post generation",
}


async def _prepare_parent(
    session: AsyncSession, user: User, kind: WorkflowKind, params: TriggerParams
) -> Optional[CompanyProfile]:
    if isinstance(params, BrandVoiceAnalysisParams):
        social_urls = dict(params.social_urls)
        if params.linkedin_company:
            social_urls["linkedin_company"] = params.linkedin_company
        if params.linkedin_personal:
            social_urls["linkedin_personal"] = params.linkedin_personal
        return await upsert_profile(
            session,
            user.id,
            {
                "company_name": params.company_name,
                "website_url": params.website_url,
                "industry": params.industry,
                "description": params.description,
                "social_urls": social_urls or None,
            },
        )

    if kind == WorkflowKind.MASCOT_GENERATION:
        profile = await get_profile(session, user.id)
        if profile is None:
            raise NotFoundError("Company profile not found")
        return profile

    if kind == WorkflowKind.POST_GENERATION:
        return await get_profile(session, user.id)

    return None


def build_outbound_payload(
    workflow_session: WorkflowSession,
    configuration: WebhookConfiguration,
    company_profile_id: Optional[UUID],
) -> dict[str, Any]:
    return {
        "session_id": str(workflow_session.id),
        "user_id": str(workflow_session.user_id),
        "company_profile_id": str(company_profile_id) if company_profile_id else None,
        "workflow_type": workflow_session.workflow_kind.value,
        "attempt": workflow_session.attempt,
        "callback_url": settings.PUBLIC_API_URL.rstrip("/")
        + configuration.inbound_endpoint,
        "timestamp": utc_timestamp(),
        "params": workflow_session.params,
    }


async def trigger_workflow(
    session: AsyncSession, user: User, kind: WorkflowKind, raw_params: Any
) -> WorkflowSession:
    """
    Start a run of `kind` for the user and hand it to the workflow engine.

    Nothing is written before the registry entry and the parameters check
    out. The session is committed as processing before the outbound call so
    a fast callback can find it.

    Raises:
        ConfigurationError: The kind has no active registry entry.
        PayloadValidationError: Invalid parameters.
        NotFoundError: A required parent entity is missing.
        DeliveryError: The engine could not be reached; the session is in error.
    """
    log = logger.bind(workflow_kind=kind.value, user_id=str(user.id))

    configuration = await resolve_active_configuration(session, kind)
    params = validate_trigger_params(kind, raw_params)
    parent = await _prepare_parent(session, user, kind, params)

    workflow_session = await upsert_processing_session(
        session,
        user_id=user.id,
        kind=kind,
        parent_entity_id=parent.id if parent else None,
        params=params.model_dump(mode="json"),
        configuration=configuration,
    )
    await session.commit()

    payload = build_outbound_payload(
        workflow_session, configuration, parent.id if parent else None
    )
    log = log.bind(session_id=str(workflow_session.id), attempt=workflow_session.attempt)

    try:
        await deliver_webhook(configuration.outbound_webhook_url, payload)
    except DeliveryError as e:
        log.error("Workflow trigger failed", error=e.message)
        await error_if_still_processing(
            session,
            workflow_session,
            e.message,
            WorkflowLogEvent.DELIVERY_FAILED,
            payload=payload,
        )
        await session.commit()
        raise

    add_log(session, workflow_session, WorkflowLogEvent.TRIGGERED, payload=payload)
    await session.commit()
    log.info("Workflow triggered")
    return workflow_session
