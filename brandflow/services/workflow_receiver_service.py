import base64
import binascii
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brandflow.exceptions import NotFoundError, PayloadValidationError, PersistenceError
from brandflow.factories import object_storage_factory
from brandflow.models import (
    CompanyProfile,
    Post,
    SocialPostsCollection,
    WebhookConfiguration,
    WorkflowKind,
    WorkflowLogEvent,
    WorkflowSession,
    WorkflowStatus,
)
from brandflow.packages.storage.object_storage import build_object_key
from brandflow.services.outbound_webhook_service import notify_best_effort, utc_timestamp
from brandflow.services.webhook_registry_service import get_current_configuration
from brandflow.services.workflow_payloads import (
    BrandVoiceAnalysisCallback,
    CallbackPayload,
    MascotGenerationCallback,
    PostGenerationCallback,
    PostsCollectionCallback,
    apply_field_mappings,
    validate_callback,
)
from brandflow.services.workflow_session_service import (
    add_log,
    get_session_for_update,
    mark_completed,
    mark_error,
)

logger = structlog.stdlib.get_logger(__name__)


@dataclass
class CallbackOutcome:
    message: str
    session: WorkflowSession
    entity_name: Optional[str] = None
    entity: Any = None
    applied: bool = True


def _parse_session_id(body: dict[str, Any]) -> UUID:
    raw = body.get("session_id")
    if raw is None or raw == "":
        raise PayloadValidationError("session_id is required")
    try:
        return UUID(str(raw))
    except ValueError:
        raise PayloadValidationError("session_id must be a UUID")


async def _resolve_session_id(
    session: AsyncSession, kind: WorkflowKind, body: dict[str, Any]
) -> UUID:
    """
    The id of the session a callback belongs to.

    Engines that name the field differently rely on the registry's field
    mappings; those are taken from the current entry here and checked against
    the session's pinned snapshot once the session is loaded.
    """
    if "session_id" in body:
        return _parse_session_id(body)
    current = await get_current_configuration(session, kind)
    return _parse_session_id(
        apply_field_mappings(body, current.field_mappings if current else None)
    )


def _is_stale_attempt(body: dict[str, Any], workflow_session: WorkflowSession) -> bool:
    attempt = body.get("attempt")
    if attempt is None:
        return False
    if isinstance(attempt, bool) or not isinstance(attempt, int):
        raise PayloadValidationError("attempt must be an integer")
    return attempt < workflow_session.attempt


async def _load_profile(
    session: AsyncSession, workflow_session: WorkflowSession
) -> CompanyProfile:
    profile = None
    if workflow_session.parent_entity_id:
        profile = await session.get(CompanyProfile, workflow_session.parent_entity_id)
    if profile is None:
        raise NotFoundError("Company profile not found")
    return profile


async def _apply_brand_voice(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    callback: BrandVoiceAnalysisCallback,
) -> tuple[str, Any]:
    profile = await _load_profile(session, workflow_session)
    # The engine sends the narrative fields either top level or inside analysis_result
    nested = callback.analysis_result or {}
    for field in ("business_overview", "ideal_customer_profile", "value_proposition"):
        value = getattr(callback, field)
        if value is None and isinstance(nested.get(field), str):
            value = nested[field]
        if value is not None:
            setattr(profile, field, value)
    if callback.analysis_result is not None:
        profile.brand_voice_analysis = callback.analysis_result
    return "company_profile", profile


async def _apply_mascot(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    callback: MascotGenerationCallback,
) -> tuple[str, Any]:
    profile = await _load_profile(session, workflow_session)

    if callback.image_base64:
        try:
            image = base64.b64decode(callback.image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise PayloadValidationError("image_base64 is not valid base64")
        key = build_object_key(
            f"mascots/{workflow_session.user_id}", image, callback.image_content_type
        )
        profile.mascot_image_path = await object_storage_factory().upload_bytes(
            key, image, callback.image_content_type
        )
    elif callback.mascot_image_url:
        profile.mascot_image_path = callback.mascot_image_url

    if callback.mascot_data is not None:
        profile.mascot_data = callback.mascot_data
    if callback.mascot_personality is not None:
        profile.mascot_personality = callback.mascot_personality
    return "mascot", profile


async def _apply_posts_collection(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    callback: PostsCollectionCallback,
) -> tuple[str, Any]:
    params = workflow_session.params or {}
    result = await session.execute(
        select(SocialPostsCollection).where(
            SocialPostsCollection.session_id == workflow_session.id
        )
    )
    collection = result.scalar_one_or_none()
    if collection is None:
        collection = SocialPostsCollection(
            session_id=workflow_session.id, user_id=workflow_session.user_id
        )
        session.add(collection)

    # A re-run replaces the snapshot of the previous run
    collection.platforms = callback.platforms or params.get("platforms") or []
    collection.date_range_start = callback.date_range_start or params.get(
        "date_range_start"
    )
    collection.date_range_end = callback.date_range_end or params.get("date_range_end")
    collection.posts_data = callback.posts_data
    return "collection", collection


async def _apply_post_generation(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    callback: PostGenerationCallback,
) -> tuple[str, Any]:
    params = workflow_session.params or {}

    # Posts from earlier runs of this session are kept but released from it
    await session.execute(
        update(Post)
        .where(Post.session_id == workflow_session.id)
        .values(session_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.flush()

    generation_params = dict(params)
    if callback.image_prompt:
        generation_params["image_prompt"] = callback.image_prompt

    post = Post(
        user_id=workflow_session.user_id,
        session_id=workflow_session.id,
        title=callback.title,
        content=callback.content,
        platform=callback.platform or params.get("platform") or "linkedin",
        status="draft",
        ai_generated=True,
        image_url=callback.image_url,
        hashtags=callback.hashtags,
        generation_params=generation_params,
    )
    session.add(post)
    return "post", post


_APPLIERS = {
    WorkflowKind.BRAND_VOICE_ANALYSIS: _apply_brand_voice,
    WorkflowKind.MASCOT_GENERATION: _apply_mascot,
    WorkflowKind.POSTS_COLLECTION: _apply_posts_collection,
    WorkflowKind.POST_GENERATION: _apply_post_generation,
}


def _result_of(callback: CallbackPayload) -> dict[str, Any]:
    return callback.model_dump(
        mode="json",
        exclude={
            "session_id",
            "attempt",
            "status",
            "error_message",
            "user_id",
            "company_profile_id",
            "workflow_type",
            "timestamp",
            "image_base64",
        },
        exclude_none=True,
    )


async def receive_callback(
    session: AsyncSession, kind: WorkflowKind, body: Any
) -> CallbackOutcome:
    """
    Apply a workflow engine callback to its session.

    The caller has already authenticated the API key. Duplicate, late and
    stale callbacks are acknowledged without writing anything.

    Raises:
        PayloadValidationError: Missing session_id or invalid payload.
        NotFoundError: Unknown session, or a session of another kind.
        PersistenceError: The transaction could not be committed.
    """
    if not isinstance(body, dict):
        raise PayloadValidationError("Request body must be a JSON object")

    session_id = await _resolve_session_id(session, kind, body)
    log = logger.bind(workflow_kind=kind.value, session_id=str(session_id))

    workflow_session = await get_session_for_update(session, session_id)
    if workflow_session is None or workflow_session.workflow_kind != kind:
        raise NotFoundError("Session not found")

    if workflow_session.status.is_terminal:
        log.info("Ignoring callback for finished session", status=workflow_session.status.value)
        # Releases the row lock
        await session.commit()
        return CallbackOutcome(
            message=f"Session already {workflow_session.status.value}",
            session=workflow_session,
            applied=False,
        )

    if workflow_session.status != WorkflowStatus.PROCESSING:
        await session.commit()
        return CallbackOutcome(
            message=f"Session is {workflow_session.status.value}, not awaiting a callback",
            session=workflow_session,
            applied=False,
        )

    snapshot = None
    if workflow_session.webhook_configuration_id:
        snapshot = await session.get(
            WebhookConfiguration, workflow_session.webhook_configuration_id
        )
    mapped = apply_field_mappings(body, snapshot.field_mappings if snapshot else None)
    if _parse_session_id(mapped) != session_id:
        raise PayloadValidationError(
            "session_id does not match the field mappings of the session"
        )

    if _is_stale_attempt(mapped, workflow_session):
        log.info(
            "Ignoring callback from superseded run",
            callback_attempt=mapped.get("attempt"),
            current_attempt=workflow_session.attempt,
        )
        await session.commit()
        return CallbackOutcome(
            message=f"Stale callback for attempt {mapped.get('attempt')}, "
            f"session is on attempt {workflow_session.attempt}",
            session=workflow_session,
            applied=False,
        )

    callback = validate_callback(kind, mapped)

    entity_name: Optional[str] = None
    entity: Any = None
    if callback.status == "completed":
        entity_name, entity = await _APPLIERS[kind](session, workflow_session, callback)
        mark_completed(workflow_session, _result_of(callback))
        add_log(
            session,
            workflow_session,
            WorkflowLogEvent.COMPLETED,
            payload=callback.model_dump(mode="json", exclude={"image_base64"}),
        )
        message = f"{kind.value} completed"
    else:
        failure = callback.failure_message()
        mark_error(workflow_session, failure)
        add_log(
            session,
            workflow_session,
            WorkflowLogEvent.ERROR,
            payload=callback.model_dump(mode="json", exclude={"image_base64"}),
            message=failure,
        )
        message = f"{kind.value} failed: {failure}"

    try:
        await session.commit()
    except SQLAlchemyError as e:
        log.error("Could not store workflow callback", error=str(e), exc_info=True)
        await session.rollback()
        raise PersistenceError("Failed to store workflow result")

    await session.refresh(workflow_session)
    if entity is not None:
        await session.refresh(entity)

    log.info("Workflow callback applied", status=workflow_session.status.value)

    if (
        kind == WorkflowKind.POSTS_COLLECTION
        and workflow_session.status == WorkflowStatus.COMPLETED
    ):
        await notify_posts_collection_completed(session, workflow_session, entity)

    return CallbackOutcome(
        message=message,
        session=workflow_session,
        entity_name=entity_name,
        entity=entity,
    )


async def notify_posts_collection_completed(
    session: AsyncSession,
    workflow_session: WorkflowSession,
    collection: SocialPostsCollection,
) -> bool:
    configuration = await get_current_configuration(
        session, WorkflowKind.POSTS_COLLECTION_COMPLETED
    )
    if (
        configuration is None
        or not configuration.is_active
        or not configuration.outbound_webhook_url
    ):
        logger.info("No active webhook configured for posts_collection_completed")
        return False

    result = await session.execute(
        select(CompanyProfile).where(CompanyProfile.user_id == workflow_session.user_id)
    )
    profile = result.scalar_one_or_none()
    params = workflow_session.params or {}
    social_urls = (profile.social_urls if profile else None) or {}

    payload = {
        "session_id": str(workflow_session.id),
        "user_id": str(workflow_session.user_id),
        "collection_id": str(collection.id),
        "company_name": profile.company_name if profile else "Unknown Company",
        "company_linkedin_url": params.get("company_linkedin_url")
        or social_urls.get("linkedin_company")
        or "",
        "status": "completed",
        "platform": ",".join(collection.platforms or []),
        "date_range_start": collection.date_range_start,
        "date_range_end": collection.date_range_end,
        "posts_count": len(collection.posts_data or []),
        "completed_at": utc_timestamp(),
    }
    return await notify_best_effort(configuration.outbound_webhook_url, payload)
