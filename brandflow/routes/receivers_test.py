import base64
from pathlib import Path
from unittest.mock import patch
from uuid import UUID, uuid4

from sqlalchemy import func, select, update

from brandflow.models import (
    ApiKey,
    CompanyProfile,
    Post,
    SocialPostsCollection,
    WorkflowKind,
    WorkflowLog,
    WorkflowLogEvent,
    WorkflowSession,
    WorkflowStatus,
)
from brandflow.packages.storage.object_storage import LocalObjectStorage
from brandflow.services.webhook_registry_service import update_configuration
from brandflow.tests.fixtures_clients import UserClient


async def _trigger(client: UserClient, kind: WorkflowKind, params: dict) -> str:
    response = await client.post(f"/api/workflows/{kind.value}", json=params)
    assert response.status_code == 200, response.text
    return response.json()["sessionId"]


async def _get_session(session, session_id: str) -> WorkflowSession:
    return await session.get(WorkflowSession, UUID(session_id))


async def test_brand_voice_analysis_end_to_end(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.BRAND_VOICE_ANALYSIS)
    api_key = await make_api_key(WorkflowKind.BRAND_VOICE_ANALYSIS)

    session_id = await _trigger(
        client_a,
        WorkflowKind.BRAND_VOICE_ANALYSIS,
        {"companyName": "Acme", "website": "acme.com"},
    )
    workflow_session = await _get_session(session, session_id)
    assert workflow_session.status == WorkflowStatus.PROCESSING
    profile_id = workflow_session.parent_entity_id

    response = await client.post(
        "/api/receivers/brand_voice_analysis",
        headers={"x-api-key": api_key},
        json={
            "session_id": session_id,
            "company_profile_id": str(profile_id),
            "analysis_result": {
                "business_overview": "Acme builds anvils",
                "value_proposition": "Anvils that never miss",
                "ideal_customer_profile": "Coyotes",
            },
            "status": "completed",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["session"]["status"] == "completed"
    assert body["company_profile"]["business_overview"] == "Acme builds anvils"

    profile = await session.get(CompanyProfile, profile_id)
    assert profile.business_overview == "Acme builds anvils"
    assert profile.value_proposition == "Anvils that never miss"
    assert profile.ideal_customer_profile == "Coyotes"
    assert profile.brand_voice_analysis["business_overview"] == "Acme builds anvils"

    workflow_session = await _get_session(session, session_id)
    assert workflow_session.status == WorkflowStatus.COMPLETED
    assert workflow_session.completed_at is not None
    assert workflow_session.error_message is None

    events = (
        await session.execute(
            select(WorkflowLog.event).order_by(WorkflowLog.created_at, WorkflowLog.id)
        )
    ).scalars().all()
    assert events == [WorkflowLogEvent.TRIGGERED, WorkflowLogEvent.COMPLETED]


async def test_duplicate_callback_creates_one_post(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    session_id = await _trigger(
        client_a, WorkflowKind.POST_GENERATION, {"topic": "Launch", "platform": "x"}
    )

    payload = {
        "session_id": session_id,
        "status": "completed",
        "title": "We launched",
        "content": "Our product is live",
        "hashtags": ["#launch"],
    }
    first = await client.post(
        "/api/receivers/post_generation", headers={"x-api-key": api_key}, json=payload
    )
    second = await client.post(
        "/api/receivers/post_generation", headers={"x-api-key": api_key}, json=payload
    )

    assert first.status_code == 200
    assert first.json()["post"]["content"] == "Our product is live"
    assert first.json()["post"]["platform"] == "x"
    assert second.status_code == 200
    assert second.json()["message"] == "Session already completed"
    assert "post" not in second.json()

    posts = (await session.execute(select(Post))).scalars().all()
    assert len(posts) == 1
    assert posts[0].session_id == UUID(session_id)
    assert posts[0].ai_generated is True
    assert posts[0].user_id == client_a.user.id


async def test_terminal_session_is_not_reopened(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POSTS_COLLECTION)
    api_key = await make_api_key(WorkflowKind.POSTS_COLLECTION)
    session_id = await _trigger(
        client_a, WorkflowKind.POSTS_COLLECTION, {"platforms": ["linkedin"]}
    )
    headers = {"x-api-key": api_key}

    response = await client.post(
        "/api/receivers/posts_collection",
        headers=headers,
        json={"session_id": session_id, "posts_data": [{"text": "hello"}]},
    )
    assert response.status_code == 200

    response = await client.post(
        "/api/receivers/posts_collection",
        headers=headers,
        json={"session_id": session_id, "status": "error", "error_message": "late"},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Session already completed"

    workflow_session = await _get_session(session, session_id)
    assert workflow_session.status == WorkflowStatus.COMPLETED
    assert workflow_session.error_message is None


async def test_stale_attempt_is_ignored(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "First"})
    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "Second"})
    headers = {"x-api-key": api_key}

    response = await client.post(
        "/api/receivers/post_generation",
        headers=headers,
        json={"session_id": session_id, "attempt": 1, "content": "Old run"},
    )
    assert response.status_code == 200
    assert response.json()["message"].startswith("Stale callback")
    assert (await _get_session(session, session_id)).status == WorkflowStatus.PROCESSING
    assert await session.scalar(select(func.count()).select_from(Post)) == 0

    response = await client.post(
        "/api/receivers/post_generation",
        headers=headers,
        json={"session_id": session_id, "attempt": 2, "content": "New run"},
    )
    assert response.status_code == 200
    assert response.json()["post"]["content"] == "New run"
    assert (await _get_session(session, session_id)).status == WorkflowStatus.COMPLETED


async def test_error_callback_marks_session_error(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "x"})

    response = await client.post(
        "/api/receivers/post_generation",
        headers={"x-api-key": api_key},
        json={
            "session_id": session_id,
            "status": "error",
            "error_message": "LLM quota exceeded",
        },
    )
    assert response.status_code == 200
    assert response.json()["session"]["status"] == "error"
    assert "post" not in response.json()

    workflow_session = await _get_session(session, session_id)
    assert workflow_session.status == WorkflowStatus.ERROR
    assert workflow_session.error_message == "LLM quota exceeded"
    assert await session.scalar(select(func.count()).select_from(Post)) == 0

    log = (
        await session.execute(
            select(WorkflowLog).where(WorkflowLog.event == WorkflowLogEvent.ERROR)
        )
    ).scalar_one()
    assert log.message == "LLM quota exceeded"


async def test_api_key_failures_leave_session_untouched(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    other_scope_key = await make_api_key(WorkflowKind.BRAND_VOICE_ANALYSIS)
    read_only_key = await make_api_key(WorkflowKind.POST_GENERATION, can_write=False)
    inactive_key = await make_api_key(WorkflowKind.POST_GENERATION)
    await session.execute(
        update(ApiKey)
        .where(ApiKey.key_name == "post_generation test key", ApiKey.can_write.is_(True))
        .values(is_active=False)
    )
    await session.commit()

    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "x"})
    payload = {"session_id": session_id, "content": "Should not land"}

    cases = [
        ({}, "API key required"),
        ({"x-api-key": "bf_wh_not-a-real-key"}, "Invalid API key"),
        ({"x-api-key": inactive_key}, "Invalid API key"),
        ({"x-api-key": other_scope_key}, "API key is not valid for this workflow"),
        ({"x-api-key": read_only_key}, "API key is not valid for this workflow"),
    ]
    for headers, message in cases:
        response = await client.post(
            "/api/receivers/post_generation", headers=headers, json=payload
        )
        assert response.status_code == 401
        assert response.json() == {"error": message}

    assert (await _get_session(session, session_id)).status == WorkflowStatus.PROCESSING
    assert await session.scalar(select(func.count()).select_from(Post)) == 0


async def test_successful_authentication_records_key_usage(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "x"})

    response = await client.post(
        "/api/receivers/post_generation",
        headers={"x-api-key": api_key},
        json={"session_id": session_id, "content": "Hello"},
    )
    assert response.status_code == 200

    stored_key = (await session.execute(select(ApiKey))).scalar_one()
    assert stored_key.last_used_at is not None


async def test_session_resolution_errors(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POSTS_COLLECTION)
    api_key = await make_api_key(WorkflowKind.BRAND_VOICE_ANALYSIS)
    headers = {"x-api-key": api_key}
    collection_session_id = await _trigger(
        client_a, WorkflowKind.POSTS_COLLECTION, {"platforms": ["linkedin"]}
    )

    response = await client.post(
        "/api/receivers/brand_voice_analysis",
        headers=headers,
        json={"company_name": "Acme"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "session_id is required"}

    response = await client.post(
        "/api/receivers/brand_voice_analysis",
        headers=headers,
        json={"session_id": "not-a-uuid"},
    )
    assert response.status_code == 400

    response = await client.post(
        "/api/receivers/brand_voice_analysis",
        headers=headers,
        json={"session_id": str(uuid4())},
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}

    # A session of another kind is not visible through this receiver
    response = await client.post(
        "/api/receivers/brand_voice_analysis",
        headers=headers,
        json={"session_id": collection_session_id},
    )
    assert response.status_code == 404


async def test_unknown_fields_are_rejected(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POST_GENERATION)
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "x"})

    response = await client.post(
        "/api/receivers/post_generation",
        headers={"x-api-key": api_key},
        json={"session_id": session_id, "content": "Hi", "postBody": "Hi"},
    )
    assert response.status_code == 400
    assert "postBody" in response.json()["error"]
    assert (await _get_session(session, session_id)).status == WorkflowStatus.PROCESSING


async def test_field_mappings_of_the_pinned_snapshot_are_applied(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(
        WorkflowKind.POST_GENERATION,
        field_mappings={"postContent": "content", "postTitle": "title"},
    )
    api_key = await make_api_key(WorkflowKind.POST_GENERATION)
    session_id = await _trigger(client_a, WorkflowKind.POST_GENERATION, {"topic": "x"})

    # Editing the registry after the trigger does not affect the running session
    await update_configuration(
        session, WorkflowKind.POST_GENERATION, {"field_mappings": {"body": "content"}}
    )
    await session.commit()

    response = await client.post(
        "/api/receivers/post_generation",
        headers={"x-api-key": api_key},
        json={
            "session_id": session_id,
            "postContent": "Mapped content",
            "postTitle": "Mapped title",
        },
    )
    assert response.status_code == 200
    post = (await session.execute(select(Post))).scalar_one()
    assert post.content == "Mapped content"
    assert post.title == "Mapped title"


async def test_mapped_session_id_and_attempt(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(
        WorkflowKind.POSTS_COLLECTION,
        field_mappings={"sessionId": "session_id", "runAttempt": "attempt"},
    )
    api_key = await make_api_key(WorkflowKind.POSTS_COLLECTION)
    await _trigger(client_a, WorkflowKind.POSTS_COLLECTION, {"platforms": ["x"]})
    session_id = await _trigger(
        client_a, WorkflowKind.POSTS_COLLECTION, {"platforms": ["linkedin"]}
    )
    headers = {"x-api-key": api_key}

    response = await client.post(
        "/api/receivers/posts_collection",
        headers=headers,
        json={"sessionId": session_id, "runAttempt": 1, "posts_data": []},
    )
    assert response.status_code == 200
    assert response.json()["message"].startswith("Stale callback")

    response = await client.post(
        "/api/receivers/posts_collection",
        headers=headers,
        json={"sessionId": session_id, "runAttempt": 2, "posts_data": []},
    )
    assert response.status_code == 200, response.text
    assert response.json()["session"]["status"] == "completed"
    assert (await _get_session(session, session_id)).status == WorkflowStatus.COMPLETED


async def test_session_id_must_resolve_through_the_pinned_mappings(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    await configure_workflow(WorkflowKind.POSTS_COLLECTION)
    api_key = await make_api_key(WorkflowKind.POSTS_COLLECTION)
    session_id = await _trigger(
        client_a, WorkflowKind.POSTS_COLLECTION, {"platforms": ["linkedin"]}
    )

    # The mapping only exists in a version created after the trigger
    await update_configuration(
        session,
        WorkflowKind.POSTS_COLLECTION,
        {"field_mappings": {"sessionId": "session_id"}},
    )
    await session.commit()

    response = await client.post(
        "/api/receivers/posts_collection",
        headers={"x-api-key": api_key},
        json={"sessionId": session_id, "posts_data": []},
    )
    assert response.status_code == 400
    assert (await _get_session(session, session_id)).status == WorkflowStatus.PROCESSING


async def test_posts_collection_notifies_completion_webhook(
    client,
    client_a: UserClient,
    session,
    configure_workflow,
    make_api_key,
    mock_outbound_webhooks,
):
    await configure_workflow(WorkflowKind.POSTS_COLLECTION)
    completed_configuration = await configure_workflow(
        WorkflowKind.POSTS_COLLECTION_COMPLETED
    )
    api_key = await make_api_key(WorkflowKind.POSTS_COLLECTION)
    session_id = await _trigger(
        client_a,
        WorkflowKind.POSTS_COLLECTION,
        {
            "platforms": ["linkedin", "instagram"],
            "dateRangeStart": "2026-01-01",
            "dateRangeEnd": "2026-01-31",
        },
    )

    response = await client.post(
        "/api/receivers/posts_collection",
        headers={"x-api-key": api_key},
        json={
            "session_id": session_id,
            "posts_data": [{"text": "first"}, {"text": "second"}],
        },
    )
    assert response.status_code == 200
    collection = response.json()["collection"]
    assert collection["platforms"] == ["linkedin", "instagram"]
    assert collection["date_range_start"] == "2026-01-01"
    assert len(collection["posts_data"]) == 2

    stored = (await session.execute(select(SocialPostsCollection))).scalar_one()
    assert stored.session_id == UUID(session_id)

    mock_outbound_webhooks.notify.assert_awaited_once()
    url, payload = mock_outbound_webhooks.notify.await_args.args
    assert url == completed_configuration.outbound_webhook_url
    assert payload["session_id"] == session_id
    assert payload["posts_count"] == 2
    assert payload["platform"] == "linkedin,instagram"


async def test_mascot_image_is_uploaded(
    client,
    client_a: UserClient,
    session,
    configure_workflow,
    make_api_key,
    tmp_path: Path,
):
    session.add(CompanyProfile(user_id=client_a.user.id, company_name="Acme"))
    await session.commit()
    await configure_workflow(WorkflowKind.MASCOT_GENERATION)
    api_key = await make_api_key(WorkflowKind.MASCOT_GENERATION)
    session_id = await _trigger(
        client_a, WorkflowKind.MASCOT_GENERATION, {"description": "A fox"}
    )
    image = b"\x89PNG\r\n\x1a\nfake image"

    with patch(
        "brandflow.services.workflow_receiver_service.object_storage_factory",
        return_value=LocalObjectStorage(tmp_path),
    ):
        response = await client.post(
            "/api/receivers/mascot_generation",
            headers={"x-api-key": api_key},
            json={
                "session_id": session_id,
                "image_base64": base64.b64encode(image).decode(),
                "mascot_personality": "Curious",
                "mascot_data": {"name": "Foxy"},
            },
        )
        invalid = await client.post(
            "/api/receivers/mascot_generation",
            headers={"x-api-key": api_key},
            json={"session_id": session_id, "image_base64": "%%%"},
        )

    assert response.status_code == 200
    mascot = response.json()["mascot"]
    assert mascot["mascot_personality"] == "Curious"
    assert mascot["mascot_data"] == {"name": "Foxy"}
    image_path = mascot["mascot_image_path"]
    assert image_path.startswith(f"mascots/{client_a.user.id}/")
    assert (tmp_path / image_path).read_bytes() == image

    # The session is already completed, so the second call is a no-op
    assert invalid.status_code == 200
    assert invalid.json()["message"] == "Session already completed"


async def test_invalid_mascot_image_is_rejected(
    client, client_a: UserClient, session, configure_workflow, make_api_key
):
    session.add(CompanyProfile(user_id=client_a.user.id, company_name="Acme"))
    await session.commit()
    await configure_workflow(WorkflowKind.MASCOT_GENERATION)
    api_key = await make_api_key(WorkflowKind.MASCOT_GENERATION)
    session_id = await _trigger(
        client_a, WorkflowKind.MASCOT_GENERATION, {"description": "A fox"}
    )

    response = await client.post(
        "/api/receivers/mascot_generation",
        headers={"x-api-key": api_key},
        json={"session_id": session_id, "image_base64": "%%%"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "image_base64 is not valid base64"}


async def test_registry_only_kinds_have_no_receiver(client, make_api_key):
    api_key = await make_api_key(WorkflowKind.POST_REVISION)

    response = await client.post(
        "/api/receivers/post_revision",
        headers={"x-api-key": api_key},
        json={"session_id": str(uuid4())},
    )
    assert response.status_code == 404


async def test_post_content_revision(
    client, client_a: UserClient, session, make_api_key
):
    post = Post(
        user_id=client_a.user.id,
        content="Original",
        platform="linkedin",
        generation_params={"topic": "Launch"},
    )
    session.add(post)
    await session.commit()
    post_id = post.id
    api_key = await make_api_key(WorkflowKind.POST_REVISION)

    response = await client.post(
        "/api/receivers/post-content-update",
        headers={"x-api-key": api_key},
        json={
            "postId": str(post_id),
            "updatedContent": "Revised",
            "postContentRevisionComments": "Make it shorter",
        },
    )
    assert response.status_code == 200
    assert response.json()["post"]["content"] == "Revised"

    post = await session.get(Post, post_id)
    assert post.content == "Revised"
    assert post.generation_params["topic"] == "Launch"
    assert post.generation_params["revision_comments"] == "Make it shorter"
    assert "revised_at" in post.generation_params


async def test_post_image_revision(client, client_a: UserClient, session, make_api_key):
    post = Post(user_id=client_a.user.id, content="Original", platform="linkedin")
    session.add(post)
    await session.commit()
    post_id = post.id
    api_key = await make_api_key(WorkflowKind.POST_REVISION)

    response = await client.post(
        "/api/receivers/post-image-update",
        headers={"x-api-key": api_key},
        json={"postId": str(post_id), "updatedImage": "https://cdn.example.com/1.png"},
    )
    assert response.status_code == 200

    post = await session.get(Post, post_id)
    assert post.image_url == "https://cdn.example.com/1.png"
    assert post.generation_params["image_revision_comments"] is None


async def test_post_revision_errors(client, make_api_key):
    revision_key = await make_api_key(WorkflowKind.POST_REVISION)
    other_key = await make_api_key(WorkflowKind.POST_GENERATION)
    payload = {"postId": str(uuid4()), "updatedContent": "Revised"}

    response = await client.post(
        "/api/receivers/post-content-update",
        headers={"x-api-key": other_key},
        json=payload,
    )
    assert response.status_code == 401

    response = await client.post(
        "/api/receivers/post-content-update",
        headers={"x-api-key": revision_key},
        json=payload,
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Post not found"}

    response = await client.post(
        "/api/receivers/post-content-update",
        headers={"x-api-key": revision_key},
        json={"postId": str(uuid4())},
    )
    assert response.status_code == 400
