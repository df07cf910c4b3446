from __future__ import annotations

import pytest
from sqlalchemy import select

from musterai.domain.models import AuditEvent, ConversationMessage, GeneratedDocument, QuotaWindow
from musterai.tests.utils.auth import create_test_api_key
from musterai.tests.utils.seed import seed_document, seed_knowledge_base_entry, seed_membership


async def _operator_headers(session_factory, *, role: str = "operator", status: str = "active") -> dict[str, str]:
    subject_id, headers, _key_id = await create_test_api_key(session_factory)
    await seed_membership(session_factory, subject_id=subject_id, role=role, status=status)
    return headers


async def _messages(session_factory) -> list[ConversationMessage]:
    async with session_factory() as session:
        return list(
            (
                await session.execute(
                    select(ConversationMessage).order_by(ConversationMessage.id)
                )
            ).scalars().all()
        )


@pytest.mark.asyncio
async def test_generate_section_with_empty_corpus(client, session_factory, fake_provider) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    response = await client.post(
        "/v1/documents/doc-1/sections/s1/generate",
        json={"prompt": "Write the pre-flight checklist"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["success"] is True
    assert body["data"]["section_id"] == "s1"
    assert body["data"]["content"] == "Here is the drafted content."
    assert body["data"]["token_usage"]["completion_tokens"] == 5
    assert body["meta"]["api_version"] == "v1"

    messages = await _messages(session_factory)
    assert len(messages) == 1
    assert messages[0].role == "system"
    assert messages[0].content == "Generated content for section: Normal Procedures"
    assert messages[0].context_snapshot == {"section_id": "s1", "knowledge_base_docs_used": []}
    assert "## Reference Documents from Knowledge Base" not in fake_provider.calls[0].system
    assert len(fake_provider.calls[0].turns) == 1


@pytest.mark.asyncio
async def test_send_message_persists_both_turns(client, session_factory, fake_provider) -> None:
    await seed_document(session_factory)
    await seed_knowledge_base_entry(
        session_factory, entry_id="kb-1", title="Lost link procedure", tags=("emergency",)
    )
    headers = await _operator_headers(session_factory)

    response = await client.post(
        "/v1/documents/doc-1/messages",
        json={"message": "Draft the lost link emergency steps"},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["message"] == "Here is the drafted content."
    assert data["knowledge_base_docs_used"] == 1
    usage = data["token_usage"]
    assert usage["total_tokens"] == usage["prompt_tokens"] + usage["completion_tokens"]

    user_turn, assistant_turn = await _messages(session_factory)
    assert user_turn.role == "user"
    assert user_turn.prompt_tokens is None
    assert user_turn.context_snapshot == {"knowledge_base_docs_used": ["kb-1"]}
    assert assistant_turn.role == "assistant"
    assert assistant_turn.completion_tokens == usage["completion_tokens"]
    assert "### Lost link procedure" in fake_provider.calls[0].system

    async with session_factory() as session:
        document = await session.get(GeneratedDocument, "doc-1")
        assert document is not None and document.last_ai_interaction_at is not None


@pytest.mark.asyncio
async def test_history_is_replayed_on_next_message(client, session_factory, fake_provider) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    await client.post("/v1/documents/doc-1/messages", json={"message": "first"}, headers=headers)
    await client.post("/v1/documents/doc-1/messages", json={"message": "second"}, headers=headers)

    assert fake_provider.calls[1].turns == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "Here is the drafted content."},
        {"role": "user", "content": "second"},
    ]


@pytest.mark.asyncio
async def test_inactive_membership_is_denied_without_quota(client, session_factory, fake_provider) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory, status="inactive")

    response = await client.post(
        "/v1/documents/doc-1/messages", json={"message": "hello"}, headers=headers
    )

    assert response.status_code == 403
    assert response.json()["error"] == {"code": "AUTH_FORBIDDEN", "message": "User membership not active"}
    assert fake_provider.calls == []
    async with session_factory() as session:
        assert (await session.execute(select(QuotaWindow))).scalars().all() == []
        denied = (
            await session.execute(
                select(AuditEvent).where(AuditEvent.event_type == "document_assistant.access.denied")
            )
        ).scalar_one()
        assert denied.error_code == "AUTH_FORBIDDEN"
    assert await _messages(session_factory) == []


@pytest.mark.asyncio
async def test_viewer_cannot_generate(client, session_factory) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory, role="viewer")

    response = await client.post(
        "/v1/documents/doc-1/sections/s1/generate", json={"prompt": "Draft"}, headers=headers
    )

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_unknown_section_is_not_found_and_consumes_no_quota(client, session_factory) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    response = await client.post(
        "/v1/documents/doc-1/sections/nope/generate", json={"prompt": "Draft"}, headers=headers
    )

    assert response.status_code == 404
    assert response.json()["error"] == {"code": "NOT_FOUND", "message": "Section not found"}
    async with session_factory() as session:
        assert (await session.execute(select(QuotaWindow))).scalars().all() == []


@pytest.mark.asyncio
async def test_oversized_message_is_rejected(client, session_factory, fake_provider) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    response = await client.post(
        "/v1/documents/doc-1/messages", json={"message": "x" * 10_001}, headers=headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == {
        "code": "INVALID_ARGUMENT",
        "message": "Message is required and must be under 10000 characters",
    }
    assert fake_provider.calls == []


@pytest.mark.asyncio
async def test_missing_prompt_is_rejected(client, session_factory) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    response = await client.post("/v1/documents/doc-1/sections/s1/generate", json={}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ARGUMENT"


@pytest.mark.asyncio
async def test_organization_quota_is_enforced(settings, client, session_factory) -> None:
    settings.quota_doc_gen_limit = 2
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)

    statuses = []
    for _ in range(3):
        response = await client.post(
            "/v1/documents/doc-1/messages", json={"message": "hello"}, headers=headers
        )
        statuses.append(response.status_code)

    assert statuses == [200, 200, 429]
    error = response.json()["error"]
    assert error["code"] == "RATE_LIMITED"
    assert error["details"] == {"limit": 2, "window_s": 3600}


@pytest.mark.asyncio
async def test_organization_token_usage(client, session_factory) -> None:
    await seed_document(session_factory)
    headers = await _operator_headers(session_factory)
    await client.post("/v1/documents/doc-1/messages", json={"message": "hello"}, headers=headers)

    response = await client.get("/v1/organizations/org-1/token-usage", headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["organization_id"] == "org-1"
    assert data["message_count"] == 2
    assert data["document_count"] == 1
    assert data["total_tokens"] == data["prompt_tokens"] + data["completion_tokens"] > 0

    other = await client.get("/v1/organizations/org-2/token-usage", headers=headers)
    assert other.status_code == 403
