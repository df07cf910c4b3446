from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from musterai.core.errors import ProviderError
from musterai.providers.llm.fake import FakeLLMProvider
from musterai.tests.utils.app import api_client
from musterai.tests.utils.auth import create_test_api_key
from musterai.tests.utils.seed import seed_document, seed_membership


@pytest.mark.asyncio
async def test_health_is_public_and_enveloped(client) -> None:
    response = await client.get("/v1/health", headers={"X-Request-Id": "req-health"})

    assert response.status_code == 200
    assert response.json() == {
        "data": {"status": "ok", "ai_configured": True},
        "meta": {"request_id": "req-health", "api_version": "v1"},
    }
    assert response.headers["X-Request-Id"] == "req-health"


@pytest.mark.asyncio
async def test_missing_api_key_is_unauthorized(client) -> None:
    response = await client.post("/v1/documents/doc-1/messages", json={"message": "hi"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_malformed_and_unknown_keys_are_unauthorized(client) -> None:
    malformed = await client.get(
        "/v1/organizations/org-1/token-usage", headers={"Authorization": "Token abc"}
    )
    unknown = await client.get(
        "/v1/organizations/org-1/token-usage", headers={"Authorization": "Bearer mak_nope_nope"}
    )

    assert malformed.status_code == 401
    assert unknown.status_code == 401
    assert unknown.json()["error"]["message"] == "Invalid API key"


@pytest.mark.asyncio
async def test_revoked_and_expired_keys_are_rejected(client, session_factory) -> None:
    _subject, revoked_headers, _ = await create_test_api_key(session_factory, key_revoked=True)
    _subject, expired_headers, _ = await create_test_api_key(
        session_factory, key_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
    )

    revoked = await client.get("/v1/organizations/org-1/token-usage", headers=revoked_headers)
    expired = await client.get("/v1/organizations/org-1/token-usage", headers=expired_headers)

    assert revoked.status_code == 401
    assert revoked.json()["error"]["message"] == "API key is revoked"
    assert expired.status_code == 401
    assert expired.json()["error"]["message"] == "API key expired"


@pytest.mark.asyncio
async def test_dev_bypass_uses_subject_header(settings, session_factory, fake_provider) -> None:
    settings.auth_dev_bypass = True
    await seed_document(session_factory)
    await seed_membership(session_factory, subject_id="dev-user")
    async with api_client(settings, session_factory, fake_provider) as client:
        allowed = await client.post(
            "/v1/documents/doc-1/messages", json={"message": "hi"}, headers={"X-Subject-Id": "dev-user"}
        )
        missing = await client.post("/v1/documents/doc-1/messages", json={"message": "hi"})

    assert allowed.status_code == 200
    assert missing.status_code == 401


@pytest.mark.asyncio
async def test_unconfigured_provider_is_service_unavailable(settings, session_factory) -> None:
    await seed_document(session_factory)
    subject, headers, _ = await create_test_api_key(session_factory)
    await seed_membership(session_factory, subject_id=subject)
    async with api_client(settings, session_factory, None) as client:
        health = await client.get("/v1/health")
        response = await client.post(
            "/v1/documents/doc-1/messages", json={"message": "hi"}, headers=headers
        )

    assert health.json()["data"]["ai_configured"] is False
    assert response.status_code == 503
    assert response.json()["error"] == {"code": "AI_NOT_CONFIGURED", "message": "AI service not configured"}


@pytest.mark.asyncio
async def test_provider_failure_is_generic_bad_gateway(settings, session_factory) -> None:
    await seed_document(session_factory)
    subject, headers, _ = await create_test_api_key(session_factory)
    await seed_membership(session_factory, subject_id=subject)
    provider = FakeLLMProvider(error=ProviderError("upstream said: internal detail"))

    async with api_client(settings, session_factory, provider) as client:
        response = await client.post(
            "/v1/documents/doc-1/messages", json={"message": "hi"}, headers=headers
        )

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert "internal detail" not in error["message"]


@pytest.mark.asyncio
async def test_openapi_marks_bearer_auth(client) -> None:
    schema = (await client.get("/v1/openapi.json")).json()

    assert schema["components"]["securitySchemes"]["BearerAuth"] == {"type": "http", "scheme": "bearer"}
    assert "security" not in schema["paths"]["/v1/health"]["get"]
    assert schema["paths"]["/v1/training/quizzes"]["post"]["security"] == [{"BearerAuth": []}]
