from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.core.config import Settings
from musterai.domain.models import ApiKey
from musterai.services.audit import RequestContext, get_request_context, record_event
from musterai.services.auth.api_keys import hash_api_key
from musterai.services.cache import TtlCache
from musterai.services.orchestrator import Orchestrator


class Principal(BaseModel):
    # Authenticated caller; organization scope is resolved per operation from memberships.
    subject_id: str
    api_key_id: str
    auth_method: str = "api_key"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_principal_cache(request: Request) -> TtlCache[Principal]:
    return request.app.state.principal_cache


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with session_factory() as session:
        yield session


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def _request_metadata(request: Request) -> dict[str, str]:
    return {"path": request.url.path, "method": request.method}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _principal_from_dev_headers(request: Request) -> Principal:
    subject_id = (request.headers.get("X-Subject-Id") or "").strip()
    if not subject_id:
        raise _auth_error("X-Subject-Id header is required in dev bypass mode")
    return Principal(subject_id=subject_id, api_key_id="dev-bypass", auth_method="dev_bypass")


async def _record_auth_failure(
    session_factory: async_sessionmaker[AsyncSession],
    request: Request,
    context: RequestContext,
    *,
    actor_id: str | None = None,
    event_type: str = "auth.access.failure",
) -> None:
    await record_event(
        session_factory,
        organization_id=None,
        actor_type="api_key" if actor_id else "anonymous",
        actor_id=actor_id,
        event_type=event_type,
        outcome="failure",
        resource_type="auth",
        context=context,
        metadata=_request_metadata(request),
        error_code="AUTH_UNAUTHORIZED",
    )


async def _touch_last_used(db: AsyncSession, api_key_id: str) -> None:
    # last_used_at is informational; failures never block the request.
    try:
        await db.execute(
            update(ApiKey)
            .where(ApiKey.id == api_key_id)
            .values(last_used_at=datetime.now(timezone.utc))
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    cache: TtlCache[Principal] = Depends(get_principal_cache),
) -> Principal:
    context = get_request_context(request)
    try:
        bearer_token = _parse_bearer_token(request.headers.get(settings.auth_api_key_header))
    except HTTPException:
        await _record_auth_failure(session_factory, request, context)
        raise

    if not settings.auth_enabled or not bearer_token:
        if settings.auth_dev_bypass:
            return _principal_from_dev_headers(request)
        message = "Missing API key" if settings.auth_enabled else (
            "Authentication disabled; set AUTH_DEV_BYPASS=true for dev access"
        )
        await _record_auth_failure(session_factory, request, context)
        raise _auth_error(message)

    key_hash = hash_api_key(bearer_token)
    cached = await cache.get(key_hash)
    if cached is not None:
        return cached

    try:
        api_key = (
            await db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "AUTH_UNAVAILABLE", "message": "Authentication unavailable"},
        ) from exc

    if api_key is None:
        await _record_auth_failure(session_factory, request, context)
        raise _auth_error("Invalid API key")
    if api_key.revoked_at is not None:
        await _record_auth_failure(session_factory, request, context, actor_id=api_key.id)
        raise _auth_error("API key is revoked")
    if api_key.expires_at is not None and _as_utc(api_key.expires_at) <= datetime.now(timezone.utc):
        await _record_auth_failure(
            session_factory,
            request,
            context,
            actor_id=api_key.id,
            event_type="auth.api_key.expired",
        )
        raise _auth_error("API key expired")

    principal = Principal(subject_id=api_key.subject_id, api_key_id=api_key.id, auth_method="api_key")
    await cache.set(key_hash, principal)
    await _touch_last_used(db, api_key.id)
    return principal
