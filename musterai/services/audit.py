from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import Request

from musterai.domain.models import AuditEvent


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = [
    "api_key",
    "authorization",
    "token",
    "secret",
    "password",
    "message",
    "prompt",
    "content",
]
# Token accounting fields are counters, not credentials.
_SAFE_KEYS = {"prompt_tokens", "completion_tokens", "total_tokens"}
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in _SAFE_KEYS:
        return False
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def get_request_context(request: Request | None) -> RequestContext:
    # Request identifiers and client hints only; credentials never leave the request.
    if request is None:
        return RequestContext()
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    ip_address = request.client.host if request.client else None
    return RequestContext(
        request_id=request_id,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


async def record_event(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    organization_id: str | None,
    actor_type: str,
    actor_id: str | None,
    event_type: str,
    outcome: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    context: RequestContext | None = None,
    metadata: dict[str, Any] | None = None,
    error_code: str | None = None,
    occurred_at: datetime | None = None,
) -> None:
    # Audit writes are best-effort and never fail the request that triggered them.
    ctx = context or RequestContext()
    event = AuditEvent(
        occurred_at=occurred_at or datetime.now(timezone.utc),
        organization_id=organization_id,
        actor_type=actor_type,
        actor_id=actor_id,
        event_type=event_type,
        outcome=outcome,
        resource_type=resource_type,
        resource_id=resource_id,
        request_id=ctx.request_id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        metadata_json=sanitize_metadata(metadata or {}),
        error_code=error_code,
    )
    async with session_factory() as session:
        try:
            session.add(event)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning(
                "audit_event_write_failed event_type=%s request_id=%s",
                event_type,
                ctx.request_id,
                exc_info=exc,
            )
