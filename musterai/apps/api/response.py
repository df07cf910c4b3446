from __future__ import annotations

from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


API_VERSION = "v1"
REQUEST_ID_HEADER = "X-Request-Id"

T = TypeVar("T")


class ErrorCode(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    AUTH_UNAUTHORIZED = "AUTH_UNAUTHORIZED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    AUTH_UNAVAILABLE = "AUTH_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMITED = "RATE_LIMITED"
    AI_NOT_CONFIGURED = "AI_NOT_CONFIGURED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = API_VERSION

    @classmethod
    def for_request(cls, request: Request) -> ResponseMeta:
        return cls(request_id=request_id_of(request))


class RateLimitDetails(BaseModel):
    # Lets clients back off without parsing the message.
    limit: int
    window_s: int


class ProviderFailureDetails(BaseModel):
    retryable: bool


class ValidationDetails(BaseModel):
    errors: list[dict[str, Any]]


ErrorDetails = RateLimitDetails | ProviderFailureDetails | ValidationDetails | dict[str, Any]


class ErrorBody(BaseModel):
    code: ErrorCode
    message: str
    details: ErrorDetails | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorBody
    meta: ResponseMeta


def assign_request_id(request: Request) -> str:
    # Called once per request by the middleware; a client-supplied id wins.
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    request.state.request_id = request_id
    return request_id


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", None) or assign_request_id(request)


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    return {"data": data, "meta": ResponseMeta.for_request(request).model_dump()}


def error_response(
    *,
    request: Request,
    code: ErrorCode,
    message: str,
    details: ErrorDetails | None = None,
) -> dict[str, Any]:
    envelope = ErrorEnvelope(
        error=ErrorBody(code=code, message=message, details=details),
        meta=ResponseMeta.for_request(request),
    )
    return envelope.model_dump(mode="json", exclude_none=True)
