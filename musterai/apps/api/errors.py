from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from musterai.apps.api.response import (
    ErrorCode,
    ErrorDetails,
    ProviderFailureDetails,
    RateLimitDetails,
    ValidationDetails,
    error_response,
)
from musterai.core.errors import (
    InvalidArgumentError,
    MusterError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ProviderNotConfiguredError,
    QuotaExceededError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_ARGUMENT,
    401: ErrorCode.AUTH_UNAUTHORIZED,
    403: ErrorCode.AUTH_FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    429: ErrorCode.RATE_LIMITED,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

PROVIDER_FAILURE_MESSAGE = "AI service request failed"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def _code_for(status_code: int, explicit: Any = None) -> ErrorCode:
    if explicit is not None:
        try:
            return ErrorCode(str(explicit))
        except ValueError:
            pass
    return _DEFAULT_ERROR_CODES.get(status_code, ErrorCode.UNKNOWN_ERROR)


def _split_detail(detail: Any, status_code: int) -> tuple[ErrorCode, str, dict[str, Any] | None]:
    # HTTPException details are either a plain message or a {code, message, ...} dict.
    if isinstance(detail, dict):
        code = _code_for(status_code, detail.get("code"))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _code_for(status_code), detail, None
    return _code_for(status_code), "Request failed", None


def _classify(exc: MusterError) -> tuple[int, ErrorCode, str, ErrorDetails | None]:
    # Validation, authorization and quota reasons are surfaced verbatim; the rest stay generic.
    if isinstance(exc, InvalidArgumentError):
        return 400, ErrorCode.INVALID_ARGUMENT, str(exc), None
    if isinstance(exc, PermissionDeniedError):
        return 403, ErrorCode.AUTH_FORBIDDEN, str(exc), None
    if isinstance(exc, NotFoundError):
        return 404, ErrorCode.NOT_FOUND, str(exc), None
    if isinstance(exc, QuotaExceededError):
        details = RateLimitDetails(limit=exc.limit, window_s=exc.window_s)
        return 429, ErrorCode.RATE_LIMITED, str(exc), details
    if isinstance(exc, ProviderNotConfiguredError):
        return 503, ErrorCode.AI_NOT_CONFIGURED, str(exc), None
    if isinstance(exc, ProviderError):
        details = ProviderFailureDetails(retryable=exc.retryable)
        return 502, ErrorCode.INTERNAL_ERROR, PROVIDER_FAILURE_MESSAGE, details
    return 500, ErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE, None


async def muster_exception_handler(request: Request, exc: MusterError) -> JSONResponse:
    status_code, code, message, details = _classify(exc)
    if status_code >= 500:
        logger.error(
            "request_failed path=%s status=%s error=%s",
            request.url.path,
            status_code,
            type(exc).__name__,
            exc_info=exc,
        )
    else:
        logger.info(
            "request_rejected path=%s status=%s code=%s",
            request.url.path,
            status_code,
            code.value,
        )
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code)


async def http_exception_handler(
    request: Request, exc: HTTPException | StarletteHTTPException
) -> JSONResponse:
    # Router-level 404/405 responses get the same envelope as handler errors.
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed bodies are invalid arguments like any other boundary check.
    errors = jsonable_encoder([{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()])
    payload = error_response(
        request=request,
        code=ErrorCode.INVALID_ARGUMENT,
        message="Invalid request body",
        details=ValidationDetails(errors=errors),
    )
    return JSONResponse(content=payload, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    payload = error_response(
        request=request,
        code=ErrorCode.INTERNAL_ERROR,
        message=INTERNAL_ERROR_MESSAGE,
    )
    return JSONResponse(content=payload, status_code=500)
