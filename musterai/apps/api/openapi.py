from __future__ import annotations

from typing import Any

from musterai.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response(
        "Invalid argument",
        _error_example(
            code="INVALID_ARGUMENT",
            message="Message is required and must be under 10000 characters",
        ),
    ),
    401: _error_response(
        "Unauthorized",
        _error_example(code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    ),
    403: _error_response(
        "Forbidden",
        _error_example(code="AUTH_FORBIDDEN", message="User membership not active"),
    ),
    404: _error_response(
        "Not found",
        _error_example(code="NOT_FOUND", message="Section not found"),
    ),
    429: _error_response(
        "Rate limited",
        _error_example(
            code="RATE_LIMITED",
            message="Rate limit exceeded. Please try again later.",
            details={"limit": 100, "window_s": 3600},
        ),
    ),
    500: _error_response(
        "Internal server error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
    502: _error_response(
        "AI provider failure",
        _error_example(code="INTERNAL_ERROR", message="AI service request failed"),
    ),
    503: _error_response(
        "AI service not configured",
        _error_example(code="AI_NOT_CONFIGURED", message="AI service not configured"),
    ),
}
