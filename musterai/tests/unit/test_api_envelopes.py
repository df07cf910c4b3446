from __future__ import annotations

from starlette.requests import Request

from musterai.apps.api.errors import _classify
from musterai.apps.api.response import ErrorCode, assign_request_id, error_response, request_id_of
from musterai.core.errors import ProviderNotConfiguredError, ProviderTimeoutError, QuotaExceededError


def _request(headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/v1/training/quizzes", "headers": raw_headers})


def test_client_request_id_is_kept() -> None:
    request = _request({"X-Request-Id": "req-42"})

    assert assign_request_id(request) == "req-42"
    assert request_id_of(request) == "req-42"


def test_request_id_is_minted_once() -> None:
    request = _request()

    first = request_id_of(request)

    assert first
    assert request_id_of(request) == first


def test_quota_error_carries_limit_details() -> None:
    status_code, code, message, details = _classify(
        QuotaExceededError("Rate limit exceeded. Please try again later.", key="k", limit=50, window_s=3600)
    )
    payload = error_response(request=_request({"X-Request-Id": "req-1"}), code=code, message=message, details=details)

    assert status_code == 429
    assert payload == {
        "error": {
            "code": "RATE_LIMITED",
            "message": "Rate limit exceeded. Please try again later.",
            "details": {"limit": 50, "window_s": 3600},
        },
        "meta": {"request_id": "req-1", "api_version": "v1"},
    }


def test_provider_timeout_is_reported_retryable() -> None:
    status_code, code, message, details = _classify(ProviderTimeoutError("slow"))
    payload = error_response(request=_request(), code=code, message=message, details=details)

    assert status_code == 502
    assert payload["error"]["code"] == "INTERNAL_ERROR"
    assert payload["error"]["message"] == "AI service request failed"
    assert payload["error"]["details"] == {"retryable": True}


def test_not_configured_has_dedicated_code() -> None:
    status_code, code, _message, details = _classify(ProviderNotConfiguredError("AI service not configured"))

    assert status_code == 503
    assert code is ErrorCode.AI_NOT_CONFIGURED
    assert details is None
