from __future__ import annotations


class MusterError(Exception):
    """Base error for musterai."""


class InvalidArgumentError(MusterError):
    """Malformed or oversized request input."""


class PermissionDeniedError(MusterError):
    """Caller is not allowed to act on the requested resource."""


class NotFoundError(MusterError):
    """Requested document, project or section does not exist."""


class QuotaExceededError(MusterError):
    """Quota window for the key is exhausted."""

    def __init__(self, message: str, *, key: str, limit: int, window_s: int) -> None:
        super().__init__(message)
        self.key = key
        self.limit = limit
        self.window_s = window_s


class ProviderNotConfiguredError(MusterError):
    """No LLM provider credentials are configured."""


class ProviderConfigError(MusterError):
    """Missing or invalid provider configuration."""


class ProviderError(MusterError):
    """LLM provider call failed."""

    retryable: bool = False


class ProviderTimeoutError(ProviderError):
    """LLM provider call exceeded its deadline."""

    retryable = True
