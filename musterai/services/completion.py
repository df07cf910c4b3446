from __future__ import annotations

import asyncio
import logging

from musterai.core.config import Settings, get_settings
from musterai.core.errors import (
    MusterError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)
from musterai.providers.llm.base import Completion, LLMProvider


logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "AI service not configured"


class CompletionInvoker:
    """Single provider call with its own deadline and no internal retries."""

    def __init__(
        self,
        provider: LLMProvider | None,
        *,
        timeout_s: float,
        default_max_tokens: int,
    ) -> None:
        self._provider = provider
        self._timeout_s = timeout_s
        self._default_max_tokens = default_max_tokens

    @classmethod
    def from_settings(cls, provider: LLMProvider | None, settings: Settings | None = None) -> CompletionInvoker:
        resolved = settings or get_settings()
        return cls(
            provider,
            timeout_s=resolved.llm_timeout_s,
            default_max_tokens=resolved.llm_max_tokens,
        )

    @property
    def configured(self) -> bool:
        return self._provider is not None

    def ensure_configured(self) -> None:
        if self._provider is None:
            raise ProviderNotConfiguredError(NOT_CONFIGURED_MESSAGE)

    async def complete(
        self,
        system: str,
        turns: list[dict[str, str]],
        *,
        max_tokens: int | None = None,
        fast: bool = False,
    ) -> Completion:
        provider = self._provider
        if provider is None:
            raise ProviderNotConfiguredError(NOT_CONFIGURED_MESSAGE)
        resolved_max_tokens = max_tokens or self._default_max_tokens
        try:
            completion = await asyncio.wait_for(
                provider.complete(
                    system=system,
                    turns=turns,
                    max_tokens=resolved_max_tokens,
                    fast=fast,
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "llm_complete_timeout provider=%s timeout_s=%s", provider.name, self._timeout_s
            )
            raise ProviderTimeoutError("LLM provider timed out.") from exc
        except MusterError:
            raise
        except Exception as exc:  # noqa: BLE001 - provider SDKs raise arbitrary error types
            logger.error("llm_complete_failed provider=%s", provider.name, exc_info=exc)
            raise ProviderError("LLM provider request failed.") from exc
        logger.info(
            "llm_complete_done provider=%s model=%s prompt_tokens=%s completion_tokens=%s",
            provider.name,
            completion.model,
            completion.prompt_tokens,
            completion.completion_tokens,
        )
        return completion
