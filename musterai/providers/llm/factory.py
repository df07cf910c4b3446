from __future__ import annotations

import logging

from musterai.core.config import Settings, get_settings
from musterai.core.errors import ProviderConfigError
from musterai.providers.llm.base import LLMProvider
from musterai.providers.llm.fake import FakeLLMProvider

logger = logging.getLogger(__name__)


def build_llm_provider(settings: Settings | None = None) -> LLMProvider | None:
    # Resolved once at startup; None means every generation fails fast as not configured.
    resolved = settings or get_settings()
    provider = (resolved.llm_provider or "anthropic").lower()

    if provider == "fake":
        return FakeLLMProvider(resolved.fake_llm_response)
    try:
        if provider == "vertex":
            from musterai.providers.llm.gemini_vertex import GeminiVertexProvider

            return GeminiVertexProvider(resolved)
        if provider == "anthropic":
            from musterai.providers.llm.anthropic_claude import AnthropicProvider

            return AnthropicProvider(
                api_key=resolved.anthropic_api_key,
                model=resolved.anthropic_model,
                fast_model=resolved.anthropic_fast_model,
            )
    except ProviderConfigError as exc:
        logger.warning("llm_provider_not_configured provider=%s reason=%s", provider, exc)
        return None
    logger.warning("llm_provider_unknown provider=%s", provider)
    return None
