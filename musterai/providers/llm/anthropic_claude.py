from __future__ import annotations

import logging
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from musterai.core.errors import ProviderConfigError, ProviderError, ProviderTimeoutError
from musterai.providers.llm.base import Completion

logger = logging.getLogger(__name__)


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        fast_model: str,
        client: Any | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigError("Anthropic config missing: set ANTHROPIC_API_KEY in .env.")
        # SDK retries are disabled; retry policy belongs to the caller.
        self._client = client or AsyncAnthropic(api_key=api_key, max_retries=0)
        self._model = model
        self._fast_model = fast_model

    async def complete(
        self,
        *,
        system: str,
        turns: list[dict[str, str]],
        max_tokens: int,
        fast: bool = False,
    ) -> Completion:
        model = self._fast_model if fast else self._model
        logger.info("anthropic_complete_start model=%s turns=%s", model, len(turns))
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system,
                messages=turns,
            )
        except anthropic.APITimeoutError as exc:
            logger.warning("anthropic_complete_timeout model=%s", model)
            raise ProviderTimeoutError("Anthropic request timed out.") from exc
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            logger.error("anthropic_complete_auth_error model=%s", model)
            raise ProviderError("Anthropic auth error: check ANTHROPIC_API_KEY.") from exc
        except anthropic.APIError as exc:
            logger.error("anthropic_complete_error model=%s", model, exc_info=exc)
            raise ProviderError("Anthropic request failed.") from exc

        text = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        return Completion(
            text=text,
            prompt_tokens=int(getattr(usage, "input_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "output_tokens", 0) or 0),
            model=getattr(response, "model", None) or model,
        )
