from __future__ import annotations

import pytest

from musterai.core.errors import (
    ProviderError,
    ProviderNotConfiguredError,
    ProviderTimeoutError,
)
from musterai.providers.llm.fake import FakeLLMProvider
from musterai.services.completion import CompletionInvoker


@pytest.mark.asyncio
async def test_missing_provider_fails_fast() -> None:
    invoker = CompletionInvoker(None, timeout_s=1.0, default_max_tokens=100)

    assert not invoker.configured
    with pytest.raises(ProviderNotConfiguredError, match="AI service not configured"):
        invoker.ensure_configured()
    with pytest.raises(ProviderNotConfiguredError):
        await invoker.complete("system", [{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_default_and_explicit_token_budgets() -> None:
    provider = FakeLLMProvider("done")
    invoker = CompletionInvoker(provider, timeout_s=1.0, default_max_tokens=4096)

    first = await invoker.complete("system", [{"role": "user", "content": "hi there"}])
    await invoker.complete("system", [{"role": "user", "content": "hi"}], max_tokens=500, fast=True)

    assert first.text == "done"
    assert first.prompt_tokens == 3
    assert first.completion_tokens == 1
    assert [call.max_tokens for call in provider.calls] == [4096, 500]
    assert [call.fast for call in provider.calls] == [False, True]


@pytest.mark.asyncio
async def test_slow_provider_times_out_as_retryable() -> None:
    invoker = CompletionInvoker(FakeLLMProvider(delay_s=0.5), timeout_s=0.01, default_max_tokens=10)

    with pytest.raises(ProviderTimeoutError) as excinfo:
        await invoker.complete("system", [{"role": "user", "content": "hi"}])

    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_unexpected_provider_errors_are_wrapped() -> None:
    invoker = CompletionInvoker(
        FakeLLMProvider(error=RuntimeError("socket closed")), timeout_s=1.0, default_max_tokens=10
    )

    with pytest.raises(ProviderError) as excinfo:
        await invoker.complete("system", [{"role": "user", "content": "hi"}])

    assert not excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, RuntimeError)
