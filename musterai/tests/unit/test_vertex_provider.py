from __future__ import annotations

import pytest

from musterai.core.config import Settings
from musterai.core.errors import ProviderConfigError, ProviderTimeoutError
from musterai.providers.llm.gemini_vertex import GeminiVertexProvider


def _settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite://",
        "google_cloud_project": "muster-test",
        "google_cloud_location": "us-central1",
        "gemini_model": "gemini-test",
    }
    values.update(overrides)
    return Settings(**values)


def test_vertex_provider_missing_config() -> None:
    with pytest.raises(ProviderConfigError, match="GOOGLE_CLOUD_PROJECT"):
        GeminiVertexProvider(_settings(google_cloud_project=None))


@pytest.mark.asyncio
async def test_vertex_deadline_is_a_retryable_timeout(monkeypatch) -> None:
    vertexai = pytest.importorskip("vertexai")
    generative_models = pytest.importorskip("vertexai.generative_models")
    from google.api_core.exceptions import DeadlineExceeded

    class _SlowModel:
        def __init__(self, model_name: str, system_instruction: str | None = None) -> None:
            self.model_name = model_name

        async def generate_content_async(self, contents, generation_config=None):
            raise DeadlineExceeded("deadline exceeded")

    monkeypatch.setattr(vertexai, "init", lambda **_kwargs: None)
    monkeypatch.setattr(generative_models, "GenerativeModel", _SlowModel)
    provider = GeminiVertexProvider(_settings())

    with pytest.raises(ProviderTimeoutError) as excinfo:
        await provider.complete(system="sys", turns=[{"role": "user", "content": "hi"}], max_tokens=10)

    assert excinfo.value.retryable is True
