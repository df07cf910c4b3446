from __future__ import annotations

import logging

from musterai.core.config import Settings, get_settings
from musterai.core.errors import ProviderConfigError, ProviderError, ProviderTimeoutError
from musterai.providers.llm.base import Completion

logger = logging.getLogger(__name__)


class GeminiVertexProvider:
    name = "vertex"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._project, self._location, self._model = self._validate_config()
        self._initialized = False

    def _validate_config(self) -> tuple[str, str, str]:
        # Fail fast to avoid confusing downstream SDK errors.
        project = self._settings.google_cloud_project
        location = self._settings.google_cloud_location
        model = self._settings.gemini_model
        missing = []
        if not project:
            missing.append("GOOGLE_CLOUD_PROJECT")
        if not location:
            missing.append("GOOGLE_CLOUD_LOCATION")
        if not model:
            missing.append("GEMINI_MODEL")
        if missing:
            raise ProviderConfigError(
                f"Vertex config missing: set {', '.join(missing)} in .env."
            )
        return project, location, model

    def _format_contents(self, turns: list[dict[str, str]]) -> list:
        from vertexai.generative_models import Content, Part

        # Gemini names the assistant role "model".
        contents = []
        for turn in turns:
            role = "model" if turn.get("role") == "assistant" else "user"
            contents.append(Content(role=role, parts=[Part.from_text(turn.get("content", ""))]))
        return contents

    async def complete(
        self,
        *,
        system: str,
        turns: list[dict[str, str]],
        max_tokens: int,
        fast: bool = False,
    ) -> Completion:
        try:
            from vertexai import init
            from vertexai.generative_models import GenerationConfig, GenerativeModel
            from google.auth.exceptions import DefaultCredentialsError, RefreshError
            from google.api_core.exceptions import DeadlineExceeded, PermissionDenied, Unauthenticated
        except Exception as exc:  # pragma: no cover - import errors are environment-specific
            raise ProviderConfigError(
                "Vertex AI SDK not available. Install google-cloud-aiplatform."
            ) from exc

        model_name = self._settings.gemini_fast_model if fast else self._model
        try:
            logger.info("vertex_complete_start model=%s turns=%s", model_name, len(turns))
            if not self._initialized:
                init(project=self._project, location=self._location)
                self._initialized = True
            model = GenerativeModel(model_name, system_instruction=system)
            response = await model.generate_content_async(
                self._format_contents(turns),
                generation_config=GenerationConfig(max_output_tokens=max_tokens),
            )
        except (DefaultCredentialsError, RefreshError, PermissionDenied, Unauthenticated) as exc:
            logger.warning("vertex_complete_auth_error model=%s", model_name)
            raise ProviderError(
                "Vertex auth error: run `gcloud auth application-default login`."
            ) from exc
        except DeadlineExceeded as exc:
            logger.warning("vertex_complete_deadline model=%s", model_name)
            raise ProviderTimeoutError("Vertex request exceeded its deadline.") from exc

        try:
            text = response.text or ""
        except ValueError:
            # Blocked or empty candidates have no text part.
            text = ""
        usage = getattr(response, "usage_metadata", None)
        return Completion(
            text=text,
            prompt_tokens=int(getattr(usage, "prompt_token_count", 0) or 0),
            completion_tokens=int(getattr(usage, "candidates_token_count", 0) or 0),
            model=model_name,
        )
