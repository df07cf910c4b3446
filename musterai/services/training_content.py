from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from musterai.agent import training_prompts
from musterai.agent.training_prompts import TrainingPrompt
from musterai.core.config import Settings, get_settings
from musterai.core.errors import (
    InvalidArgumentError,
    ProviderConfigError,
    ProviderError,
    QuotaExceededError,
)
from musterai.providers.llm.base import Completion
from musterai.services.audit import RequestContext, record_event
from musterai.services.completion import CompletionInvoker
from musterai.services.interpreter import ExtractionFailure, extract_structured, text_or_fallback
from musterai.services.quota import (
    ACTION_ENHANCE_CONTENT,
    ACTION_GENERATE_FLASHCARDS,
    ACTION_GENERATE_QUIZ,
    ACTION_GENERATE_SCENARIO,
    ACTION_SCENARIO_DEBRIEF,
    ACTION_WRONG_ANSWER_EXPLANATION,
    QuotaKey,
    QuotaLedgerLike,
    enforce_quota,
    training_policy,
)
from musterai.services.validation import (
    bounded_json,
    optional_text,
    require_count,
    require_text,
    text_items,
)


logger = logging.getLogger(__name__)

SCENARIO_MAX_TOKENS = 8192
WRONG_ANSWER_MAX_TOKENS = 500
DEBRIEF_MAX_TOKENS = 2048

WRONG_ANSWER_EMPTY_FALLBACK = "The correct answer is different. Please review the lesson material."
DEBRIEF_EMPTY_FALLBACK = (
    "A debrief could not be generated for this scenario. "
    "Review each decision against the procedure and try again."
)


@dataclass(frozen=True)
class GeneratedContent:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedQuiz:
    questions: list[dict[str, Any]]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedScenario:
    scenario: dict[str, Any] | None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedFlashcards:
    flashcards: list[dict[str, Any]]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WrongAnswerFeedback:
    feedback: str


@dataclass(frozen=True)
class ScenarioDebrief:
    debrief: str
    metadata: dict[str, Any] = field(default_factory=dict)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _structured_list(raw_text: str, key: str) -> list[dict[str, Any]]:
    # Degenerate result on any extraction failure; never placeholder items.
    value = extract_structured(raw_text, key)
    if isinstance(value, ExtractionFailure) or not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class TrainingContentService:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        quota_ledger: QuotaLedgerLike,
        invoker: CompletionInvoker,
        settings: Settings | None = None,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._quota_ledger = quota_ledger
        self._invoker = invoker
        self._settings = settings or get_settings()
        self._time_provider = time_provider or _utc_now

    def _content(self, value: Any, message: str) -> str:
        return require_text(value, max_chars=self._settings.max_training_content_chars, message=message)

    def _title(self, value: Any, label: str) -> str:
        return require_text(
            value,
            max_chars=self._settings.max_title_chars,
            message=f"Valid {label} is required",
        )

    def _label(self, value: Any, label: str) -> str | None:
        return optional_text(
            value,
            max_chars=self._settings.max_title_chars,
            message=f"{label} must be under {self._settings.max_title_chars} characters",
        )

    def _labels(self, values: Any, label: str) -> list[str]:
        return text_items(
            values,
            max_items=self._settings.max_list_items,
            max_chars=self._settings.max_title_chars,
            message=(
                f"{label} must have at most {self._settings.max_list_items} entries, "
                f"each under {self._settings.max_title_chars} characters"
            ),
        )

    def _count(self, value: Any, label: str) -> int:
        maximum = self._settings.max_generated_items
        return require_count(
            value,
            minimum=1,
            maximum=maximum,
            message=f"{label} must be between 1 and {maximum}",
        )

    def _metadata(self, completion: Completion, **extra: Any) -> dict[str, Any]:
        return {"model": completion.model, "generated_at": self._time_provider().isoformat(), **extra}

    async def _admit(self, action: str, subject_id: str, context: RequestContext | None) -> None:
        try:
            await enforce_quota(
                self._quota_ledger,
                QuotaKey(action, subject_id),
                training_policy(self._settings),
            )
        except QuotaExceededError:
            await record_event(
                self._session_factory,
                organization_id=None,
                actor_type="user",
                actor_id=subject_id,
                event_type=f"training.{action}.quota_exceeded",
                outcome="failure",
                resource_type="training_content",
                context=context,
                error_code="RATE_LIMITED",
            )
            raise

    async def _generate(
        self,
        action: str,
        subject_id: str,
        prompt: TrainingPrompt,
        *,
        context: RequestContext | None,
        max_tokens: int | None = None,
        fast: bool = False,
    ) -> Completion:
        self._invoker.ensure_configured()
        await self._admit(action, subject_id, context)
        return await self._invoker.complete(
            prompt.system,
            prompt.turns(),
            max_tokens=max_tokens,
            fast=fast,
        )

    async def enhance_lesson_content(
        self,
        subject_id: str,
        *,
        raw_content: str,
        lesson_title: str,
        category: str | None = None,
        target_audience: str | None = None,
        context: RequestContext | None = None,
    ) -> GeneratedContent:
        raw_content = self._content(raw_content, "Valid lesson content is required")
        lesson_title = self._title(lesson_title, "lesson title")
        category = self._label(category, "Category")
        audience = self._label(target_audience, "Target audience") or training_prompts.DEFAULT_TARGET_AUDIENCE

        prompt = training_prompts.enhance_lesson_prompt(
            raw_content=raw_content,
            lesson_title=lesson_title,
            category=category,
            target_audience=audience,
        )
        completion = await self._generate(ACTION_ENHANCE_CONTENT, subject_id, prompt, context=context)
        # Blank completions fall back to the caller's own content.
        enhanced = text_or_fallback(completion.text, raw_content)
        logger.info(
            "lesson_enhanced subject_id=%s original_len=%s enhanced_len=%s",
            subject_id,
            len(raw_content),
            len(enhanced),
        )
        return GeneratedContent(content=enhanced, metadata=self._metadata(completion))

    async def generate_quiz_from_content(
        self,
        subject_id: str,
        *,
        lesson_content: str,
        lesson_title: str,
        question_count: int = training_prompts.DEFAULT_QUESTION_COUNT,
        difficulty: str | None = None,
        question_types: Sequence[str] | None = None,
        context: RequestContext | None = None,
    ) -> GeneratedQuiz:
        lesson_content = self._content(lesson_content, "Valid lesson content is required")
        lesson_title = self._title(lesson_title, "lesson title")
        question_count = self._count(question_count, "Question count")
        difficulty = self._label(difficulty, "Difficulty") or training_prompts.DEFAULT_DIFFICULTY
        types = self._labels(question_types, "Question types") or list(
            training_prompts.DEFAULT_QUESTION_TYPES
        )

        prompt = training_prompts.quiz_prompt(
            lesson_content=lesson_content,
            lesson_title=lesson_title,
            question_count=question_count,
            difficulty=difficulty,
            question_types=types,
        )
        completion = await self._generate(ACTION_GENERATE_QUIZ, subject_id, prompt, context=context)
        questions = _structured_list(completion.text, "questions")
        logger.info("quiz_generated subject_id=%s question_count=%s", subject_id, len(questions))
        return GeneratedQuiz(
            questions=questions,
            metadata=self._metadata(completion, lesson_title=lesson_title, difficulty=difficulty),
        )

    async def generate_scenario_from_procedure(
        self,
        subject_id: str,
        *,
        procedure_content: str,
        procedure_title: str,
        scenario_type: str | None = None,
        difficulty: str | None = None,
        scenario_context: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> GeneratedScenario:
        procedure_content = self._content(procedure_content, "Valid procedure content is required")
        procedure_title = self._title(procedure_title, "procedure title")
        scenario_type = self._label(scenario_type, "Scenario type") or training_prompts.DEFAULT_SCENARIO_TYPE
        difficulty = self._label(difficulty, "Difficulty") or training_prompts.DEFAULT_DIFFICULTY
        scenario_context = bounded_json(
            scenario_context,
            max_chars=self._settings.max_context_chars,
            message=f"Scenario context must be under {self._settings.max_context_chars} characters",
        )

        prompt = training_prompts.scenario_prompt(
            procedure_content=procedure_content,
            procedure_title=procedure_title,
            scenario_type=scenario_type,
            difficulty=difficulty,
            context=scenario_context,
        )
        completion = await self._generate(
            ACTION_GENERATE_SCENARIO,
            subject_id,
            prompt,
            context=context,
            max_tokens=SCENARIO_MAX_TOKENS,
        )
        extracted = extract_structured(completion.text, "scenario")
        scenario = extracted if isinstance(extracted, dict) else None
        logger.info(
            "scenario_generated subject_id=%s parsed=%s node_count=%s",
            subject_id,
            scenario is not None,
            len(scenario.get("nodes") or []) if scenario else 0,
        )
        return GeneratedScenario(scenario=scenario, metadata=self._metadata(completion))

    async def generate_flashcards_from_content(
        self,
        subject_id: str,
        *,
        content: str,
        content_title: str,
        card_count: int = training_prompts.DEFAULT_CARD_COUNT,
        category: str | None = None,
        focus_areas: Sequence[str] | None = None,
        context: RequestContext | None = None,
    ) -> GeneratedFlashcards:
        content = self._content(content, "Valid content is required")
        content_title = self._title(content_title, "content title")
        card_count = self._count(card_count, "Card count")
        category = self._label(category, "Category") or training_prompts.DEFAULT_FLASHCARD_CATEGORY
        areas = self._labels(focus_areas, "Focus areas")

        prompt = training_prompts.flashcards_prompt(
            content=content,
            content_title=content_title,
            card_count=card_count,
            category=category,
            focus_areas=areas,
        )
        completion = await self._generate(ACTION_GENERATE_FLASHCARDS, subject_id, prompt, context=context)
        flashcards = _structured_list(completion.text, "flashcards")
        logger.info("flashcards_generated subject_id=%s card_count=%s", subject_id, len(flashcards))
        return GeneratedFlashcards(
            flashcards=flashcards,
            metadata=self._metadata(completion, category=category),
        )

    async def generate_wrong_answer_explanation(
        self,
        subject_id: str,
        *,
        question: str,
        user_answer: str,
        correct_answer: str,
        explanation: str | None = None,
        category: str | None = None,
        context: RequestContext | None = None,
    ) -> WrongAnswerFeedback:
        message = "Question, user answer, and correct answer are required"
        limit = self._settings.max_message_chars
        question = require_text(question, max_chars=limit, message=message)
        user_answer = require_text(user_answer, max_chars=limit, message=message)
        correct_answer = require_text(correct_answer, max_chars=limit, message=message)
        explanation = optional_text(
            explanation, max_chars=limit, message=f"Explanation must be under {limit} characters"
        )
        category = self._label(category, "Category")

        prompt = training_prompts.wrong_answer_prompt(
            question=question,
            user_answer=user_answer,
            correct_answer=correct_answer,
            explanation=explanation,
            category=category,
        )
        self._invoker.ensure_configured()
        await self._admit(ACTION_WRONG_ANSWER_EXPLANATION, subject_id, context)
        try:
            completion = await self._invoker.complete(
                prompt.system,
                prompt.turns(),
                max_tokens=WRONG_ANSWER_MAX_TOKENS,
                fast=True,
            )
        except (ProviderError, ProviderConfigError) as exc:
            # Learners always get feedback; provider failures degrade to the template.
            logger.warning(
                "wrong_answer_explanation_fallback subject_id=%s error=%s",
                subject_id,
                type(exc).__name__,
                exc_info=exc,
            )
            return WrongAnswerFeedback(
                feedback=training_prompts.wrong_answer_fallback(correct_answer, explanation)
            )
        return WrongAnswerFeedback(feedback=text_or_fallback(completion.text, WRONG_ANSWER_EMPTY_FALLBACK))

    async def generate_scenario_debrief(
        self,
        subject_id: str,
        *,
        scenario_title: str,
        decisions: Sequence[dict[str, Any]],
        outcome: dict[str, Any],
        time_spent: float | int | None = None,
        optimal_path: str | None = None,
        context: RequestContext | None = None,
    ) -> ScenarioDebrief:
        scenario_title = self._title(scenario_title, "scenario title")
        if not decisions or not isinstance(outcome, dict) or not outcome:
            raise InvalidArgumentError("Scenario data is required")
        if len(decisions) > self._settings.max_generated_items:
            raise InvalidArgumentError(
                f"At most {self._settings.max_generated_items} decisions can be debriefed"
            )
        for decision in decisions:
            if not isinstance(decision, dict):
                raise InvalidArgumentError("Scenario data is required")
            require_text(
                decision.get("choice"),
                max_chars=self._settings.max_title_chars,
                message=f"Each decision choice must be under {self._settings.max_title_chars} characters",
            )
        optional_text(
            outcome.get("description"),
            max_chars=self._settings.max_message_chars,
            message=f"Outcome description must be under {self._settings.max_message_chars} characters",
        )
        optimal_path = optional_text(
            optimal_path,
            max_chars=self._settings.max_message_chars,
            message=f"Optimal path must be under {self._settings.max_message_chars} characters",
        )

        prompt = training_prompts.debrief_prompt(
            scenario_title=scenario_title,
            decisions=list(decisions),
            outcome=outcome,
            time_spent=time_spent,
            optimal_path=optimal_path,
        )
        completion = await self._generate(
            ACTION_SCENARIO_DEBRIEF,
            subject_id,
            prompt,
            context=context,
            max_tokens=DEBRIEF_MAX_TOKENS,
        )
        logger.info(
            "scenario_debrief_generated subject_id=%s outcome_success=%s",
            subject_id,
            bool(outcome.get("is_success")),
        )
        return ScenarioDebrief(
            debrief=text_or_fallback(completion.text, DEBRIEF_EMPTY_FALLBACK),
            metadata=self._metadata(completion),
        )
