from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from musterai.agent import training_prompts
from musterai.apps.api.deps import Principal, get_current_principal, get_orchestrator
from musterai.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from musterai.apps.api.response import SuccessEnvelope, success_response
from musterai.services.audit import get_request_context
from musterai.services.orchestrator import Orchestrator


router = APIRouter(prefix="/training", tags=["training"], responses=DEFAULT_ERROR_RESPONSES)


class EnhanceLessonRequest(BaseModel):
    raw_content: str | None = None
    lesson_title: str | None = None
    category: str | None = None
    target_audience: str | None = None


class QuizRequest(BaseModel):
    lesson_content: str | None = None
    lesson_title: str | None = None
    question_count: int = training_prompts.DEFAULT_QUESTION_COUNT
    difficulty: str | None = None
    question_types: list[str] | None = None


class ScenarioRequest(BaseModel):
    procedure_content: str | None = None
    procedure_title: str | None = None
    scenario_type: str | None = None
    difficulty: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class FlashcardsRequest(BaseModel):
    content: str | None = None
    content_title: str | None = None
    card_count: int = training_prompts.DEFAULT_CARD_COUNT
    category: str | None = None
    focus_areas: list[str] = Field(default_factory=list)


class WrongAnswerRequest(BaseModel):
    question: str | None = None
    user_answer: str | None = None
    correct_answer: str | None = None
    explanation: str | None = None
    category: str | None = None


class ScenarioDecision(BaseModel):
    choice: str
    was_optimal: bool = False


class ScenarioOutcome(BaseModel):
    is_success: bool
    description: str = ""


class ScenarioDebriefRequest(BaseModel):
    scenario_title: str | None = None
    decisions: list[ScenarioDecision] = Field(default_factory=list)
    outcome: ScenarioOutcome | None = None
    time_spent: float | None = None
    optimal_path: str | None = None


class EnhancedContentResponse(BaseModel):
    content: str
    metadata: dict[str, Any]


class QuizResponse(BaseModel):
    questions: list[dict[str, Any]]
    metadata: dict[str, Any]


class ScenarioResponse(BaseModel):
    scenario: dict[str, Any] | None
    metadata: dict[str, Any]


class FlashcardsResponse(BaseModel):
    flashcards: list[dict[str, Any]]
    metadata: dict[str, Any]


class WrongAnswerResponse(BaseModel):
    feedback: str


class ScenarioDebriefResponse(BaseModel):
    debrief: str
    metadata: dict[str, Any]


@router.post(
    "/lessons/enhance",
    response_model=SuccessEnvelope[EnhancedContentResponse] | EnhancedContentResponse,
)
async def enhance_lesson_content(
    payload: EnhanceLessonRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.enhance_lesson_content(
        principal.subject_id,
        raw_content=payload.raw_content,
        lesson_title=payload.lesson_title,
        category=payload.category,
        target_audience=payload.target_audience,
        context=get_request_context(request),
    )
    data = EnhancedContentResponse(content=result.content, metadata=result.metadata)
    return success_response(request=request, data=data)


@router.post("/quizzes", response_model=SuccessEnvelope[QuizResponse] | QuizResponse)
async def generate_quiz_from_content(
    payload: QuizRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.generate_quiz_from_content(
        principal.subject_id,
        lesson_content=payload.lesson_content,
        lesson_title=payload.lesson_title,
        question_count=payload.question_count,
        difficulty=payload.difficulty,
        question_types=payload.question_types,
        context=get_request_context(request),
    )
    data = QuizResponse(questions=result.questions, metadata=result.metadata)
    return success_response(request=request, data=data)


@router.post("/scenarios", response_model=SuccessEnvelope[ScenarioResponse] | ScenarioResponse)
async def generate_scenario_from_procedure(
    payload: ScenarioRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.generate_scenario_from_procedure(
        principal.subject_id,
        procedure_content=payload.procedure_content,
        procedure_title=payload.procedure_title,
        scenario_type=payload.scenario_type,
        difficulty=payload.difficulty,
        scenario_context=payload.context,
        context=get_request_context(request),
    )
    data = ScenarioResponse(scenario=result.scenario, metadata=result.metadata)
    return success_response(request=request, data=data)


@router.post("/flashcards", response_model=SuccessEnvelope[FlashcardsResponse] | FlashcardsResponse)
async def generate_flashcards_from_content(
    payload: FlashcardsRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.generate_flashcards_from_content(
        principal.subject_id,
        content=payload.content,
        content_title=payload.content_title,
        card_count=payload.card_count,
        category=payload.category,
        focus_areas=payload.focus_areas,
        context=get_request_context(request),
    )
    data = FlashcardsResponse(flashcards=result.flashcards, metadata=result.metadata)
    return success_response(request=request, data=data)


@router.post(
    "/wrong-answer-explanations",
    response_model=SuccessEnvelope[WrongAnswerResponse] | WrongAnswerResponse,
)
async def generate_wrong_answer_explanation(
    payload: WrongAnswerRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.generate_wrong_answer_explanation(
        principal.subject_id,
        question=payload.question,
        user_answer=payload.user_answer,
        correct_answer=payload.correct_answer,
        explanation=payload.explanation,
        category=payload.category,
        context=get_request_context(request),
    )
    return success_response(request=request, data=WrongAnswerResponse(feedback=result.feedback))


@router.post(
    "/scenario-debriefs",
    response_model=SuccessEnvelope[ScenarioDebriefResponse] | ScenarioDebriefResponse,
)
async def generate_scenario_debrief(
    payload: ScenarioDebriefRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.training.generate_scenario_debrief(
        principal.subject_id,
        scenario_title=payload.scenario_title,
        decisions=[decision.model_dump() for decision in payload.decisions],
        outcome=payload.outcome.model_dump() if payload.outcome is not None else {},
        time_spent=payload.time_spent,
        optimal_path=payload.optimal_path,
        context=get_request_context(request),
    )
    data = ScenarioDebriefResponse(debrief=result.debrief, metadata=result.metadata)
    return success_response(request=request, data=data)
