from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from musterai.apps.api.deps import Principal, get_current_principal, get_orchestrator
from musterai.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from musterai.apps.api.response import SuccessEnvelope, success_response
from musterai.services.audit import get_request_context
from musterai.services.conversation import TokenUsage
from musterai.services.orchestrator import Orchestrator


router = APIRouter(tags=["documents"], responses=DEFAULT_ERROR_RESPONSES)


class TokenUsageResponse(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class MessageRequest(BaseModel):
    # Length and blank checks happen in the service so every caller gets the same message.
    message: str | None = Field(default=None)


class MessageResponse(BaseModel):
    message: str
    token_usage: TokenUsageResponse
    knowledge_base_docs_used: int


class SectionGenerateRequest(BaseModel):
    prompt: str | None = Field(default=None)


class SectionGenerateResponse(BaseModel):
    success: bool
    content: str
    section_id: str
    token_usage: TokenUsageResponse


class OrganizationUsageResponse(BaseModel):
    organization_id: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    message_count: int
    document_count: int


def _usage_response(usage: TokenUsage) -> TokenUsageResponse:
    return TokenUsageResponse(**usage.as_dict(), total_tokens=usage.total_tokens)


@router.post(
    "/documents/{document_id}/messages",
    response_model=SuccessEnvelope[MessageResponse] | MessageResponse,
)
async def send_message(
    document_id: str,
    payload: MessageRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    reply = await orchestrator.documents.send_message(
        principal.subject_id,
        document_id,
        payload.message,
        context=get_request_context(request),
    )
    data = MessageResponse(
        message=reply.message,
        token_usage=_usage_response(reply.token_usage),
        knowledge_base_docs_used=reply.knowledge_base_docs_used,
    )
    return success_response(request=request, data=data)


@router.post(
    "/documents/{document_id}/sections/{section_id}/generate",
    response_model=SuccessEnvelope[SectionGenerateResponse] | SectionGenerateResponse,
)
async def generate_section_content(
    document_id: str,
    section_id: str,
    payload: SectionGenerateRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.documents.generate_section_content(
        principal.subject_id,
        document_id,
        section_id,
        payload.prompt,
        context=get_request_context(request),
    )
    data = SectionGenerateResponse(
        success=result.success,
        content=result.content,
        section_id=result.section_id,
        token_usage=_usage_response(result.token_usage),
    )
    return success_response(request=request, data=data)


@router.get(
    "/organizations/{organization_id}/token-usage",
    response_model=SuccessEnvelope[OrganizationUsageResponse] | OrganizationUsageResponse,
)
async def get_organization_token_usage(
    organization_id: str,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    totals = await orchestrator.documents.get_organization_token_usage(
        principal.subject_id, organization_id
    )
    data = OrganizationUsageResponse(
        organization_id=organization_id,
        prompt_tokens=totals.prompt_tokens,
        completion_tokens=totals.completion_tokens,
        total_tokens=totals.total_tokens,
        message_count=totals.message_count,
        document_count=totals.document_count,
    )
    return success_response(request=request, data=data)
