from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from musterai.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from musterai.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    ai_configured: bool


@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request) -> dict:
    # Liveness only; reports whether generation endpoints can reach a provider.
    payload = HealthResponse(status="ok", ai_configured=request.app.state.orchestrator.invoker.configured)
    return success_response(request=request, data=payload)
