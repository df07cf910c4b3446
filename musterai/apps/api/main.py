from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from musterai.apps.api.deps import Principal
from musterai.apps.api.errors import (
    http_exception_handler,
    muster_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from musterai.apps.api.response import API_VERSION, REQUEST_ID_HEADER, assign_request_id
from musterai.apps.api.routes.documents import router as documents_router
from musterai.apps.api.routes.health import router as health_router
from musterai.apps.api.routes.training import router as training_router
from musterai.core.config import Settings, get_settings
from musterai.core.errors import MusterError
from musterai.core.logging import configure_logging
from musterai.persistence.db import build_engine, build_session_factory
from musterai.providers.llm.base import LLMProvider
from musterai.providers.llm.factory import build_llm_provider
from musterai.services.cache import TtlCache
from musterai.services.orchestrator import build_orchestrator
from musterai.services.quota import QuotaLedgerLike


_PUBLIC_PATHS = {"/v1/health"}

# Distinguishes "build from settings" from an explicit None (no provider configured).
_PROVIDER_FROM_SETTINGS: Any = object()


def create_app(
    *,
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    llm_provider: LLMProvider | None = _PROVIDER_FROM_SETTINGS,
    quota_ledger: QuotaLedgerLike | None = None,
) -> FastAPI:
    resolved = settings or get_settings()
    configure_logging(resolved.log_level)
    app = FastAPI(title="MusterAI API")

    if session_factory is None:
        session_factory = build_session_factory(build_engine(resolved))
    if llm_provider is _PROVIDER_FROM_SETTINGS:
        llm_provider = build_llm_provider(resolved)

    app.state.settings = resolved
    app.state.session_factory = session_factory
    app.state.orchestrator = build_orchestrator(
        session_factory,
        llm_provider,
        resolved,
        quota_ledger=quota_ledger,
    )
    app.state.principal_cache = TtlCache[Principal](
        ttl_s=resolved.auth_cache_ttl_s,
        max_entries=resolved.auth_cache_max_entries,
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = assign_request_id(request)
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    app.add_exception_handler(MusterError, muster_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(documents_router, prefix=f"/{API_VERSION}")
    app.include_router(training_router, prefix=f"/{API_VERSION}")

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="MusterAI API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        # Inject bearer auth into every non-public operation.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title="MusterAI API",
            version=API_VERSION,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        for path, operations in schema.get("paths", {}).items():
            if path in _PUBLIC_PATHS:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
