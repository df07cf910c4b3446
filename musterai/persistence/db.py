from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from musterai.core.config import Settings, get_settings


def engine_kwargs(settings: Settings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    # Configure bounded asyncpg pools for predictable latency under load.
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = max(1, int(settings.api_db_pool_size))
        kwargs["max_overflow"] = max(0, int(settings.api_db_max_overflow))
        kwargs["pool_timeout"] = 30
        kwargs["pool_recycle"] = 1800
        if settings.api_db_statement_timeout_ms > 0:
            kwargs["connect_args"] = {
                "server_settings": {"statement_timeout": str(int(settings.api_db_statement_timeout_ms))}
            }
    return kwargs


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url, **engine_kwargs(settings))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM rows readable after the request commits.
    return async_sessionmaker(bind, expire_on_commit=False)


settings = get_settings()
engine = build_engine(settings)
SessionLocal = build_session_factory(engine)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
