from __future__ import annotations

from typing import AsyncIterator

from httpx import ASGITransport, AsyncClient
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from musterai.apps.api.main import create_app
from musterai.core.config import Settings, get_settings
from musterai.domain.models import Base
from musterai.persistence.db import build_session_factory
from musterai.providers.llm.fake import FakeLLMProvider


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Settings are cached per process; tests that patch env must not leak.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'musterai-test.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        llm_provider="fake",
        auth_enabled=True,
        auth_dev_bypass=False,
        auth_cache_ttl_s=0,
        quota_backend="sql",
    )


@pytest.fixture
async def engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    # File-backed sqlite with a fresh connection per session so concurrent writers queue on the lock.
    test_engine = create_async_engine(
        database_url,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def fake_provider() -> FakeLLMProvider:
    return FakeLLMProvider("Here is the drafted content.")


@pytest.fixture
def app(settings: Settings, session_factory, fake_provider: FakeLLMProvider):
    return create_app(settings=settings, session_factory=session_factory, llm_provider=fake_provider)


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
