"""Pytest configuration and fixtures."""
from __future__ import annotations

import os

os.environ.setdefault("ADPILOT_ACCESS_TOKEN_SECRET", "test-secret-for-unit-tests-only-32char")
os.environ.setdefault("ADPILOT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import logging
import uuid
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from adpilot.api.limits import limiter
from adpilot.core.chat.context import ContextAssembler
from adpilot.core.chat.finish import FinishHandler
from adpilot.core.chat.orchestrator import ChatOrchestrator, get_chat_orchestrator
from adpilot.core.tasks import DetachedTaskGroup
from adpilot.db import database
from adpilot.db.database import create_engine_for_url, create_schema
from adpilot.main import app
from tests.fakes import OTHER_USER_ID, TEST_USER_ID, FakeCampaignData, FakeExecutor, FakeLLM


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


# -----------------------------------------------------------------------------
# Database
# -----------------------------------------------------------------------------

async def _install_engine(url: str, **kwargs: Any):
    engine = create_engine_for_url(url, **kwargs)
    await create_schema(engine)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    old_engine, old_factory = database._engine, database._async_session_factory
    database._engine = engine
    database._async_session_factory = factory
    return engine, factory, (old_engine, old_factory)


async def _restore_engine(engine, previous) -> None:
    database._engine, database._async_session_factory = previous
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory():
    """In-memory database wired in as the app's database."""
    engine, factory, previous = await _install_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        yield factory
    finally:
        await _restore_engine(engine, previous)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database: one connection per session, for concurrency tests."""
    engine, factory, previous = await _install_engine(f"sqlite+aiosqlite:///{tmp_path / 'adpilot-test.db'}")
    try:
        yield factory
    finally:
        await _restore_engine(engine, previous)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# Orchestrator and HTTP client
# -----------------------------------------------------------------------------

@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def campaign_data() -> FakeCampaignData:
    return FakeCampaignData(offer="Free roof inspection for homeowners in Austin")


@pytest.fixture
def tasks() -> DetachedTaskGroup:
    return DetachedTaskGroup("test")


@pytest.fixture
def orchestrator(session_factory, fake_llm, fake_executor, campaign_data, tasks) -> ChatOrchestrator:
    return ChatOrchestrator(
        assembler=ContextAssembler(metrics=campaign_data, plans=campaign_data, offers=campaign_data),
        llm=fake_llm,
        executor=fake_executor,
        finish_handler=FinishHandler(session_factory, tasks, summarizer=fake_llm, base_delay=0),
        tasks=tasks,
    )


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture
async def client(session_factory, orchestrator):
    app.dependency_overrides[get_chat_orchestrator] = lambda: orchestrator
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------

@pytest.fixture
def auth_headers() -> dict[str, str]:
    from adpilot.auth.tokens import create_access_token
    return {"Authorization": f"Bearer {create_access_token(TEST_USER_ID, expires_hours=1)}"}


@pytest.fixture
def other_auth_headers() -> dict[str, str]:
    from adpilot.auth.tokens import create_access_token
    return {"Authorization": f"Bearer {create_access_token(OTHER_USER_ID, expires_hours=1)}"}


@pytest.fixture
def campaign_id() -> str:
    return str(uuid.uuid4())
