"""Shared fixtures for lead qualification engine tests."""

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure we use test/mock settings
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("PINECONE_API_KEY", "")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RESPONSE_DELAY_SECONDS", "0")
os.environ.setdefault("RETRY_BACKOFF_MIN", "0")
os.environ.setdefault("RETRY_BACKOFF_MAX", "0")
os.environ.setdefault("CALL_TIMEOUT_SECONDS", "5")

from database.models import Base  # noqa: E402
from database.repositories import ConversationRepository  # noqa: E402
from fakes import FakeCalendar, FakeCompletion, FakeKnowledgeSearch  # noqa: E402


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database; every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def conversation(session_factory):
    """A customer with an open web conversation."""
    async with session_factory() as session:
        repo = ConversationRepository(session)
        customer = await repo.create_customer(name="Dana Reyes", email="dana@example.com")
        conv = await repo.create(customer.id)
        await session.commit()
    return conv


@pytest.fixture
def fake_completion():
    return FakeCompletion()


@pytest.fixture
def fake_search():
    return FakeKnowledgeSearch()


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def client(fake_completion, fake_search, fake_calendar, tmp_path, monkeypatch):
    """FastAPI test client with collaborators replaced by doubles."""
    from api.main import app
    from api.services import get_services
    from config.settings import get_settings

    # Background turns and request handlers need separate connections.
    monkeypatch.setattr(get_settings(), "database_url", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")

    with TestClient(app) as test_client:
        get_services().build_orchestrator(
            completion=fake_completion,
            knowledge_search=fake_search,
            calendar=fake_calendar,
        )
        yield test_client
