"""Shared pytest fixtures for KWPilot tests."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import kwpilot.models.cache_models  # noqa: F401
import kwpilot.models.knowledge_base_models  # noqa: F401
import kwpilot.models.prompt_models  # noqa: F401
import kwpilot.models.queue_models  # noqa: F401
import kwpilot.models.session_models  # noqa: F401
import kwpilot.models.token_models  # noqa: F401


@pytest.fixture()
def engine():
    """In-memory SQLite shared across threads (TestClient runs handlers in a threadpool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine):
    """TestClient with get_session bound to the in-memory database. Lifespan is not run."""
    from kwpilot.database import get_session
    from kwpilot.main import app

    def _override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def no_sleep(monkeypatch):
    """Backoff, pacing and stagger sleeps return immediately; the mock records the delays."""
    fake = AsyncMock(return_value=None)
    monkeypatch.setattr(asyncio, "sleep", fake)
    return fake

