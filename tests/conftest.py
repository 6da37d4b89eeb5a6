"""Shared test fixtures and configuration."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure we're in demo mode during tests (no real API keys, no PostgreSQL)
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.config import Settings  # noqa: E402
from app.database import make_engine, make_session_factory  # noqa: E402
from app.models import Base  # noqa: E402


VALID_HTML = (
    '<div class="llm-container">'
    '<h2 class="llm-title">Building a Prototype</h2>'
    '<p class="llm-text">In this phase you will turn your idea into a working prototype. '
    "We will walk through choosing a tool, sketching the flow of your app and testing "
    "it with a few real examples so you can see how the pieces fit together.</p>"
    '<h3 class="llm-subtitle">What you will practice</h3>'
    '<p class="llm-text">Planning small iterations, checking results against your goal '
    "and deciding what to improve next. Each step builds confidence for the next phase.</p>"
    '<div class="llm-task"><button class="llm-button" data-interaction-id="phase-3-start">'
    "Start building</button></div>"
    "</div>"
)


@pytest.fixture
def valid_html():
    return VALID_HTML


@pytest.fixture
def test_settings():
    """Settings with a fake key, short budgets and no backoff delay."""
    return Settings(
        anthropic_api_key="test-key",
        database_url="sqlite+aiosqlite:///:memory:",
        generation_timeout_seconds=1.0,
        llm_retry_base_delay=0.0,
        wizard_timeout_seconds=0.5,
    )


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'learnpath.db'}"


@pytest.fixture
async def engine(db_url):
    eng = make_engine(db_url)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def fake_llm(valid_html):
    """Configured LLM client whose calls are AsyncMocks."""
    llm = MagicMock()
    llm.is_configured = True
    llm.complete = AsyncMock(return_value=valid_html)
    llm.complete_json = AsyncMock(return_value={})
    return llm
