"""Pytest fixtures for EOP assistant tests."""
import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before anything imports eop_assistant.config
_TMP_DIR = tempfile.mkdtemp(prefix="eop-assistant-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_TMP_DIR) / 'app.db'}"
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("GEMINI_API_KEY", "")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from eop_assistant.services.llm_provider import LLMProvider

INTENT_MARKER = 'Reply with only one word: "conversation" or "validation".'
VALIDATION_MARKER = "You're validating a user's answer"
CASUAL_MARKER = "seems casual"
NARRATIVE_MARKER = "section for an Emergency Operations Plan proposal"

CASUAL_TEXT = "Hi there! 👋 Let's get back to your plan."
COACHING_TEXT = "❗We're expecting something like: a real answer. Could you please try again?"


class FakeLLM(LLMProvider):
    """Answers by prompt kind so a whole conversation can run without a model.

    Messages in *small_talk* classify as conversation; answers in *invalid*
    fail validation; everything else is VALID. Set *error* to make every call raise.
    """

    def __init__(self, small_talk=("hello", "how are you?"), invalid=("nope",), narrative="Narrative text.", error=None):
        self.small_talk = tuple(small_talk)
        self.invalid = tuple(invalid)
        self.narrative = narrative
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str, **kwargs) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if INTENT_MARKER in prompt:
            for m in self.small_talk:
                if f'Now classify the following:\n"{m}"' in prompt:
                    return "conversation"
            return "validation"
        if VALIDATION_MARKER in prompt:
            for a in self.invalid:
                if f'A: "{a}"' in prompt:
                    return COACHING_TEXT
            return "VALID"
        if CASUAL_MARKER in prompt:
            return CASUAL_TEXT
        if NARRATIVE_MARKER in prompt:
            return self.narrative
        return ""

    def calls(self, marker: str) -> int:
        return sum(1 for p in self.prompts if marker in p)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def client(fake_llm):
    """FastAPI test client with the LLM dependency replaced and per-test app state reset."""
    from eop_assistant.main import app, get_llm
    from eop_assistant.services.broadcast import ProposalBroadcaster
    from eop_assistant.services.proposal_cache import ProposalCache
    from eop_assistant.services.rules_bank import RuleCatalogCache

    app.dependency_overrides[get_llm] = lambda: fake_llm
    app.state.catalog_cache = RuleCatalogCache()
    app.state.proposal_cache = ProposalCache(ttl_seconds=300.0)
    app.state.broadcaster = ProposalBroadcaster(queue_size=10)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db_session(tmp_path):
    """AsyncSession on a fresh SQLite database with all tables created."""
    from eop_assistant.init_db import create_tables

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await create_tables(engine)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory for tests that need two independent sessions on one database."""
    from eop_assistant.init_db import create_tables

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}", poolclass=NullPool)
    await create_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
