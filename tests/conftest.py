"""Shared pytest fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from lectern.config import default_price_table
from lectern.db.connection import Database
from lectern.db.migrations import run_migrations
from lectern.db.repository import Repository
from lectern.db.vectors import ensure_vec_table, model_to_slug
from lectern.metering import UsageMeter
from lectern.rag.embedder import EmbeddingClient

EMBED_MODEL = "openai/text-embedding-3-small"
GEN_MODEL = "openai/gpt-4o-mini"
DIMS = 4


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    """Every test runs with a (fake) OpenAI key unless it removes it."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with migrations applied, closed after test."""
    db = Database(tmp_path / ".lectern.db")
    conn = db.connect()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, model_to_slug(EMBED_MODEL), DIMS)


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def meter(repo):
    return UsageMeter(repo, default_price_table())


@pytest.fixture
def embedder(meter):
    return EmbeddingClient(meter, EMBED_MODEL, DIMS)


def embedding_response(vector, prompt_tokens: int = 8) -> MagicMock:
    """Shape of a litellm.embedding() response."""
    response = MagicMock()
    response.data = [{"embedding": list(vector)}]
    response.usage = {"prompt_tokens": prompt_tokens, "total_tokens": prompt_tokens}
    return response


def completion_response(text: str, prompt_tokens: int = 100, completion_tokens: int = 20) -> MagicMock:
    """Shape of a litellm.completion() response."""
    response = MagicMock()
    response.choices[0].message.content = text
    response.usage = {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }
    return response


@pytest.fixture
def fake_embedding():
    return embedding_response


@pytest.fixture
def fake_completion():
    return completion_response
