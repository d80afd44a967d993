"""Tests for the ingestion pipeline (normalize → embed → persist) and deletion."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from lectern.db.models import INLINE_ORIGIN, ContentItem
from lectern.errors import EmbeddingFailure, EmptyContentError, NotFound
from lectern.ingest.normalizer import Normalizer
from lectern.ingest.pipeline import Ingestor

VECTOR = [0.1, 0.2, 0.3, 0.4]


@pytest.fixture
def ingestor(repo, embedder, vec_table) -> Ingestor:
    return Ingestor(repo, Normalizer(), embedder, vec_table)


def _vec_count(conn, table: str) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# --- Ingest ---

def test_ingest_text_persists_item(ingestor, repo, tmp_db, vec_table, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)) as mock_embed:
        item = ingestor.ingest_text("Fox", "The quick brown fox")

    assert item.id is not None
    assert item.title == "Fox"
    assert item.content == "The quick brown fox"
    assert item.origin == INLINE_ORIGIN
    assert item.created_at is not None
    assert mock_embed.call_args.kwargs["input"] == ["The quick brown fox"]
    assert _vec_count(tmp_db, vec_table) == 1
    assert [found.id for found, _ in repo.search_fts("fox")] == [item.id]


def test_ingest_records_embedding_usage(ingestor, repo, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR, prompt_tokens=12)):
        ingestor.ingest_text("Fox", "The quick brown fox")

    (record,) = repo.list_usage()
    assert record.model == "openai/text-embedding-3-small"
    assert record.prompt_tokens == 12
    assert record.completion_tokens == 0


def test_ingest_embeds_only_the_prefix(ingestor, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)) as mock_embed:
        item = ingestor.ingest_text("Long", "z" * 30_000)

    assert len(item.content) == 25_000
    assert len(mock_embed.call_args.kwargs["input"][0]) == 15_000


def test_empty_content_never_calls_the_model(ingestor, repo):
    with patch("litellm.embedding") as mock_embed:
        with pytest.raises(EmptyContentError):
            ingestor.ingest_text("Blank", "   ")
    mock_embed.assert_not_called()
    assert repo.count_items() == 0


def test_embedding_failure_writes_nothing(ingestor, repo, tmp_db, vec_table):
    with patch("litellm.embedding", side_effect=RuntimeError("503 upstream")):
        with pytest.raises(EmbeddingFailure, match="content"):
            ingestor.ingest_text("Fox", "The quick brown fox")

    assert repo.count_items() == 0
    assert _vec_count(tmp_db, vec_table) == 0
    assert repo.list_usage() == []


def test_ingest_file_keeps_origin(ingestor, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        item = ingestor.ingest_file(
            b"# Heading\n\nbody", "application/octet-stream", "readme.md", origin="/up/abc.md"
        )
    assert item.title == "readme.md"
    assert item.media_type == "text/markdown"
    assert item.origin == "/up/abc.md"


def test_ingest_url_uses_page_title(ingestor, fake_embedding):
    html = b"<html><head><title>Docs</title></head><body><main><p>Guide.</p></main></body></html>"
    with patch("lectern.ingest.web.WebExtractor._check_ssrf"), \
         patch("lectern.ingest.web.WebExtractor._fetch", return_value=(html, "text/html")), \
         patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        item = ingestor.ingest_url("https://example.com/docs")

    assert item.title == "Docs"
    assert item.origin == "https://example.com/docs"
    assert item.media_type == "text/html"


# --- Read ---

def test_get_missing_raises_not_found(ingestor):
    with pytest.raises(NotFound, match="Content item 99 not found"):
        ingestor.get(99)


def test_list_recent_newest_first(ingestor, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        first = ingestor.ingest_text("one", "first text")
        second = ingestor.ingest_text("two", "second text")
    assert [i.id for i in ingestor.list_recent()] == [second.id, first.id]
    assert [i.id for i in ingestor.list_recent(1)] == [second.id]


# --- Delete ---

def test_delete_then_get_raises_not_found(ingestor, repo, tmp_db, vec_table, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        item = ingestor.ingest_text("Fox", "The quick brown fox")

    deleted = ingestor.delete(item.id)
    assert deleted.id == item.id
    with pytest.raises(NotFound):
        ingestor.get(item.id)
    assert repo.search_fts("fox") == []
    assert _vec_count(tmp_db, vec_table) == 0


def test_delete_missing_raises_not_found(ingestor):
    with pytest.raises(NotFound):
        ingestor.delete(42)


def test_delete_removes_origin_file(ingestor, tmp_path, fake_embedding):
    upload = tmp_path / "upload.txt"
    upload.write_text("stored bytes", encoding="utf-8")
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        item = ingestor.ingest_file(upload.read_bytes(), "text/plain", "notes.txt", origin=str(upload))

    ingestor.delete(item.id)
    assert not upload.exists()


def test_delete_with_missing_file_still_succeeds(ingestor, repo, tmp_path, caplog):
    item = ContentItem(
        title="gone.txt",
        content="x",
        origin=str(tmp_path / "gone.txt"),
        media_type="text/plain",
        embedding=VECTOR,
    )
    repo.add_item(item, ingestor._vec_table)

    with caplog.at_level(logging.WARNING, logger="lectern.ingest.pipeline"):
        ingestor.delete(item.id)

    assert repo.get_item(item.id) is None
    assert "already gone" in caplog.text


def test_delete_logs_unlink_error(ingestor, repo, tmp_path, caplog):
    item = ContentItem(
        title="locked.txt",
        content="x",
        origin=str(tmp_path / "locked.txt"),
        media_type="text/plain",
        embedding=VECTOR,
    )
    repo.add_item(item, ingestor._vec_table)

    with patch.object(Path, "unlink", side_effect=PermissionError("denied")), \
         caplog.at_level(logging.ERROR, logger="lectern.ingest.pipeline"):
        ingestor.delete(item.id)

    assert repo.get_item(item.id) is None
    assert "Could not remove file" in caplog.text


def test_delete_inline_item_touches_no_files(ingestor, fake_embedding):
    with patch("litellm.embedding", return_value=fake_embedding(VECTOR)):
        item = ingestor.ingest_text("Fox", "The quick brown fox")
    with patch.object(Path, "unlink") as unlink:
        ingestor.delete(item.id)
    unlink.assert_not_called()
