"""Tests for the Repository: items, vector + FTS search, notebooks, usage ledger."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from lectern.db.models import INLINE_ORIGIN, ContentItem, UsageRecord
from lectern.db.repository import Repository, _next_timestamp, fts_query
from lectern.db.vectors import ensure_vec_table


def _item(title="doc", content="hello world", embedding=(1.0, 0.0, 0.0, 0.0), **kw):
    return ContentItem(
        title=title,
        content=content,
        origin=kw.pop("origin", INLINE_ORIGIN),
        media_type=kw.pop("media_type", "text/plain"),
        embedding=list(embedding) if embedding is not None else None,
        **kw,
    )


# ------------------------------------------------------------------
# fts_query
# ------------------------------------------------------------------

def test_fts_query_drops_stopwords_and_quotes_terms():
    assert fts_query("What is the capital of France?") == '"capital" "france"'


def test_fts_query_only_stopwords_returns_none():
    assert fts_query("what is the") is None


def test_fts_query_strips_fts_syntax():
    assert fts_query('foo AND "bar" OR baz*') == '"foo" "bar" "baz"'


def test_fts_query_deduplicates():
    assert fts_query("fox fox FOX") == '"fox"'


# ------------------------------------------------------------------
# Items
# ------------------------------------------------------------------

def test_add_and_get_item(repo, vec_table):
    item_id = repo.add_item(_item(content="The quick brown fox"), vec_table)
    stored = repo.get_item(item_id)
    assert stored is not None
    assert stored.content == "The quick brown fox"
    assert stored.origin == INLINE_ORIGIN
    assert stored.created_at is not None


def test_add_item_ids_increase(repo, vec_table):
    first = repo.add_item(_item(), vec_table)
    second = repo.add_item(_item(), vec_table)
    assert second > first


def test_add_item_writes_fts_and_vector(repo, tmp_db, vec_table):
    item_id = repo.add_item(_item(), vec_table)
    assert tmp_db.execute(
        "SELECT COUNT(*) FROM content_items_fts WHERE rowid = ?", (item_id,)
    ).fetchone()[0] == 1
    assert tmp_db.execute(
        f"SELECT COUNT(*) FROM {vec_table} WHERE rowid = ?", (item_id,)
    ).fetchone()[0] == 1


def test_add_item_with_content_but_no_embedding_is_refused(repo, vec_table):
    with pytest.raises(ValueError):
        repo.add_item(_item(embedding=None), vec_table)
    assert repo.count_items() == 0


def test_add_item_rolls_back_on_vector_error(repo, vec_table):
    # Wrong width → vec0 rejects the insert; row and FTS entry must not survive.
    with pytest.raises(sqlite3.Error):
        repo.add_item(_item(embedding=(1.0, 0.0)), vec_table)
    assert repo.count_items() == 0
    assert repo.search_fts("hello") == []


def test_get_item_not_found(repo):
    assert repo.get_item(999) is None


def test_list_items_newest_first(repo, vec_table):
    repo.add_item(_item(title="old", created_at="2024-01-01 00:00:00.000"), vec_table)
    repo.add_item(_item(title="new", created_at="2024-06-01 00:00:00.000"), vec_table)
    assert [i.title for i in repo.list_items()] == ["new", "old"]
    assert [i.title for i in repo.list_items(limit=1)] == ["new"]


def test_delete_item_removes_everything(repo, tmp_db, vec_table):
    item_id = repo.add_item(_item(content="unique zebra"), vec_table)
    deleted = repo.delete_item(item_id)
    assert deleted is not None and deleted.id == item_id
    assert repo.get_item(item_id) is None
    assert repo.search_fts("zebra") == []
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 0


def test_delete_item_clears_every_vec_table(repo, tmp_db, vec_table):
    other = ensure_vec_table(tmp_db, "other_model", 2)
    item_id = repo.add_item(_item(), vec_table)
    tmp_db.execute(f"INSERT INTO {other}(rowid, embedding) VALUES (?, '[1, 1]')", (item_id,))
    tmp_db.commit()
    repo.delete_item(item_id)
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {other}").fetchone()[0] == 0


def test_delete_item_missing_returns_none(repo):
    assert repo.delete_item(42) is None


def test_delete_item_keeps_usage_records(repo, vec_table):
    item_id = repo.add_item(_item(), vec_table)
    repo.add_usage(UsageRecord(model="m", prompt_tokens=3, total_tokens=3))
    repo.delete_item(item_id)
    assert len(repo.list_usage()) == 1


# ------------------------------------------------------------------
# Vector search
# ------------------------------------------------------------------

def test_search_vec_orders_by_distance(repo, vec_table):
    near = repo.add_item(_item(title="near", embedding=(1.0, 0.1, 0.0, 0.0)), vec_table)
    far = repo.add_item(_item(title="far", embedding=(0.0, 0.0, 1.0, 0.0)), vec_table)
    results = repo.search_vec(vec_table, [1.0, 0.0, 0.0, 0.0], limit=10)
    assert [item.id for item, _ in results] == [near, far]
    distances = [d for _, d in results]
    assert 0.0 <= distances[0] < distances[1] <= 2.0


def test_search_vec_limit(repo, vec_table):
    for i in range(5):
        repo.add_item(_item(title=f"d{i}", embedding=(1.0, float(i), 0.0, 0.0)), vec_table)
    assert len(repo.search_vec(vec_table, [1.0, 0.0, 0.0, 0.0], limit=2)) == 2


def test_search_vec_restricted_to_notebook(repo, vec_table):
    inside = repo.add_item(_item(title="in", embedding=(0.0, 1.0, 0.0, 0.0)), vec_table)
    repo.add_item(_item(title="out", embedding=(1.0, 0.0, 0.0, 0.0)), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, inside)

    results = repo.search_vec(vec_table, [1.0, 0.0, 0.0, 0.0], limit=5, notebook_id=nb.id)
    assert [item.id for item, _ in results] == [inside]
    assert results[0][1] == pytest.approx(1.0, abs=1e-5)


# ------------------------------------------------------------------
# FTS search
# ------------------------------------------------------------------

def test_search_fts_stems_terms(repo, vec_table):
    item_id = repo.add_item(_item(content="The foxes were jumping over fences"), vec_table)
    results = repo.search_fts("jump fox")
    assert [item.id for item, _ in results] == [item_id]


def test_search_fts_requires_all_terms(repo, vec_table):
    repo.add_item(_item(content="paris is lovely"), vec_table)
    assert repo.search_fts("paris berlin") == []


def test_search_fts_best_first(repo, vec_table):
    weak = repo.add_item(_item(content="apple " + "filler " * 50), vec_table)
    strong = repo.add_item(_item(content="apple apple apple"), vec_table)
    results = repo.search_fts("apple")
    assert [item.id for item, _ in results] == [strong, weak]
    assert results[0][1] <= results[1][1]  # bm25: lower is better


def test_search_fts_restricted_to_notebook(repo, vec_table):
    a = repo.add_item(_item(content="shared keyword"), vec_table)
    repo.add_item(_item(content="shared keyword"), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, a)
    assert [item.id for item, _ in repo.search_fts("keyword", notebook_id=nb.id)] == [a]


def test_search_fts_stopword_query_matches_nothing(repo, vec_table):
    repo.add_item(_item(content="the and of"), vec_table)
    assert repo.search_fts("the of") == []


# ------------------------------------------------------------------
# Notebooks
# ------------------------------------------------------------------

def test_add_and_get_notebook(repo):
    nb = repo.add_notebook("Research", notes="# Notes")
    fetched = repo.get_notebook(nb.id)
    assert fetched.title == "Research"
    assert fetched.notes == "# Notes"


def test_list_notebooks_recently_updated_first(repo, tmp_db):
    a = repo.add_notebook("a")
    repo.add_notebook("b")
    tmp_db.execute("UPDATE notebooks SET updated_at = '2024-01-01 00:00:00.000'")
    tmp_db.commit()
    repo.update_notebook(a.id, notes="touched")
    assert [n.title for n in repo.list_notebooks()] == ["a", "b"]


def test_update_notebook_keeps_unspecified_fields(repo):
    nb = repo.add_notebook("title", notes="notes")
    updated = repo.update_notebook(nb.id, title="renamed")
    assert updated.title == "renamed"
    assert updated.notes == "notes"
    assert updated.updated_at > nb.updated_at


def test_update_notebook_missing(repo):
    assert repo.update_notebook(99, title="x") is None


def test_delete_notebook_keeps_items(repo, vec_table):
    item_id = repo.add_item(_item(), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, item_id)
    assert repo.delete_notebook(nb.id) is True
    assert repo.get_item(item_id) is not None
    assert repo.delete_notebook(nb.id) is False


def test_add_member_touches_notebook(repo, vec_table):
    item_id = repo.add_item(_item(), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, item_id)
    assert repo.is_member(nb.id, item_id)
    assert repo.get_notebook(nb.id).updated_at > nb.updated_at


def test_add_member_duplicate_raises_integrity_error(repo, vec_table):
    item_id = repo.add_item(_item(), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, item_id)
    with pytest.raises(sqlite3.IntegrityError):
        repo.add_member(nb.id, item_id)


def test_add_member_unknown_item_raises(repo):
    nb = repo.add_notebook("nb")
    with pytest.raises(sqlite3.IntegrityError):
        repo.add_member(nb.id, 12345)


def test_remove_member_touches_notebook_strictly(repo, vec_table):
    a = repo.add_item(_item(title="a"), vec_table)
    b = repo.add_item(_item(title="b"), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, a)
    repo.add_member(nb.id, b)
    before = repo.get_notebook(nb.id).updated_at

    assert repo.remove_member(nb.id, a) is True

    after = repo.get_notebook(nb.id)
    assert after.updated_at > before
    assert [i.id for i in repo.list_members(nb.id)] == [b]


def test_remove_member_absent_returns_false(repo):
    nb = repo.add_notebook("nb")
    before = repo.get_notebook(nb.id).updated_at
    assert repo.remove_member(nb.id, 7) is False
    assert repo.get_notebook(nb.id).updated_at == before


def test_list_members_newest_first(repo, vec_table):
    old = repo.add_item(_item(title="old", created_at="2024-01-01 00:00:00.000"), vec_table)
    new = repo.add_item(_item(title="new", created_at="2024-02-01 00:00:00.000"), vec_table)
    nb = repo.add_notebook("nb")
    repo.add_member(nb.id, old)
    repo.add_member(nb.id, new)
    assert [i.id for i in repo.list_members(nb.id)] == [new, old]


# ------------------------------------------------------------------
# Usage ledger
# ------------------------------------------------------------------

def test_add_usage_fills_id_and_timestamp(repo):
    record = repo.add_usage(UsageRecord(model="m", prompt_tokens=10, total_tokens=10, cost=0.5))
    assert record.id is not None
    assert record.created_at is not None


def test_list_usage_newest_first_and_totals(repo):
    repo.add_usage(UsageRecord(model="first", prompt_tokens=10, total_tokens=10, cost=0.25))
    repo.add_usage(UsageRecord(model="second", prompt_tokens=5, completion_tokens=5, total_tokens=10, cost=0.5))
    assert [r.model for r in repo.list_usage()] == ["second", "first"]
    totals = repo.usage_totals()
    assert totals.total_tokens == 20
    assert totals.total_cost == pytest.approx(0.75)


def test_usage_totals_empty(repo):
    totals = repo.usage_totals()
    assert totals.total_cost == 0.0
    assert totals.total_tokens == 0


# ------------------------------------------------------------------
# Timestamps
# ------------------------------------------------------------------

def test_next_timestamp_is_strictly_after_future_previous():
    assert _next_timestamp("2999-01-01 00:00:00.000") == "2999-01-01 00:00:00.001"


def test_next_timestamp_accepts_second_precision():
    assert _next_timestamp("2999-01-01 00:00:00") == "2999-01-01 00:00:00.001"


class _FrozenClock(datetime):
    @classmethod
    def now(cls, tz=None):
        return datetime(2026, 10, 16, 22, 0, 1, 123500, tzinfo=timezone.utc)


def test_next_timestamp_bumps_within_same_millisecond():
    with patch("lectern.db.repository.datetime", _FrozenClock):
        stamp = _next_timestamp("2026-10-16 22:00:01.123")
    assert stamp == "2026-10-16 22:00:01.124"


def test_next_timestamp_uses_clock_when_later():
    with patch("lectern.db.repository.datetime", _FrozenClock):
        stamp = _next_timestamp("2026-10-16 22:00:01.122")
    assert stamp == "2026-10-16 22:00:01.123"


def test_repository_wraps_connection(tmp_db):
    assert Repository(tmp_db)._conn is tmp_db
