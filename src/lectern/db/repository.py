"""Repository pattern for all Lectern database operations.

Single interface for: content items, FTS5 search, vec embeddings, notebooks
and their membership rows, and the usage ledger. Vec tables are created by
ensure_vec_table(); the repository handles read + write.
"""

from __future__ import annotations

import json
import re
import sqlite3
from datetime import datetime, timedelta, timezone

from lectern.db.models import ContentItem, Notebook, UsageRecord, UsageTotals

_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
_SQL_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {
        "a", "about", "an", "and", "are", "as", "at", "be", "been", "but", "by",
        "can", "could", "did", "do", "does", "for", "from", "had", "has", "have",
        "how", "i", "if", "in", "into", "is", "it", "its", "me", "my", "no", "not",
        "of", "on", "or", "our", "so", "that", "the", "their", "them", "then",
        "there", "these", "they", "this", "to", "was", "we", "were", "what",
        "when", "where", "which", "who", "whom", "why", "will", "with", "would",
        "you", "your",
    }
)

_ITEM_COLUMNS = "id, title, content, origin, media_type, created_at, updated_at"
_NOTEBOOK_COLUMNS = "id, title, notes, created_at, updated_at"


def fts_query(text: str) -> str | None:
    """Turn free text into an FTS5 MATCH expression.

    Lower-cases, tokenizes on alphanumerics, drops English stop words and
    quotes each remaining term (the porter tokenizer stems both sides). Terms
    are implicitly ANDed. Returns None when nothing searchable remains.
    """
    terms: list[str] = []
    for token in _TOKEN_RE.findall(text.lower()):
        if token in _STOPWORDS or token in terms:
            continue
        terms.append(token)
    if not terms:
        return None
    return " ".join(f'"{t}"' for t in terms)


class Repository:
    """Data access layer for all Lectern database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and
                migrations applied (see lectern.db.migrations.run_migrations).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    def add_item(self, item: ContentItem, vec_table: str) -> int:
        """Insert an item with its FTS row and embedding in one transaction.

        Args:
            item: The item to persist. ``item.embedding`` must be set whenever
                ``item.content`` is non-empty.
            vec_table: Name of the vec table for the configured embedding model.

        Returns:
            The new item id (also written back to ``item.id``).

        Raises:
            ValueError: If the item has content but no embedding.
        """
        if item.content and item.embedding is None:
            raise ValueError("Refusing to store an item with content but no embedding.")

        try:
            cur = self._conn.execute(
                f"""
                INSERT INTO content_items (title, content, origin, media_type, created_at, updated_at)
                VALUES (?, ?, ?, ?, COALESCE(?, {_SQL_NOW}), COALESCE(?, ?, {_SQL_NOW}))
                """,
                (
                    item.title,
                    item.content,
                    item.origin,
                    item.media_type,
                    item.created_at,
                    item.updated_at,
                    item.created_at,
                ),
            )
            item_id = cur.lastrowid
            if item.content:
                self._conn.execute(
                    "INSERT INTO content_items_fts(rowid, content) VALUES (?, ?)",
                    (item_id, item.content),
                )
            if item.embedding is not None:
                self._conn.execute(
                    f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                    (item_id, json.dumps(item.embedding)),
                )
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

        item.id = item_id
        return item_id

    def get_item(self, item_id: int) -> ContentItem | None:
        """Return a content item by id, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM content_items WHERE id = ?", (item_id,)
        ).fetchone()
        return _row_to_item(row) if row else None

    def list_items(self, limit: int | None = None) -> list[ContentItem]:
        """Return items, most recently created first."""
        sql = f"SELECT {_ITEM_COLUMNS} FROM content_items ORDER BY created_at DESC, id DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [_row_to_item(r) for r in self._conn.execute(sql, params).fetchall()]

    def delete_item(self, item_id: int) -> ContentItem | None:
        """Delete an item, its FTS row and its embeddings in every vec table.

        Membership rows go with it (ON DELETE CASCADE); usage records are
        untouched.

        Returns:
            The deleted item (so the caller can clean up its origin file), or
            None if no such item exists.
        """
        item = self.get_item(item_id)
        if item is None:
            return None
        try:
            self._conn.execute("DELETE FROM content_items_fts WHERE rowid = ?", (item_id,))
            for table in self._vec_tables():
                self._conn.execute(
                    f"DELETE FROM [{table}] WHERE rowid = ?", (item_id,)  # noqa: S608
                )
            self._conn.execute("DELETE FROM content_items WHERE id = ?", (item_id,))
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        return item

    def count_items(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM content_items").fetchone()[0]

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        notebook_id: int | None = None,
    ) -> list[tuple[ContentItem, float]]:
        """Nearest-neighbour search by cosine distance, ascending.

        With *notebook_id*, only members of that notebook are ranked; the
        distance is computed exactly over the (small) member set.

        Returns:
            [(item, distance), ...] with distance in [0, 2].
        """
        query_vec = json.dumps(embedding)
        if notebook_id is None:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {table} "
                "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
                (query_vec, limit),
            ).fetchall()
        else:
            vec_rows = self._conn.execute(
                f"""
                SELECT i.id AS rowid, vec_distance_cosine(v.embedding, ?) AS distance
                FROM notebook_items m
                JOIN content_items i ON i.id = m.item_id
                JOIN {table} v ON v.rowid = i.id
                WHERE m.notebook_id = ?
                ORDER BY distance ASC, i.created_at DESC, i.id DESC
                LIMIT ?
                """,
                (query_vec, notebook_id, limit),
            ).fetchall()

        results: list[tuple[ContentItem, float]] = []
        for vec_row in vec_rows:
            item = self.get_item(vec_row["rowid"])
            if item is not None:
                results.append((item, vec_row["distance"]))
        return results

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(
        self, query: str, limit: int = 10, notebook_id: int | None = None
    ) -> list[tuple[ContentItem, float]]:
        """BM25 full-text search. Returns (item, score) sorted best-first.

        bm25() returns negative values; lower (more negative) = better match.
        The raw bm25 score is returned. A query made only of stop words
        matches nothing.
        """
        match = fts_query(query)
        if match is None:
            return []

        sql = (
            "SELECT rowid, bm25(content_items_fts) AS score FROM content_items_fts "
            "WHERE content_items_fts MATCH ?"
        )
        params: list = [match]
        if notebook_id is not None:
            sql += " AND rowid IN (SELECT item_id FROM notebook_items WHERE notebook_id = ?)"
            params.append(notebook_id)
        sql += " ORDER BY score LIMIT ?"
        params.append(limit)

        results: list[tuple[ContentItem, float]] = []
        for fts_row in self._conn.execute(sql, params).fetchall():
            item = self.get_item(fts_row["rowid"])
            if item is not None:
                results.append((item, fts_row["score"]))
        return results

    # ------------------------------------------------------------------
    # Notebooks
    # ------------------------------------------------------------------

    def add_notebook(self, title: str, notes: str = "") -> Notebook:
        cur = self._conn.execute(
            "INSERT INTO notebooks (title, notes) VALUES (?, ?)", (title, notes)
        )
        self._conn.commit()
        row = self._conn.execute(
            f"SELECT {_NOTEBOOK_COLUMNS} FROM notebooks WHERE id = ?", (cur.lastrowid,)
        ).fetchone()
        return _row_to_notebook(row)

    def get_notebook(self, notebook_id: int) -> Notebook | None:
        """Return a notebook by id (without members), or None if not found."""
        row = self._conn.execute(
            f"SELECT {_NOTEBOOK_COLUMNS} FROM notebooks WHERE id = ?", (notebook_id,)
        ).fetchone()
        return _row_to_notebook(row) if row else None

    def list_notebooks(self) -> list[Notebook]:
        """Return all notebooks, most recently updated first."""
        rows = self._conn.execute(
            f"SELECT {_NOTEBOOK_COLUMNS} FROM notebooks ORDER BY updated_at DESC, id DESC"
        ).fetchall()
        return [_row_to_notebook(r) for r in rows]

    def update_notebook(
        self, notebook_id: int, title: str | None = None, notes: str | None = None
    ) -> Notebook | None:
        """Update title and/or notes; None values keep the stored value."""
        current = self.get_notebook(notebook_id)
        if current is None:
            return None
        self._conn.execute(
            """
            UPDATE notebooks SET
                title = COALESCE(?, title),
                notes = COALESCE(?, notes),
                updated_at = ?
            WHERE id = ?
            """,
            (title, notes, _next_timestamp(current.updated_at), notebook_id),
        )
        self._conn.commit()
        return self.get_notebook(notebook_id)

    def delete_notebook(self, notebook_id: int) -> bool:
        """Delete a notebook and its membership rows. Returns False if missing."""
        cur = self._conn.execute("DELETE FROM notebooks WHERE id = ?", (notebook_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def add_member(self, notebook_id: int, item_id: int) -> None:
        """Add *item_id* to *notebook_id* and touch the notebook.

        Raises:
            sqlite3.IntegrityError: If the pair already exists or either
                endpoint is missing.
        """
        try:
            self._conn.execute(
                "INSERT INTO notebook_items (notebook_id, item_id) VALUES (?, ?)",
                (notebook_id, item_id),
            )
            self._touch_notebook(notebook_id)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def remove_member(self, notebook_id: int, item_id: int) -> bool:
        """Remove a membership row and touch the notebook. False if absent."""
        try:
            cur = self._conn.execute(
                "DELETE FROM notebook_items WHERE notebook_id = ? AND item_id = ?",
                (notebook_id, item_id),
            )
            if cur.rowcount == 0:
                self._conn.rollback()
                return False
            self._touch_notebook(notebook_id)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        return True

    def list_members(self, notebook_id: int) -> list[ContentItem]:
        """Return the notebook's items, most recently created first."""
        rows = self._conn.execute(
            """
            SELECT i.id, i.title, i.content, i.origin, i.media_type, i.created_at, i.updated_at
            FROM content_items i
            JOIN notebook_items m ON m.item_id = i.id
            WHERE m.notebook_id = ?
            ORDER BY i.created_at DESC, i.id DESC
            """,
            (notebook_id,),
        ).fetchall()
        return [_row_to_item(r) for r in rows]

    def is_member(self, notebook_id: int, item_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM notebook_items WHERE notebook_id = ? AND item_id = ?",
            (notebook_id, item_id),
        ).fetchone()
        return row is not None

    def _touch_notebook(self, notebook_id: int) -> None:
        row = self._conn.execute(
            "SELECT updated_at FROM notebooks WHERE id = ?", (notebook_id,)
        ).fetchone()
        if row is None:
            return
        self._conn.execute(
            "UPDATE notebooks SET updated_at = ? WHERE id = ?",
            (_next_timestamp(row["updated_at"]), notebook_id),
        )

    # ------------------------------------------------------------------
    # Usage ledger (append-only)
    # ------------------------------------------------------------------

    def add_usage(self, record: UsageRecord) -> UsageRecord:
        """Append a usage record; returns it with id and created_at filled in."""
        cur = self._conn.execute(
            """
            INSERT INTO usage_records (model, prompt_tokens, completion_tokens, total_tokens, cost)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.model,
                record.prompt_tokens,
                record.completion_tokens,
                record.total_tokens,
                record.cost,
            ),
        )
        self._conn.commit()
        row = self._conn.execute(
            "SELECT created_at FROM usage_records WHERE id = ?", (cur.lastrowid,)
        ).fetchone()
        record.id = cur.lastrowid
        record.created_at = row["created_at"]
        return record

    def list_usage(self) -> list[UsageRecord]:
        """Return the full usage log, newest first."""
        rows = self._conn.execute(
            """
            SELECT id, model, prompt_tokens, completion_tokens, total_tokens, cost, created_at
            FROM usage_records ORDER BY created_at DESC, id DESC
            """
        ).fetchall()
        return [
            UsageRecord(
                id=r["id"],
                model=r["model"],
                prompt_tokens=r["prompt_tokens"],
                completion_tokens=r["completion_tokens"],
                total_tokens=r["total_tokens"],
                cost=r["cost"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def usage_totals(self) -> UsageTotals:
        row = self._conn.execute(
            "SELECT COALESCE(SUM(cost), 0.0), COALESCE(SUM(total_tokens), 0) FROM usage_records"
        ).fetchone()
        return UsageTotals(total_cost=float(row[0]), total_tokens=int(row[1]))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _vec_tables(self) -> list[str]:
        """Names of vec0 virtual tables (shadow tables excluded)."""
        return [
            r[0]
            for r in self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' "
                "AND sql LIKE 'CREATE VIRTUAL TABLE%USING vec0%'"
            ).fetchall()
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_item(row: sqlite3.Row) -> ContentItem:
    return ContentItem(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        origin=row["origin"],
        media_type=row["media_type"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_notebook(row: sqlite3.Row) -> Notebook:
    return Notebook(
        id=row["id"],
        title=row["title"],
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _next_timestamp(previous: str | None) -> str:
    """Current UTC time in store format, strictly after *previous*."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    now = now.replace(microsecond=now.microsecond // 1000 * 1000)
    if previous:
        fmt = _TS_FORMAT if "." in previous else "%Y-%m-%d %H:%M:%S"
        prev = datetime.strptime(previous, fmt)
        if now <= prev:
            now = prev + timedelta(milliseconds=1)
    return now.strftime(_TS_FORMAT)[:-3]
