"""Per-model sqlite-vec virtual table management.

The vector column width is fixed by the embedding model. Opening a store whose
table was created for a different width is a configuration error.
"""

from __future__ import annotations

import re
import sqlite3

from lectern.config import ConfigError

_DIMS_RE = re.compile(r"float\[(\d+)\]")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_items_{model_slug}"


def table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared width of vec table *table*, or None if it does not exist."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None:
        return None
    match = _DIMS_RE.search(row[0] or "")
    return int(match.group(1)) if match else None


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_items_{model_slug} if missing and check its width.

    Distances use the cosine metric, so they fall in [0, 2] and
    ``1 - distance`` is the cosine similarity.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_items_{model_slug}).

    Raises:
        ValueError: If the slug or dimensions are invalid.
        ConfigError: If the table exists with a different width.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = table_dimensions(conn, table)

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} "
            f"USING vec0(embedding float[{dimensions}] distance_metric=cosine)"
        )
        conn.commit()
    elif existing != dimensions:
        raise ConfigError(
            f"Vector table '{table}' stores {existing}-dimensional embeddings but "
            f"embedding.dimensions is {dimensions}.\n"
            "  Re-embed all items or restore the original embedding configuration."
        )

    return table
