"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from lectern.db.migrations import run_migrations
from lectern.db.vectors import ensure_vec_table, model_to_slug


class Database:
    """SQLite store with sqlite-vec vector search and FTS5 lexical search."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, enable foreign keys, and return it.

        Foreign keys must be on for membership rows to cascade with their
        notebook or content item.
        """
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None


def open_store(
    db_path: Path | str, embedding_model: str, dimensions: int
) -> tuple[sqlite3.Connection, str]:
    """Open the database, apply migrations and ensure the vector table.

    Returns:
        (connection, vec_table) — the caller owns and must close the connection.

    Raises:
        lectern.config.ConfigError: If the existing vector table was created
            with a different dimension than *dimensions*.
    """
    conn = Database(db_path).connect()
    try:
        run_migrations(conn)
        vec_table = ensure_vec_table(conn, model_to_slug(embedding_model), dimensions)
    except Exception:
        conn.close()
        raise
    return conn, vec_table
