"""Lectern database layer."""

from lectern.db.connection import Database, open_store
from lectern.db.migrations import MIGRATIONS, run_migrations
from lectern.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "open_store",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
