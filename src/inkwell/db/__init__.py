"""Inkwell database layer."""

from inkwell.db.connection import Database
from inkwell.db.migrations import MIGRATIONS, run_migrations
from inkwell.db.schema import initialize
from inkwell.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
