"""pagemind index database layer."""

from pagemind.db.connection import Database
from pagemind.db.migrations import MIGRATIONS, run_migrations
from pagemind.db.repository import Repository, SearchFilters
from pagemind.db.schema import initialize
from pagemind.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
    "SearchFilters",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
