"""healthkb database layer."""

from healthkb.db.connection import Database
from healthkb.db.migrations import MIGRATIONS, run_migrations
from healthkb.db.schema import initialize, open_db

__all__ = [
    "Database",
    "initialize",
    "open_db",
    "run_migrations",
    "MIGRATIONS",
]
