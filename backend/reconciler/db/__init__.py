"""Database package: declarative base, database handle, and upsert helpers."""

from reconciler.db.base import Base, Database
from reconciler.db.upsert import insert_or_ignore, upsert

__all__ = [
    "Base",
    "Database",
    "insert_or_ignore",
    "upsert",
]
