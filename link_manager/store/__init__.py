"""
Persistent storage.

SQLite-backed content store with a full-text index kept in the same
transaction as every link write.
"""

from .database import ContentStore
from .schema import ASSOCIATION_TABLES, SCHEMA_VERSION

__all__ = ["ASSOCIATION_TABLES", "ContentStore", "SCHEMA_VERSION"]
