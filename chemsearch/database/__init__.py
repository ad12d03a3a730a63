"""
Database package for ChemSearch.

This package provides:
- SQLAlchemy ORM model for the compounds table
- Connection and session management
- Session-level CRUD and search helpers
- The primary store adapter used by the service layer

Quick start:
    from chemsearch.database import DatabaseManager, SQLCompoundStore

    store = SQLCompoundStore(DatabaseManager("data/chemsearch.db"))
    store.initialize()
    aspirin = store.get_by_cid(2244)
"""

from .connection import DatabaseManager, create_test_db
from .models import Base, CompoundRecord
from .store import PrimaryStore, SQLCompoundStore

__all__ = [
    "DatabaseManager",
    "create_test_db",
    "Base",
    "CompoundRecord",
    "PrimaryStore",
    "SQLCompoundStore",
]
