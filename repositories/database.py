# -*- coding: utf-8 -*-
"""
Database facade used by repositories and services.

Wraps a DatabaseAdapter so callers share one object regardless of backend.
Passing db_path forces a dedicated SQLite file (tests use a temp path).
"""

from pathlib import Path
from typing import Optional, List, Any, Tuple
from contextlib import contextmanager

from repositories.db_adapter import (
    DatabaseAdapter,
    DatabaseFactory,
    DatabaseType,
    SQLiteAdapter,
    RowProxy,
)
from utils.logger import get_logger

logger = get_logger(__name__)


class Database:
    """
    Backend-agnostic database handle.

    Usage:
        db = Database(tmp_path / "import.db")
        db.initialize()
        with db.transaction() as cursor:
            db.run(cursor, "UPDATE ...", (...))
    """

    def __init__(self, db_path: Optional[Path] = None, adapter: Optional[DatabaseAdapter] = None):
        """
        Initialize database.

        Args:
            db_path: Optional path for SQLite database. If provided, forces SQLite mode.
            adapter: Pre-built adapter (takes precedence over db_path)
        """
        if adapter is not None:
            self._adapter = adapter
        elif db_path is not None:
            self._adapter = SQLiteAdapter(Path(db_path))
            self._adapter.connect()
        else:
            # Use factory (respects TRRCMS_DB_TYPE env var)
            self._adapter = DatabaseFactory.create()

    @property
    def adapter(self) -> DatabaseAdapter:
        return self._adapter

    @property
    def db_type(self) -> DatabaseType:
        """Get database type."""
        return self._adapter.db_type

    def initialize(self) -> None:
        """Create the import pipeline schema if missing."""
        self._adapter.initialize()

    def close(self) -> None:
        self._adapter.close()

    @contextmanager
    def transaction(self):
        """
        Atomic unit of work.

        Yields a cursor; use run(cursor, ...) for statements that must
        commit or roll back together.
        """
        with self._adapter.transaction() as cursor:
            yield cursor

    def run(self, cursor: Any, query: str, params: Tuple = ()) -> List[RowProxy]:
        """Execute a statement on a transaction cursor."""
        return self._adapter.run(cursor, query, params)

    def execute(self, query: str, params: Tuple = (), cursor: Any = None) -> List[RowProxy]:
        """
        Execute a query, inside the caller's transaction when cursor is given.

        Returns:
            List of RowProxy objects (empty for statements without results)
        """
        if cursor is not None:
            return self._adapter.run(cursor, query, params)
        return self._adapter.execute(query, params)

    def fetch_one(self, query: str, params: Tuple = (), cursor: Any = None) -> Optional[RowProxy]:
        """Execute query and fetch single row."""
        if cursor is not None:
            rows = self._adapter.run(cursor, query, params)
            return rows[0] if rows else None
        return self._adapter.fetch_one(query, params)

    def fetch_all(self, query: str, params: Tuple = (), cursor: Any = None) -> List[RowProxy]:
        """Execute query and fetch all rows."""
        if cursor is not None:
            return self._adapter.run(cursor, query, params)
        return self._adapter.fetch_all(query, params)
