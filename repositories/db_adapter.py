# -*- coding: utf-8 -*-
"""
Unified Database Adapter - Backend-agnostic database abstraction layer.

Provides a consistent interface for SQLite (development/tests) and PostgreSQL
(production) over the import pipeline schema: import packages, the staging
store, the conflict queue, the audit log and the authoritative entity tables.

This module is the ONLY place that should import sqlite3 or psycopg2.
"""

import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseType(Enum):
    """Supported database backends."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


@dataclass
class DatabaseConfig:
    """Database configuration."""
    db_type: DatabaseType = DatabaseType.SQLITE
    # PostgreSQL settings
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_database: str = "trrcms"
    pg_user: str = "trrcms_user"
    pg_password: str = ""
    pg_pool_min: int = 2
    pg_pool_max: int = 10
    # SQLite settings
    sqlite_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Load configuration from environment variables."""
        from app.config import Config

        db_type_str = os.getenv("TRRCMS_DB_TYPE", Config.DB_TYPE).lower()
        db_type = DatabaseType.POSTGRESQL if db_type_str == "postgresql" else DatabaseType.SQLITE

        return cls(
            db_type=db_type,
            pg_host=os.getenv("TRRCMS_DB_HOST", "localhost"),
            pg_port=int(os.getenv("TRRCMS_DB_PORT", "5432")),
            pg_database=os.getenv("TRRCMS_DB_NAME", "trrcms"),
            pg_user=os.getenv("TRRCMS_DB_USER", "trrcms_user"),
            pg_password=os.getenv("TRRCMS_DB_PASSWORD", ""),
            pg_pool_min=int(os.getenv("TRRCMS_DB_POOL_MIN", "2")),
            pg_pool_max=int(os.getenv("TRRCMS_DB_POOL_MAX", "10")),
            sqlite_path=Path(os.getenv("TRRCMS_SQLITE_PATH", "")) if os.getenv("TRRCMS_SQLITE_PATH") else None
        )


class RowProxy:
    """
    A dict-like row proxy that supports both dict access and attribute access.
    Provides consistent interface regardless of backend.
    """

    def __init__(self, data: Dict[str, Any], columns: Optional[List[str]] = None):
        self._data = data
        self._columns = columns or list(data.keys())

    def __getitem__(self, key):
        if isinstance(key, int):
            return self._data[self._columns[key]]
        return self._data[key]

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __contains__(self, key):
        return key in self._data

    def __len__(self):
        return len(self._data)

    def get(self, key, default=None):
        return self._data.get(key, default)

    def keys(self):
        return self._data.keys()

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def __repr__(self):
        return f"RowProxy({self._data})"


# ==================== Schema ====================

# Columns shared by every authoritative entity table
_AUTHORITATIVE_COMMON = """
    data TEXT,
    is_active INTEGER DEFAULT 1,
    merged_into_id TEXT,
    source_package_id TEXT,
    source_original_id TEXT,
    created_at TEXT,
    created_by TEXT,
    updated_at TEXT,
    updated_by TEXT
"""


def schema_statements(db_type: DatabaseType) -> List[str]:
    """Return the CREATE statements for the given backend."""
    serial_pk = "SERIAL PRIMARY KEY" if db_type == DatabaseType.POSTGRESQL else "INTEGER PRIMARY KEY AUTOINCREMENT"

    return [
        # Import packages (one per submitted batch)
        """
        CREATE TABLE IF NOT EXISTS import_packages (
            package_id TEXT PRIMARY KEY,
            package_number TEXT UNIQUE NOT NULL,
            file_name TEXT,
            checksum TEXT,
            device_id TEXT,
            status TEXT NOT NULL,
            vocabulary_versions TEXT,
            total_records INTEGER DEFAULT 0,
            valid_records INTEGER DEFAULT 0,
            warning_records INTEGER DEFAULT 0,
            invalid_records INTEGER DEFAULT 0,
            skipped_records INTEGER DEFAULT 0,
            conflict_count INTEGER DEFAULT 0,
            successful_import_count INTEGER DEFAULT 0,
            failed_import_count INTEGER DEFAULT 0,
            skipped_import_count INTEGER DEFAULT 0,
            validation_notes TEXT,
            processing_notes TEXT,
            error_message TEXT,
            validation_started_at TEXT,
            validation_completed_at TEXT,
            committed_at TEXT,
            committed_by TEXT,
            completed_at TEXT,
            is_archived INTEGER DEFAULT 0,
            archive_path TEXT,
            archived_at TEXT,
            created_at TEXT,
            created_by TEXT,
            updated_at TEXT,
            updated_by TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_packages_status ON import_packages(status)",

        # Staging store: one parametrized table keyed by entity kind
        """
        CREATE TABLE IF NOT EXISTS staging_records (
            staging_id TEXT PRIMARY KEY,
            import_package_id TEXT NOT NULL,
            entity_kind TEXT NOT NULL,
            original_entity_id TEXT NOT NULL,
            payload TEXT NOT NULL,
            validation_status TEXT NOT NULL,
            validation_errors TEXT,
            validation_warnings TEXT,
            is_approved_for_commit INTEGER DEFAULT 0,
            committed_entity_id TEXT,
            commit_error TEXT,
            skip_reason TEXT,
            staged_at TEXT,
            updated_at TEXT,
            UNIQUE (import_package_id, entity_kind, original_entity_id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_staging_package_kind ON staging_records(import_package_id, entity_kind)",

        # Conflict queue
        """
        CREATE TABLE IF NOT EXISTS conflicts (
            conflict_id TEXT PRIMARY KEY,
            conflict_number TEXT UNIQUE NOT NULL,
            import_package_id TEXT NOT NULL,
            conflict_type TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            pair_key TEXT NOT NULL,
            first_entity_id TEXT NOT NULL,
            second_entity_id TEXT NOT NULL,
            first_entity_identifier TEXT,
            second_entity_identifier TEXT,
            similarity_score REAL,
            confidence_level TEXT,
            matching_criteria TEXT,
            data_comparison TEXT,
            description TEXT,
            status TEXT NOT NULL,
            resolution_outcome TEXT,
            priority TEXT NOT NULL,
            is_escalated INTEGER DEFAULT 0,
            escalation_reason TEXT,
            escalated_at TEXT,
            escalated_by TEXT,
            assigned_to TEXT,
            assigned_at TEXT,
            target_resolution_hours INTEGER,
            due_at TEXT,
            review_attempt_count INTEGER DEFAULT 0,
            review_history TEXT,
            merged_entity_id TEXT,
            discarded_entity_id TEXT,
            merge_mapping TEXT,
            resolution_reason TEXT,
            resolution_notes TEXT,
            resolved_at TEXT,
            resolved_by TEXT,
            is_auto_detected INTEGER DEFAULT 1,
            detected_at TEXT,
            detected_by TEXT,
            UNIQUE (import_package_id, pair_key)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_conflicts_status ON conflicts(status)",
        "CREATE INDEX IF NOT EXISTS idx_conflicts_package ON conflicts(import_package_id)",
        "CREATE INDEX IF NOT EXISTS idx_conflicts_priority ON conflicts(priority)",

        # Audit log
        f"""
        CREATE TABLE IF NOT EXISTS audit_log (
            id {serial_pk},
            action TEXT NOT NULL,
            entity_type TEXT,
            entity_id TEXT,
            details TEXT,
            performed_by TEXT,
            performed_at TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log(entity_type, entity_id)",

        # Authoritative store
        f"""
        CREATE TABLE IF NOT EXISTS buildings (
            building_id TEXT PRIMARY KEY,
            building_code TEXT UNIQUE,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS property_units (
            unit_id TEXT PRIMARY KEY,
            building_id TEXT,
            building_code TEXT,
            unit_identifier TEXT,
            unit_key TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_units_key ON property_units(unit_key)",
        f"""
        CREATE TABLE IF NOT EXISTS persons (
            person_id TEXT PRIMARY KEY,
            national_id TEXT,
            first_name TEXT,
            father_name TEXT,
            family_name TEXT,
            family_name_key TEXT,
            gender TEXT,
            year_of_birth INTEGER,
            mobile_number TEXT,
            phone_number TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_persons_national_id ON persons(national_id)",
        "CREATE INDEX IF NOT EXISTS idx_persons_family_key ON persons(family_name_key)",
        f"""
        CREATE TABLE IF NOT EXISTS households (
            household_id TEXT PRIMARY KEY,
            property_unit_id TEXT,
            head_person_id TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS person_property_relations (
            relation_id TEXT PRIMARY KEY,
            person_id TEXT,
            property_unit_id TEXT,
            relation_type INTEGER,
            ownership_share REAL,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS evidences (
            evidence_id TEXT PRIMARY KEY,
            person_id TEXT,
            relation_id TEXT,
            claim_id TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS claims (
            claim_id TEXT PRIMARY KEY,
            property_unit_id TEXT,
            claimant_person_id TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS surveys (
            survey_id TEXT PRIMARY KEY,
            building_id TEXT,
            {_AUTHORITATIVE_COMMON}
        )
        """,
    ]


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.
    Defines the interface that all database backends must implement.
    """

    @abstractmethod
    def connect(self) -> bool:
        """Establish database connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if database is connected."""
        pass

    @abstractmethod
    def execute(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute a query and return results."""
        pass

    @abstractmethod
    def fetch_one(self, query: str, params: Optional[Tuple] = None) -> Optional[RowProxy]:
        """Execute query and fetch single row."""
        pass

    @abstractmethod
    def fetch_all(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute query and fetch all rows."""
        pass

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Transaction context manager yielding a cursor.

        Everything executed through run(cursor, ...) inside the block is
        committed together, or rolled back if the block raises.
        """
        pass

    @abstractmethod
    def run(self, cursor: Any, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute a query on a cursor obtained from transaction()."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Initialize database schema."""
        pass

    @property
    @abstractmethod
    def db_type(self) -> DatabaseType:
        """Return the database type."""
        pass


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize SQLite adapter."""
        # Import sqlite3 only here
        import sqlite3 as _sqlite3
        self._sqlite3 = _sqlite3

        if db_path is None:
            from app.config import Config
            db_path = Config.DB_PATH

        self._db_path = Path(db_path)
        self._connection = None
        # One shared connection; statements and transactions are serialized
        self._lock = threading.RLock()

        # Ensure directory exists
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def db_type(self) -> DatabaseType:
        return DatabaseType.SQLITE

    @property
    def db_path(self) -> Path:
        """Get database file path."""
        return self._db_path

    def connect(self) -> bool:
        """Establish SQLite connection."""
        try:
            if self._connection is None:
                self._connection = self._sqlite3.connect(
                    str(self._db_path),
                    check_same_thread=False
                )
                # Use dict-like row factory
                self._connection.row_factory = self._dict_factory
                self._connection.execute("PRAGMA foreign_keys = ON")
            return True
        except Exception as e:
            logger.error(f"SQLite connection error: {e}")
            return False

    def _dict_factory(self, cursor, row):
        """Convert row to dictionary."""
        columns = [col[0] for col in cursor.description]
        return {col: row[idx] for idx, col in enumerate(columns)}

    def close(self) -> None:
        """Close SQLite connection."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
                logger.info("SQLite connection closed")

    def is_connected(self) -> bool:
        """Check if connected."""
        return self._connection is not None

    def _get_connection(self):
        """Get connection, connecting if needed."""
        if not self._connection:
            self.connect()
        return self._connection

    def _rows(self, cursor) -> List[RowProxy]:
        if cursor.description:
            columns = [col[0] for col in cursor.description]
            return [RowProxy(row, columns) for row in cursor.fetchall()]
        return []

    def execute(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute query and return results."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute(query, tuple(params or ()))
                rows = self._rows(cursor)
                conn.commit()
                return rows
            except Exception as e:
                conn.rollback()
                logger.error(f"SQLite execute error: {e}\nQuery: {query}")
                raise
            finally:
                cursor.close()

    def fetch_one(self, query: str, params: Optional[Tuple] = None) -> Optional[RowProxy]:
        """Fetch single row."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute(query, tuple(params or ()))
                row = cursor.fetchone()
                if row and cursor.description:
                    columns = [col[0] for col in cursor.description]
                    return RowProxy(row, columns)
                return None
            except Exception as e:
                logger.error(f"SQLite fetch_one error: {e}\nQuery: {query}")
                raise
            finally:
                cursor.close()

    def fetch_all(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Fetch all rows."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute(query, tuple(params or ()))
                return self._rows(cursor)
            except Exception as e:
                logger.error(f"SQLite fetch_all error: {e}\nQuery: {query}")
                raise
            finally:
                cursor.close()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Transaction context manager."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error(f"SQLite transaction rolled back: {e}")
                raise
            finally:
                cursor.close()

    def run(self, cursor: Any, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute on a transaction cursor."""
        cursor.execute(query, tuple(params or ()))
        return self._rows(cursor)

    def initialize(self) -> None:
        """Initialize SQLite schema."""
        logger.info(f"Initializing SQLite database at: {self._db_path}")
        with self.transaction() as cursor:
            for statement in schema_statements(DatabaseType.SQLITE):
                cursor.execute(statement)
        logger.info("SQLite database initialized successfully")


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL database adapter with connection pooling."""

    def __init__(self, config: DatabaseConfig):
        """Initialize PostgreSQL adapter."""
        self._config = config
        self._pool = None

        # psycopg2 is an optional extra (pip install .[postgres])
        try:
            import psycopg2
            from psycopg2 import pool as pg_pool
            from psycopg2.extras import RealDictCursor
            self._psycopg2 = psycopg2
            self._pg_pool = pg_pool
            self._RealDictCursor = RealDictCursor
            self._available = True
        except ImportError:
            logger.warning("psycopg2 not installed. PostgreSQL support unavailable.")
            self._available = False

    @property
    def db_type(self) -> DatabaseType:
        return DatabaseType.POSTGRESQL

    @property
    def is_available(self) -> bool:
        """Check if PostgreSQL driver is available."""
        return self._available

    def connect(self) -> bool:
        """Establish PostgreSQL connection pool."""
        if not self._available:
            return False

        try:
            self._pool = self._pg_pool.ThreadedConnectionPool(
                minconn=self._config.pg_pool_min,
                maxconn=self._config.pg_pool_max,
                host=self._config.pg_host,
                port=self._config.pg_port,
                database=self._config.pg_database,
                user=self._config.pg_user,
                password=self._config.pg_password
            )
            logger.info(f"PostgreSQL connection pool established: {self._config.pg_host}:{self._config.pg_port}/{self._config.pg_database}")
            return True
        except Exception as e:
            logger.error(f"PostgreSQL connection error: {e}")
            return False

    def close(self) -> None:
        """Close PostgreSQL connection pool."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")

    def is_connected(self) -> bool:
        """Check if pool is active."""
        return self._pool is not None

    def _get_connection(self):
        """Get connection from pool."""
        if not self._pool:
            if not self.connect():
                raise RuntimeError("Could not connect to PostgreSQL")
        return self._pool.getconn()

    def _put_connection(self, conn):
        """Return connection to pool."""
        if self._pool and conn:
            self._pool.putconn(conn)

    def _rows(self, cursor) -> List[RowProxy]:
        if cursor.description:
            columns = [col.name for col in cursor.description]
            return [RowProxy(dict(row), columns) for row in cursor.fetchall()]
        return []

    def execute(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute query and return results."""
        query = self._convert_placeholders(query)

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=self._RealDictCursor) as cursor:
                cursor.execute(query, tuple(params or ()))
                rows = self._rows(cursor)
                conn.commit()
                return rows
        except Exception as e:
            conn.rollback()
            logger.error(f"PostgreSQL execute error: {e}\nQuery: {query}")
            raise
        finally:
            self._put_connection(conn)

    def fetch_one(self, query: str, params: Optional[Tuple] = None) -> Optional[RowProxy]:
        """Fetch single row."""
        query = self._convert_placeholders(query)

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=self._RealDictCursor) as cursor:
                cursor.execute(query, tuple(params or ()))
                row = cursor.fetchone()
                if row and cursor.description:
                    columns = [col.name for col in cursor.description]
                    return RowProxy(dict(row), columns)
                return None
        except Exception as e:
            logger.error(f"PostgreSQL fetch_one error: {e}\nQuery: {query}")
            raise
        finally:
            self._put_connection(conn)

    def fetch_all(self, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Fetch all rows."""
        query = self._convert_placeholders(query)

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=self._RealDictCursor) as cursor:
                cursor.execute(query, tuple(params or ()))
                return self._rows(cursor)
        except Exception as e:
            logger.error(f"PostgreSQL fetch_all error: {e}\nQuery: {query}")
            raise
        finally:
            self._put_connection(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Transaction context manager."""
        conn = self._get_connection()
        cursor = conn.cursor(cursor_factory=self._RealDictCursor)
        try:
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"PostgreSQL transaction rolled back: {e}")
            raise
        finally:
            cursor.close()
            self._put_connection(conn)

    def run(self, cursor: Any, query: str, params: Optional[Tuple] = None) -> List[RowProxy]:
        """Execute on a transaction cursor."""
        cursor.execute(self._convert_placeholders(query), tuple(params or ()))
        return self._rows(cursor)

    def _convert_placeholders(self, query: str) -> str:
        """Convert ? placeholders to %s for PostgreSQL."""
        # Simple replacement - queries in this project never contain literal '?'
        return query.replace("?", "%s")

    def initialize(self) -> None:
        """Initialize PostgreSQL schema."""
        logger.info(f"Initializing PostgreSQL database: {self._config.pg_database}")
        with self.transaction() as cursor:
            for statement in schema_statements(DatabaseType.POSTGRESQL):
                cursor.execute(statement)
        logger.info("PostgreSQL database initialized")


class DatabaseFactory:
    """
    Factory for creating database adapters.
    Uses PostgreSQL when configured and reachable, SQLite otherwise.
    """

    _instance: Optional[DatabaseAdapter] = None
    _config: Optional[DatabaseConfig] = None

    @classmethod
    def create(cls, config: Optional[DatabaseConfig] = None) -> DatabaseAdapter:
        """
        Create or return existing database adapter.

        Args:
            config: Database configuration. If None, loads from environment.

        Returns:
            DatabaseAdapter instance
        """
        if config is None:
            config = DatabaseConfig.from_env()

        # Return existing if same config
        if cls._instance is not None and cls._config == config:
            return cls._instance

        cls._config = config

        if config.db_type == DatabaseType.POSTGRESQL:
            adapter = PostgreSQLAdapter(config)
            if adapter.is_available and adapter.connect():
                logger.info(f"Using PostgreSQL database: {config.pg_host}:{config.pg_port}/{config.pg_database}")
                cls._instance = adapter
                return adapter
            else:
                logger.warning("PostgreSQL unavailable, falling back to SQLite")

        # Fallback to SQLite
        adapter = SQLiteAdapter(config.sqlite_path)
        adapter.connect()
        logger.info(f"Using SQLite database: {adapter.db_path}")
        cls._instance = adapter
        return adapter

    @classmethod
    def get_instance(cls) -> Optional[DatabaseAdapter]:
        """Get current database instance."""
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset factory and close connections."""
        if cls._instance:
            try:
                cls._instance.close()
            except Exception as e:
                logger.error(f"Error closing database: {e}")
        cls._instance = None
        cls._config = None
