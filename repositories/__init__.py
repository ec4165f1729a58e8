# -*- coding: utf-8 -*-
"""
TRRCMS Repository Layer
"""

# Lazy imports to avoid circular dependencies
__all__ = [
    "Database",
    "DatabaseFactory",
    "ImportPackageRepository",
    "StagingRepository",
    "ConflictRepository",
    "AuthoritativeStore",
]


def __getattr__(name):
    """Lazy import to avoid circular dependencies."""
    if name == "Database":
        from .database import Database
        return Database
    elif name == "DatabaseFactory":
        from .db_adapter import DatabaseFactory
        return DatabaseFactory
    elif name == "ImportPackageRepository":
        from .package_repository import ImportPackageRepository
        return ImportPackageRepository
    elif name == "StagingRepository":
        from .staging_repository import StagingRepository
        return StagingRepository
    elif name == "ConflictRepository":
        from .conflict_repository import ConflictRepository
        return ConflictRepository
    elif name == "AuthoritativeStore":
        from .authoritative_repository import AuthoritativeStore
        return AuthoritativeStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
