# -*- coding: utf-8 -*-
"""
TRRCMS Import Pipeline Service Layer
"""

# Lazy imports to avoid circular dependencies
__all__ = [
    "ImportService",
    "ConflictResolutionService",
    "CommitService",
    "MergeService",
    "DuplicateDetectionService",
    "PersonMatcher",
    "PropertyMatcher",
    "AuditLogger",
    "CurrentUserProvider",
    "VocabularyVersionProvider",
]


def __getattr__(name):
    """Lazy import to avoid circular dependencies."""
    if name == "ImportService":
        from .import_service import ImportService
        return ImportService
    elif name == "ConflictResolutionService":
        from .conflict_resolution import ConflictResolutionService
        return ConflictResolutionService
    elif name == "CommitService":
        from .commit_service import CommitService
        return CommitService
    elif name == "MergeService":
        from .merge_service import MergeService
        return MergeService
    elif name == "DuplicateDetectionService":
        from .duplicate_detection_service import DuplicateDetectionService
        return DuplicateDetectionService
    elif name == "PersonMatcher":
        from .matching_service import PersonMatcher
        return PersonMatcher
    elif name == "PropertyMatcher":
        from .matching_service import PropertyMatcher
        return PropertyMatcher
    elif name == "AuditLogger":
        from .audit_service import AuditLogger
        return AuditLogger
    elif name == "CurrentUserProvider":
        from .current_user import CurrentUserProvider
        return CurrentUserProvider
    elif name == "VocabularyVersionProvider":
        from .vocabulary_version_service import VocabularyVersionProvider
        return VocabularyVersionProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
