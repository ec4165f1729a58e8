# -*- coding: utf-8 -*-
"""
TRRCMS Import Pipeline Models
"""

from .staging import (
    EntityKind,
    ValidationStatus,
    StagingMetadata,
    StagingRecord,
    COMMIT_ORDER,
)
from .import_package import ImportPackage, ImportStatus
from .conflict import (
    Conflict,
    ConflictType,
    ConflictStatus,
    ConflictPriority,
    ConfidenceLevel,
    ResolutionOutcome,
    make_pair_key,
)
from .building import Building
from .unit import PropertyUnit, make_unit_key
from .person import Person
from .commit_report import CommitReport, EntityCommitSummary, CommitError

__all__ = [
    "EntityKind",
    "ValidationStatus",
    "StagingMetadata",
    "StagingRecord",
    "COMMIT_ORDER",
    "ImportPackage",
    "ImportStatus",
    "Conflict",
    "ConflictType",
    "ConflictStatus",
    "ConflictPriority",
    "ConfidenceLevel",
    "ResolutionOutcome",
    "make_pair_key",
    "Building",
    "PropertyUnit",
    "make_unit_key",
    "Person",
    "CommitReport",
    "EntityCommitSummary",
    "CommitError",
]
