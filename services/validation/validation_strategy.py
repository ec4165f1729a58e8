# -*- coding: utf-8 -*-
"""
Validation Strategy Pattern - Abstract interface for staged-record validation.

Each validation level is a strategy that inspects a StagingBatch (every staged
record of one package, indexed by kind and original id) and returns structured
issues. Strategies never mutate the batch and never raise for bad data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from models.staging import EntityKind, StagingRecord, ValidationStatus


class Severity(Enum):
    """Issue severity."""
    REQUIRED = "required"    # Record becomes Invalid
    ADVISORY = "advisory"    # Record becomes Warning


@dataclass
class ValidationIssue:
    """
    One problem reported by a validator.

    staging_id is None for package-level issues (vocabulary compatibility).
    """
    validator: str
    severity: Severity
    message: str
    staging_id: Optional[str] = None
    field: Optional[str] = None

    @property
    def is_package_level(self) -> bool:
        return self.staging_id is None

    def format(self) -> str:
        return f"[{self.validator}] {self.message}"


@dataclass
class StagingBatch:
    """Read-only view over the staged records of one package."""
    package_id: str
    records: List[StagingRecord]
    vocabulary_versions: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self._by_kind: Dict[EntityKind, List[StagingRecord]] = {kind: [] for kind in EntityKind}
        self._by_original: Dict[EntityKind, Dict[str, StagingRecord]] = {kind: {} for kind in EntityKind}
        for record in self.records:
            self._by_kind[record.kind].append(record)
            self._by_original[record.kind][record.original_id] = record

    def of_kind(self, kind: EntityKind) -> List[StagingRecord]:
        """Records of a kind that take part in validation (Skipped excluded)."""
        return [r for r in self._by_kind[kind] if r.status != ValidationStatus.SKIPPED]

    def find(self, kind: EntityKind, original_id: Optional[str]) -> Optional[StagingRecord]:
        if not original_id:
            return None
        return self._by_original[kind].get(original_id)

    def has(self, kind: EntityKind, original_id: Optional[str]) -> bool:
        return self.find(kind, original_id) is not None

    @property
    def active_records(self) -> List[StagingRecord]:
        return [r for r in self.records if r.status != ValidationStatus.SKIPPED]


class ValidationStrategy(ABC):
    """
    Abstract base class for validation strategies.

    Subclasses set name and level (1-8, run order) and implement validate().
    """

    name: str = ""
    level: int = 0

    @abstractmethod
    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        """
        Validate a batch and return the issues found.

        Args:
            batch: Staged records of one package

        Returns:
            List of issues (empty list if everything is valid)
        """
        pass

    def required(self, record: Optional[StagingRecord], message: str,
                 field: Optional[str] = None) -> ValidationIssue:
        return ValidationIssue(
            validator=self.name,
            severity=Severity.REQUIRED,
            message=message,
            staging_id=record.staging_id if record else None,
            field=field
        )

    def advisory(self, record: Optional[StagingRecord], message: str,
                 field: Optional[str] = None) -> ValidationIssue:
        return ValidationIssue(
            validator=self.name,
            severity=Severity.ADVISORY,
            message=message,
            staging_id=record.staging_id if record else None,
            field=field
        )

    def records_checked(self, batch: StagingBatch) -> int:
        """Number of records this strategy inspects (for reporting)."""
        return len(batch.active_records)


def missing_fields(payload: Dict[str, Any], fields: Iterable[str]) -> List[str]:
    """Return the fields that are absent or blank in a payload."""
    missing = []
    for name in fields:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing
