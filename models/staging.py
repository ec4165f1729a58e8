# -*- coding: utf-8 -*-
"""
Staging models.

Every imported entity instance is held as a StagingRecord: the raw payload of
one of the eight entity kinds plus a StagingMetadata block shared by all kinds
(package reference, original device id, validation outcome, approval flag and
the authoritative id once committed).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from services.exceptions import StateConflictException
from utils.datetime_utils import utcnow
from utils.helpers import clean_text


class EntityKind(Enum):
    """Entity kinds carried by an import package (in commit order)."""
    BUILDING = "building"
    PROPERTY_UNIT = "property_unit"
    PERSON = "person"
    HOUSEHOLD = "household"
    RELATION = "relation"
    EVIDENCE = "evidence"
    CLAIM = "claim"
    SURVEY = "survey"

    @property
    def collection_name(self) -> str:
        """Key of this kind's record list in a package manifest."""
        return _COLLECTION_NAMES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_COLLECTION_NAMES = {
    EntityKind.BUILDING: "buildings",
    EntityKind.PROPERTY_UNIT: "property_units",
    EntityKind.PERSON: "persons",
    EntityKind.HOUSEHOLD: "households",
    EntityKind.RELATION: "person_property_relations",
    EntityKind.EVIDENCE: "evidences",
    EntityKind.CLAIM: "claims",
    EntityKind.SURVEY: "surveys",
}

_LABELS = {
    EntityKind.BUILDING: "Building",
    EntityKind.PROPERTY_UNIT: "PropertyUnit",
    EntityKind.PERSON: "Person",
    EntityKind.HOUSEHOLD: "Household",
    EntityKind.RELATION: "PersonPropertyRelation",
    EntityKind.EVIDENCE: "Evidence",
    EntityKind.CLAIM: "Claim",
    EntityKind.SURVEY: "Survey",
}

COMMIT_ORDER = list(EntityKind)


class ValidationStatus(Enum):
    """Validation outcome of a staged record."""
    PENDING = "pending"      # Not yet validated
    VALID = "valid"
    WARNING = "warning"      # Advisory issues only
    INVALID = "invalid"      # At least one required issue
    SKIPPED = "skipped"      # Operator override or merged away

    @property
    def rank(self) -> int:
        """Severity rank used for worst-status-wins aggregation."""
        return _RANKS[self]


_RANKS = {
    ValidationStatus.PENDING: 0,
    ValidationStatus.VALID: 1,
    ValidationStatus.WARNING: 2,
    ValidationStatus.INVALID: 3,
    ValidationStatus.SKIPPED: 4,
}

ELIGIBLE_STATUSES = (ValidationStatus.VALID, ValidationStatus.WARNING)


@dataclass
class StagingMetadata:
    """Metadata shared by every staged entity kind."""
    import_package_id: str
    original_entity_id: str
    staging_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    is_approved_for_commit: bool = False
    committed_entity_id: Optional[str] = None
    commit_error: Optional[str] = None
    skip_reason: Optional[str] = None
    staged_at: datetime = field(default_factory=utcnow)

    @property
    def is_eligible(self) -> bool:
        """Valid and Warning records take part in matching and commit."""
        return self.validation_status in ELIGIBLE_STATUSES

    @property
    def is_committed(self) -> bool:
        return self.committed_entity_id is not None

    def apply_validation(self, errors: List[str], warnings: List[str]) -> ValidationStatus:
        """
        Record the outcome of a validation pass (worst status wins).

        Skipped records keep their status; the issues are still recorded.
        """
        self.validation_errors = list(errors)
        self.validation_warnings = list(warnings)
        if self.validation_status == ValidationStatus.SKIPPED:
            return self.validation_status

        if errors:
            self.validation_status = ValidationStatus.INVALID
        elif warnings:
            self.validation_status = ValidationStatus.WARNING
        else:
            self.validation_status = ValidationStatus.VALID
        return self.validation_status

    def reset_validation(self) -> None:
        """Return the record to Pending so it can be validated again."""
        self.validation_status = ValidationStatus.PENDING
        self.validation_errors = []
        self.validation_warnings = []
        self.is_approved_for_commit = False
        self.skip_reason = None

    def approve_for_commit(self) -> None:
        """Flag the record for commit. Only Valid/Warning records qualify."""
        if not self.is_eligible:
            raise StateConflictException(
                f"Cannot approve staging record with status '{self.validation_status.value}'",
                entity_type="StagingRecord",
                entity_id=self.staging_id,
                current_status=self.validation_status.value,
                expected=[s.value for s in ELIGIBLE_STATUSES]
            )
        self.is_approved_for_commit = True

    def mark_as_skipped(self, reason: str) -> None:
        """Exclude the record from commit (operator override or merge)."""
        self.validation_status = ValidationStatus.SKIPPED
        self.is_approved_for_commit = False
        self.skip_reason = reason

    def set_committed_entity_id(self, entity_id: str) -> None:
        self.committed_entity_id = entity_id
        self.commit_error = None


@dataclass
class StagingRecord:
    """One staged entity instance: kind + shared metadata + raw payload."""
    kind: EntityKind
    metadata: StagingMetadata
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def staging_id(self) -> str:
        return self.metadata.staging_id

    @property
    def original_id(self) -> str:
        return self.metadata.original_entity_id

    @property
    def status(self) -> ValidationStatus:
        return self.metadata.validation_status

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def ref(self, key: str) -> Optional[str]:
        """Read a reference field as a stripped string (None when blank)."""
        value = clean_text(self.payload.get(key))
        return value or None

    def to_dict(self) -> Dict[str, Any]:
        meta = self.metadata
        return {
            "staging_id": meta.staging_id,
            "entity_kind": self.kind.value,
            "import_package_id": meta.import_package_id,
            "original_entity_id": meta.original_entity_id,
            "validation_status": meta.validation_status.value,
            "validation_errors": list(meta.validation_errors),
            "validation_warnings": list(meta.validation_warnings),
            "is_approved_for_commit": meta.is_approved_for_commit,
            "committed_entity_id": meta.committed_entity_id,
            "commit_error": meta.commit_error,
            "skip_reason": meta.skip_reason,
            "staged_at": meta.staged_at.isoformat() if meta.staged_at else None,
            "payload": dict(self.payload),
        }
