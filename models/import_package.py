# -*- coding: utf-8 -*-
"""
Import package model and lifecycle.

Pending -> Validating -> Staging -> {ValidationFailed | Quarantined | ReviewingConflicts}
-> ReadyToCommit -> Committing -> {Completed | PartiallyCompleted | Failed}

Cancelled is reachable from every state before Committing. Transitions are
only performed through the methods below; each one raises
StateConflictException when the package is not in an allowed source state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from services.exceptions import StateConflictException
from utils.datetime_utils import utcnow


class ImportStatus(Enum):
    """Lifecycle status of an import package."""
    PENDING = "pending"
    VALIDATING = "validating"
    STAGING = "staging"
    VALIDATION_FAILED = "validation_failed"
    QUARANTINED = "quarantined"
    REVIEWING_CONFLICTS = "reviewing_conflicts"
    READY_TO_COMMIT = "ready_to_commit"
    COMMITTING = "committing"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (
    ImportStatus.VALIDATION_FAILED,
    ImportStatus.QUARANTINED,
    ImportStatus.COMPLETED,
    ImportStatus.PARTIALLY_COMPLETED,
    ImportStatus.FAILED,
    ImportStatus.CANCELLED,
)

# States whose commit report can be (re)derived
REPORTABLE_STATUSES = (
    ImportStatus.COMPLETED,
    ImportStatus.PARTIALLY_COMPLETED,
    ImportStatus.FAILED,
)

CANCELLABLE_STATUSES = (
    ImportStatus.PENDING,
    ImportStatus.VALIDATING,
    ImportStatus.STAGING,
    ImportStatus.REVIEWING_CONFLICTS,
    ImportStatus.READY_TO_COMMIT,
)


@dataclass
class ImportPackage:
    """
    One submitted import batch and its lifecycle.

    Packages are never deleted; after commit they are archived.
    """

    package_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    package_number: str = ""
    file_name: str = ""
    checksum: Optional[str] = None
    device_id: Optional[str] = None
    status: ImportStatus = ImportStatus.PENDING

    # Declared code-list versions {domain: "MAJOR.MINOR.PATCH"}
    vocabulary_versions: Dict[str, str] = field(default_factory=dict)

    # Staging counts
    total_records: int = 0
    valid_records: int = 0
    warning_records: int = 0
    invalid_records: int = 0
    skipped_records: int = 0
    conflict_count: int = 0

    # Commit counts
    successful_import_count: int = 0
    failed_import_count: int = 0
    skipped_import_count: int = 0

    validation_notes: List[str] = field(default_factory=list)
    processing_notes: str = ""
    error_message: Optional[str] = None

    validation_started_at: Optional[datetime] = None
    validation_completed_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None
    committed_by: Optional[str] = None
    completed_at: Optional[datetime] = None

    is_archived: bool = False
    archive_path: Optional[str] = None
    archived_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)
    created_by: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)
    updated_by: Optional[str] = None

    # ==================== State helpers ====================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _require(self, allowed: tuple, action: str) -> None:
        if self.status not in allowed:
            raise StateConflictException(
                f"Cannot {action} package {self.package_number or self.package_id}",
                entity_type="ImportPackage",
                entity_id=self.package_id,
                current_status=self.status.value,
                expected=[s.value for s in allowed]
            )

    def _touch(self, user_id: Optional[str]) -> None:
        self.updated_at = utcnow()
        self.updated_by = user_id

    def _append_note(self, note: str) -> None:
        self.processing_notes = f"{self.processing_notes}\n{note}".strip() if self.processing_notes else note

    # ==================== Validation ====================

    def start_validation(self, user_id: str) -> None:
        self._require((ImportStatus.PENDING,), "start validation of")
        self.status = ImportStatus.VALIDATING
        self.validation_started_at = utcnow()
        self._touch(user_id)

    def quarantine(self, reason: str, user_id: str) -> None:
        """Isolate a package whose vocabulary is incompatible."""
        self._require((ImportStatus.PENDING, ImportStatus.VALIDATING), "quarantine")
        self.status = ImportStatus.QUARANTINED
        self.validation_completed_at = utcnow()
        self._append_note(f"[Quarantined]: {reason}")
        self._touch(user_id)

    def complete_validation(self, valid: int, warning: int, invalid: int,
                            skipped: int, user_id: str) -> None:
        """
        Store validation counts and move to Staging.

        A package with no eligible record at all ends as ValidationFailed.
        """
        self._require((ImportStatus.VALIDATING,), "complete validation of")
        self.valid_records = valid
        self.warning_records = warning
        self.invalid_records = invalid
        self.skipped_records = skipped
        self.validation_completed_at = utcnow()
        if valid + warning == 0:
            self.status = ImportStatus.VALIDATION_FAILED
        else:
            self.status = ImportStatus.STAGING
        self._touch(user_id)

    # ==================== Conflicts ====================

    def set_conflict_results(self, conflict_count: int, user_id: str) -> None:
        self._require((ImportStatus.STAGING,), "record duplicate detection for")
        self.conflict_count = conflict_count
        self.status = ImportStatus.REVIEWING_CONFLICTS if conflict_count > 0 else ImportStatus.READY_TO_COMMIT
        self._touch(user_id)

    def mark_conflicts_resolved(self, user_id: str) -> None:
        self._require((ImportStatus.REVIEWING_CONFLICTS,), "release conflicts of")
        self.status = ImportStatus.READY_TO_COMMIT
        self._touch(user_id)

    # ==================== Commit ====================

    def start_commit(self, user_id: str) -> None:
        self._require((ImportStatus.READY_TO_COMMIT,), "commit")
        self.status = ImportStatus.COMMITTING
        self.committed_by = user_id
        self.committed_at = utcnow()
        self._touch(user_id)

    def complete_commit(self, committed: int, failed: int, skipped: int, user_id: str) -> None:
        """Finish a commit: all committed, some failed, or none committed."""
        self._require((ImportStatus.COMMITTING,), "complete commit of")
        self.successful_import_count = committed
        self.failed_import_count = failed
        self.skipped_import_count = skipped
        self.completed_at = utcnow()
        if failed == 0:
            self.status = ImportStatus.COMPLETED
        elif committed > 0:
            self.status = ImportStatus.PARTIALLY_COMPLETED
        else:
            self.status = ImportStatus.FAILED
        self._touch(user_id)

    def reset_commit(self, reason: str, user_id: str) -> None:
        """Recover a package stuck in Committing, or failed during commit."""
        if self.status == ImportStatus.FAILED and self.committed_at is None:
            raise StateConflictException(
                "Only packages that failed during commit can be reset",
                entity_type="ImportPackage",
                entity_id=self.package_id,
                current_status=self.status.value,
                expected=[ImportStatus.COMMITTING.value]
            )
        self._require((ImportStatus.COMMITTING, ImportStatus.FAILED), "reset commit of")
        self.status = ImportStatus.READY_TO_COMMIT
        self.error_message = None
        self._append_note(f"[Commit reset]: {reason}")
        self._touch(user_id)

    def mark_failed(self, error: str, user_id: Optional[str]) -> None:
        """Structural or unexpected failure of a phase."""
        if self.is_terminal:
            raise StateConflictException(
                "Cannot fail a package that already reached a terminal state",
                entity_type="ImportPackage",
                entity_id=self.package_id,
                current_status=self.status.value
            )
        self.status = ImportStatus.FAILED
        self.error_message = error
        self._touch(user_id)

    def cancel(self, reason: str, user_id: str) -> None:
        """Abandon remaining work; committed records are never retracted."""
        self._require(CANCELLABLE_STATUSES, "cancel")
        self.status = ImportStatus.CANCELLED
        self._append_note(f"[Cancelled]: {reason}")
        self._touch(user_id)

    def archive(self, archive_path: str, user_id: Optional[str]) -> None:
        self._require(REPORTABLE_STATUSES, "archive")
        self.is_archived = True
        self.archive_path = archive_path
        self.archived_at = utcnow()
        self._touch(user_id)

    def get_success_rate(self) -> float:
        """Committed share of attempted records, as a percentage."""
        attempted = self.successful_import_count + self.failed_import_count
        if attempted == 0:
            return 0.0
        return round(self.successful_import_count / attempted * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        def iso(value):
            return value.isoformat() if value else None

        return {
            "package_id": self.package_id,
            "package_number": self.package_number,
            "file_name": self.file_name,
            "checksum": self.checksum,
            "device_id": self.device_id,
            "status": self.status.value,
            "vocabulary_versions": dict(self.vocabulary_versions),
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "warning_records": self.warning_records,
            "invalid_records": self.invalid_records,
            "skipped_records": self.skipped_records,
            "conflict_count": self.conflict_count,
            "successful_import_count": self.successful_import_count,
            "failed_import_count": self.failed_import_count,
            "skipped_import_count": self.skipped_import_count,
            "success_rate": self.get_success_rate(),
            "validation_notes": list(self.validation_notes),
            "processing_notes": self.processing_notes,
            "error_message": self.error_message,
            "validation_started_at": iso(self.validation_started_at),
            "validation_completed_at": iso(self.validation_completed_at),
            "committed_at": iso(self.committed_at),
            "committed_by": self.committed_by,
            "completed_at": iso(self.completed_at),
            "is_archived": self.is_archived,
            "archive_path": self.archive_path,
            "created_at": iso(self.created_at),
            "created_by": self.created_by,
            "updated_at": iso(self.updated_at),
        }
