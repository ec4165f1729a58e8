# -*- coding: utf-8 -*-
"""
Commit report model.

Per entity kind: approved, committed, failed (= approved - committed) and
skipped counts, plus the {original id -> authoritative id} mapping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.helpers import format_number


@dataclass
class EntityCommitSummary:
    """Commit outcome for one entity kind."""
    entity_kind: str
    approved: int = 0
    committed: int = 0
    skipped: int = 0
    id_mappings: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return self.approved - self.committed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_kind": self.entity_kind,
            "approved": self.approved,
            "committed": self.committed,
            "failed": self.failed,
            "skipped": self.skipped,
            "id_mappings": dict(self.id_mappings),
        }


@dataclass
class CommitError:
    """One record that could not be written to the authoritative store."""
    entity_kind: str
    staging_id: str
    original_id: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_kind": self.entity_kind,
            "staging_id": self.staging_id,
            "original_id": self.original_id,
            "message": self.message,
        }


@dataclass
class CommitReport:
    """Outcome of committing (or re-deriving) one import package."""
    package_id: str
    package_number: str
    status: str
    committed_by: Optional[str] = None
    committed_at: Optional[datetime] = None
    duration_ms: int = 0
    summaries: Dict[str, EntityCommitSummary] = field(default_factory=dict)
    conflict_resolutions_applied: int = 0
    merges_performed: int = 0
    is_archived: bool = False
    archive_path: Optional[str] = None
    errors: List[CommitError] = field(default_factory=list)

    @property
    def total_approved(self) -> int:
        return sum(s.approved for s in self.summaries.values())

    @property
    def total_committed(self) -> int:
        return sum(s.committed for s in self.summaries.values())

    @property
    def total_failed(self) -> int:
        return sum(s.failed for s in self.summaries.values())

    @property
    def total_skipped(self) -> int:
        return sum(s.skipped for s in self.summaries.values())

    @property
    def success_rate(self) -> float:
        if self.total_approved == 0:
            return 0.0
        return round(self.total_committed / self.total_approved * 100, 2)

    @property
    def is_fully_successful(self) -> bool:
        return self.total_failed == 0 and not self.errors

    def id_mappings(self) -> Dict[str, Dict[str, str]]:
        return {kind: dict(s.id_mappings) for kind, s in self.summaries.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "package_number": self.package_number,
            "status": self.status,
            "committed_by": self.committed_by,
            "committed_at": self.committed_at.isoformat() if self.committed_at else None,
            "duration_ms": self.duration_ms,
            "summaries": {kind: s.to_dict() for kind, s in self.summaries.items()},
            "total_approved": self.total_approved,
            "total_committed": self.total_committed,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
            "success_rate": self.success_rate,
            "conflict_resolutions_applied": self.conflict_resolutions_applied,
            "merges_performed": self.merges_performed,
            "is_archived": self.is_archived,
            "archive_path": self.archive_path,
            "errors": [e.to_dict() for e in self.errors],
            "is_fully_successful": self.is_fully_successful,
        }


def build_summary_lines(report: CommitReport) -> List[str]:
    """Plain-text summary of a commit report."""
    lines = [
        f"Package {report.package_number} ({report.status})",
        f"Committed by: {report.committed_by or '-'}",
        f"Approved: {format_number(report.total_approved)}  "
        f"Committed: {format_number(report.total_committed)}  "
        f"Failed: {format_number(report.total_failed)}  "
        f"Skipped: {format_number(report.total_skipped)}",
        f"Success rate: {report.success_rate:.2f}%",
        f"Conflicts resolved: {report.conflict_resolutions_applied}  Merges: {report.merges_performed}",
    ]
    for kind, summary in report.summaries.items():
        if summary.approved == 0 and summary.skipped == 0:
            continue
        lines.append(
            f"  {kind}: {summary.committed}/{summary.approved} committed, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
    for error in report.errors:
        lines.append(f"  ! {error.entity_kind} {error.original_id}: {error.message}")
    if report.is_archived:
        lines.append(f"Archived to: {report.archive_path}")
    return lines
