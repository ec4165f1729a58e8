# -*- coding: utf-8 -*-
"""
Conflict Resolution Service
===========================
Human review queue for duplicate candidates.

Features:
- Conflicts created from matcher candidates, one per entity pair and package
- Filtered, prioritised and paginated review queue
- Merge / keep-both / keep-first / keep-second / mark-as-duplicate / ignore
- Escalation and assignment with a resolution SLA
- Package gate: the package moves to ReadyToCommit once every conflict is terminal
- Audit trail for all actions
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from app.config import Config
from models.conflict import (
    Conflict,
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    ConfidenceLevel,
    ResolutionOutcome,
)
from models.import_package import ImportStatus
from models.staging import ValidationStatus
from repositories.authoritative_repository import AuthoritativeStore
from repositories.conflict_repository import ConflictFilter, ConflictRepository
from repositories.database import Database
from repositories.package_repository import ImportPackageRepository
from repositories.staging_repository import StagingRepository
from services.audit_service import AuditLogger
from services.current_user import CurrentUserProvider
from services.exceptions import NotFoundException, StateConflictException, ValidationException
from services.matching_service import MatchCandidate
from services.merge_service import ENTITY_KINDS, MergeService
from utils.datetime_utils import utcnow
from utils.logger import get_logger

logger = get_logger(__name__)

# Serializes conflict creation across detection runs in this process
_INSERT_LOCK = threading.Lock()

# Package states in which conflicts may still be worked on
_REVIEWABLE_STATUSES = (ImportStatus.REVIEWING_CONFLICTS, ImportStatus.READY_TO_COMMIT)

_CONFLICT_TYPES = {
    ("person", False): ConflictType.PERSON_DUPLICATE,
    ("person", True): ConflictType.PERSON_DUPLICATE_WITHIN_BATCH,
    ("property_unit", False): ConflictType.PROPERTY_DUPLICATE,
    ("property_unit", True): ConflictType.PROPERTY_DUPLICATE_WITHIN_BATCH,
}


class ConflictResolutionService:
    """
    Service for the conflict review workflow.

    Every resolving action requires a PendingReview conflict and a reason;
    anything else is rejected before state is touched.
    """

    def __init__(self, db: Database, user_provider: CurrentUserProvider,
                 audit: Optional[AuditLogger] = None, merge_service: Optional[MergeService] = None):
        self.db = db
        self.user_provider = user_provider
        self.audit = audit or AuditLogger(db)
        self.conflict_repo = ConflictRepository(db)
        self.package_repo = ImportPackageRepository(db)
        self.staging_repo = StagingRepository(db)
        self.merge_service = merge_service or MergeService(self.staging_repo, AuthoritativeStore(db))

    # ==================== Creation ====================

    def determine_priority(self, confidence: ConfidenceLevel, score: float) -> ConflictPriority:
        if confidence == ConfidenceLevel.HIGH and score >= Config.PERSON_HIGH_CONFIDENCE_THRESHOLD:
            return ConflictPriority.HIGH
        if confidence == ConfidenceLevel.MEDIUM or score >= Config.PERSON_MEDIUM_CONFIDENCE_THRESHOLD:
            return ConflictPriority.NORMAL
        return ConflictPriority.LOW

    def create_from_candidates(self, package_id: str,
                               candidates: List[MatchCandidate]) -> Tuple[int, int]:
        """
        Persist candidates as conflicts of a package.

        A pair that already has a conflict in the package (open or decided)
        is left alone.

        Returns:
            (created, already present)
        """
        user_id = self.user_provider.require_user_id()
        created = 0
        existing = 0

        with _INSERT_LOCK:
            for candidate in candidates:
                conflict_type = _CONFLICT_TYPES[(candidate.entity_type, candidate.is_within_batch)]
                conflict = Conflict(
                    import_package_id=package_id,
                    conflict_type=conflict_type,
                    first_entity_id=candidate.first_entity_id,
                    second_entity_id=candidate.second_entity_id,
                    first_entity_identifier=candidate.first_identifier,
                    second_entity_identifier=candidate.second_identifier,
                    similarity_score=candidate.score,
                    confidence_level=candidate.confidence,
                    matching_criteria=list(candidate.matched_criteria),
                    data_comparison=candidate.data_comparison,
                    description=(
                        f"Possible duplicate {candidate.entity_type.replace('_', ' ')}: "
                        f"{candidate.first_identifier} / {candidate.second_identifier} "
                        f"(score {candidate.score})"
                    ),
                    priority=self.determine_priority(candidate.confidence, candidate.score),
                    target_resolution_hours=Config.CONFLICT_TARGET_RESOLUTION_HOURS,
                    detected_by=user_id,
                )

                with self.db.transaction() as cursor:
                    conflict.conflict_number = self.conflict_repo.next_conflict_number(cursor=cursor)
                    inserted = self.conflict_repo.insert_if_absent(conflict, cursor=cursor)

                if inserted:
                    created += 1
                    self.audit.log("conflict_created", "conflict", conflict.conflict_id, {
                        "conflict_number": conflict.conflict_number,
                        "conflict_type": conflict_type.value,
                        "score": candidate.score,
                    }, user_id)
                else:
                    existing += 1

        logger.info(f"Package {package_id}: {created} conflicts created, {existing} already present")
        return created, existing

    # ==================== Queue ====================

    def get_queue(self, conflict_filter: Optional[ConflictFilter] = None,
                  page: int = 1, page_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Filtered queue page, highest priority and oldest first.

        Returns:
            {'items': [...], 'total', 'page', 'page_size', 'total_pages'}
        """
        conflict_filter = conflict_filter or ConflictFilter()
        page = max(1, page)
        page_size = min(max(1, page_size or Config.DEFAULT_PAGE_SIZE), Config.MAX_PAGE_SIZE)

        total = self.conflict_repo.count(conflict_filter)
        items = self.conflict_repo.query(conflict_filter, limit=page_size, offset=(page - 1) * page_size)
        return {
            'items': [c.to_dict() for c in items],
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': (total + page_size - 1) // page_size,
        }

    def get_conflict(self, conflict_id: str, cursor: Any = None) -> Conflict:
        conflict = self.conflict_repo.get_by_id(conflict_id, cursor=cursor)
        if not conflict:
            raise NotFoundException(f"Conflict {conflict_id} not found", entity_type="Conflict",
                                    entity_id=conflict_id)
        return conflict

    def get_detail(self, conflict_id: str) -> Dict[str, Any]:
        """Conflict with its side-by-side comparison and audit trail."""
        conflict = self.get_conflict(conflict_id)
        detail = conflict.to_dict()
        detail['audit_trail'] = self.get_audit_trail(conflict_id)
        return detail

    def get_queue_stats(self, package_id: Optional[str] = None) -> Dict[str, Any]:
        """Counts by status, priority and type, plus escalated and overdue."""
        stats = {
            'total': 0,
            'total_pending': 0,
            'escalated': 0,
            'overdue': self.conflict_repo.count(ConflictFilter(import_package_id=package_id, overdue_only=True)),
            'by_status': {},
            'by_priority': {},
            'by_type': {},
        }

        for row in self.conflict_repo.grouped_counts(package_id):
            count = row['count']
            stats['total'] += count
            if row['status'] == ConflictStatus.PENDING_REVIEW.value:
                stats['total_pending'] += count
                if row['is_escalated']:
                    stats['escalated'] += count
            stats['by_status'][row['status']] = stats['by_status'].get(row['status'], 0) + count
            stats['by_priority'][row['priority']] = stats['by_priority'].get(row['priority'], 0) + count
            stats['by_type'][row['conflict_type']] = stats['by_type'].get(row['conflict_type'], 0) + count

        return stats

    # ==================== Resolution ====================

    def _require_pending(self, conflict: Conflict, action: str) -> None:
        if conflict.status != ConflictStatus.PENDING_REVIEW:
            raise StateConflictException(
                f"Conflict {conflict.conflict_number} cannot be {action}; only pending conflicts accept this action",
                entity_type="Conflict",
                entity_id=conflict.conflict_id,
                current_status=conflict.status.value,
                expected=[ConflictStatus.PENDING_REVIEW.value]
            )

    def _require_open_package(self, conflict: Conflict, cursor: Any) -> None:
        """Conflicts of a cancelled, failed or committed package are frozen."""
        package = self.package_repo.get_by_id(conflict.import_package_id, cursor=cursor)
        if package is None:
            raise NotFoundException(
                f"Package {conflict.import_package_id} not found",
                entity_type="ImportPackage", entity_id=conflict.import_package_id
            )
        if package.status not in _REVIEWABLE_STATUSES:
            raise StateConflictException(
                f"Conflict {conflict.conflict_number} belongs to package {package.package_number}, "
                f"which no longer accepts conflict review",
                entity_type="ImportPackage",
                entity_id=package.package_id,
                current_status=package.status.value,
                expected=[s.value for s in _REVIEWABLE_STATUSES]
            )

    @staticmethod
    def _require_reason(reason: Optional[str]) -> str:
        if not reason or not reason.strip():
            raise ValidationException("A justification reason is required", field="reason")
        return reason.strip()

    @staticmethod
    def _add_review_entry(conflict: Conflict, note: str, user_id: str) -> None:
        conflict.review_attempt_count += 1
        conflict.review_history.append({
            'attempt': conflict.review_attempt_count,
            'note': note,
            'user_id': user_id,
            'at': utcnow().isoformat(),
        })

    def resolve(self, conflict_id: str, outcome: ResolutionOutcome, reason: str,
                master_entity_id: Optional[str] = None, notes: Optional[str] = None) -> Conflict:
        """
        Resolve a pending conflict.

        Args:
            outcome: Decision to record
            reason: Mandatory justification
            master_entity_id: Entity kept by a Merge (defaults to the first entity)

        Returns:
            The resolved conflict
        """
        user_id = self.user_provider.require_user_id()
        reason = self._require_reason(reason)
        if not isinstance(outcome, ResolutionOutcome):
            raise ValidationException(f"Unknown resolution outcome: {outcome}", field="outcome")

        with self.db.transaction() as cursor:
            conflict = self.get_conflict(conflict_id, cursor=cursor)
            self._require_pending(conflict, "resolved")
            self._require_open_package(conflict, cursor)
            self._add_review_entry(conflict, f"Resolution: {outcome.value} - {reason}", user_id)

            if outcome == ResolutionOutcome.MERGE:
                master = master_entity_id or conflict.first_entity_id
                conflict.merge_mapping = self.merge_service.merge(conflict, master, user_id, cursor)
                conflict.merged_entity_id = conflict.merge_mapping["master_entity_id"]
                conflict.discarded_entity_id = conflict.merge_mapping["discarded_entity_id"]
            elif outcome in (ResolutionOutcome.KEEP_FIRST, ResolutionOutcome.MARK_AS_DUPLICATE):
                conflict.merged_entity_id = conflict.first_entity_id
                conflict.discarded_entity_id = conflict.second_entity_id
            elif outcome == ResolutionOutcome.KEEP_SECOND:
                conflict.merged_entity_id = conflict.second_entity_id
                conflict.discarded_entity_id = conflict.first_entity_id

            if outcome in (ResolutionOutcome.KEEP_FIRST, ResolutionOutcome.KEEP_SECOND):
                self._skip_staged(conflict, conflict.discarded_entity_id,
                                  f"Conflict {conflict.conflict_number}: kept {conflict.merged_entity_id}", cursor)

            conflict.status = ConflictStatus.RESOLVED
            conflict.resolution_outcome = outcome
            conflict.resolution_reason = reason
            conflict.resolution_notes = notes
            conflict.resolved_at = utcnow()
            conflict.resolved_by = user_id
            self.conflict_repo.update(conflict, cursor=cursor)
            self._check_package_gate(conflict.import_package_id, user_id, cursor)

        self.audit.log("conflict_resolved", "conflict", conflict.conflict_id, {
            "outcome": outcome.value,
            "reason": reason,
            "merge_mapping": conflict.merge_mapping,
        }, user_id)
        logger.info(f"Resolved conflict {conflict.conflict_number} with {outcome.value}")
        return conflict

    def merge(self, conflict_id: str, master_entity_id: str, reason: str,
              notes: Optional[str] = None) -> Conflict:
        return self.resolve(conflict_id, ResolutionOutcome.MERGE, reason, master_entity_id, notes)

    def keep_both(self, conflict_id: str, reason: str, notes: Optional[str] = None) -> Conflict:
        """Reviewed, not a duplicate. Neither entity is touched."""
        return self.resolve(conflict_id, ResolutionOutcome.KEEP_BOTH, reason, notes=notes)

    def keep_first(self, conflict_id: str, reason: str, notes: Optional[str] = None) -> Conflict:
        return self.resolve(conflict_id, ResolutionOutcome.KEEP_FIRST, reason, notes=notes)

    def keep_second(self, conflict_id: str, reason: str, notes: Optional[str] = None) -> Conflict:
        return self.resolve(conflict_id, ResolutionOutcome.KEEP_SECOND, reason, notes=notes)

    def ignore(self, conflict_id: str, reason: str) -> Conflict:
        """Dismiss a conflict without recording a decision on the pair."""
        user_id = self.user_provider.require_user_id()
        reason = self._require_reason(reason)

        with self.db.transaction() as cursor:
            conflict = self.get_conflict(conflict_id, cursor=cursor)
            self._require_pending(conflict, "ignored")
            self._require_open_package(conflict, cursor)
            self._add_review_entry(conflict, f"Ignored - {reason}", user_id)
            conflict.status = ConflictStatus.IGNORED
            conflict.resolution_reason = reason
            conflict.resolved_at = utcnow()
            conflict.resolved_by = user_id
            self.conflict_repo.update(conflict, cursor=cursor)
            self._check_package_gate(conflict.import_package_id, user_id, cursor)

        self.audit.log("conflict_ignored", "conflict", conflict.conflict_id, {"reason": reason}, user_id)
        return conflict

    def _skip_staged(self, conflict: Conflict, entity_id: str, reason: str, cursor: Any) -> None:
        """Skip the staged side of a pair; authoritative entities are never touched."""
        if not (conflict.conflict_type.is_within_batch or entity_id == conflict.first_entity_id):
            return
        record = self.staging_repo.get_by_original_id(
            conflict.import_package_id, ENTITY_KINDS[conflict.entity_type], entity_id, cursor=cursor
        )
        if record and record.status != ValidationStatus.SKIPPED:
            record.metadata.mark_as_skipped(reason)
            self.staging_repo.update(record, cursor=cursor)

    # ==================== Escalation & assignment ====================

    def escalate(self, conflict_id: str, reason: str) -> Conflict:
        """
        Raise priority and flag for a supervisor.

        The conflict stays PendingReview, so the package gate is not released.
        """
        user_id = self.user_provider.require_user_id()
        reason = self._require_reason(reason)

        with self.db.transaction() as cursor:
            conflict = self.get_conflict(conflict_id, cursor=cursor)
            self._require_pending(conflict, "escalated")
            self._require_open_package(conflict, cursor)
            conflict.priority = ConflictPriority.HIGH
            conflict.is_escalated = True
            conflict.escalation_reason = (
                f"{conflict.escalation_reason}\n{reason}" if conflict.escalation_reason else reason
            )
            conflict.escalated_at = utcnow()
            conflict.escalated_by = user_id
            self.conflict_repo.update(conflict, cursor=cursor)

        self.audit.log("conflict_escalated", "conflict", conflict.conflict_id, {"reason": reason}, user_id)
        logger.info(f"Escalated conflict {conflict.conflict_number}")
        return conflict

    def record_review_attempt(self, conflict_id: str, notes: str) -> Conflict:
        """Log a review that ended without a decision."""
        user_id = self.user_provider.require_user_id()

        with self.db.transaction() as cursor:
            conflict = self.get_conflict(conflict_id, cursor=cursor)
            self._require_pending(conflict, "reviewed")
            self._require_open_package(conflict, cursor)
            self._add_review_entry(conflict, notes or "", user_id)
            self.conflict_repo.update(conflict, cursor=cursor)

        self.audit.log("conflict_review_attempt", "conflict", conflict.conflict_id, {
            "attempt": conflict.review_attempt_count,
            "notes": notes,
        }, user_id)
        return conflict

    def assign(self, conflict_id: str, assignee: str, target_hours: Optional[int] = None) -> Conflict:
        user_id = self.user_provider.require_user_id()
        if not assignee:
            raise ValidationException("An assignee is required", field="assignee")
        if target_hours is not None and target_hours <= 0:
            raise ValidationException("Target resolution hours must be positive", field="target_hours")

        with self.db.transaction() as cursor:
            conflict = self.get_conflict(conflict_id, cursor=cursor)
            self._require_pending(conflict, "assigned")
            self._require_open_package(conflict, cursor)
            conflict.assigned_to = assignee
            conflict.assigned_at = utcnow()
            if target_hours is not None:
                conflict.target_resolution_hours = target_hours
            self.conflict_repo.update(conflict, cursor=cursor)

        self.audit.log("conflict_assigned", "conflict", conflict.conflict_id, {
            "assigned_to": assignee,
            "target_resolution_hours": conflict.target_resolution_hours,
        }, user_id)
        return conflict

    # ==================== Package gate ====================

    def _check_package_gate(self, package_id: str, user_id: str, cursor: Any) -> bool:
        """Release the package to ReadyToCommit once none of its conflicts is pending."""
        if self.conflict_repo.count_pending(package_id, cursor=cursor) > 0:
            return False

        package = self.package_repo.get_by_id(package_id, cursor=cursor)
        if package is None or package.status != ImportStatus.REVIEWING_CONFLICTS:
            return False

        package.mark_conflicts_resolved(user_id)
        self.package_repo.update(package, cursor=cursor)
        logger.info(f"Package {package.package_number}: all conflicts decided, ready to commit")
        return True

    # ==================== Audit ====================

    def get_audit_trail(self, conflict_id: str) -> List[Dict[str, Any]]:
        return self.audit.get_trail("conflict", conflict_id)

    def conflict_statistics(self, package_id: str) -> Tuple[int, int]:
        """(resolved or ignored, merged) conflicts of a package."""
        conflicts = self.conflict_repo.get_by_package(package_id)
        decided = sum(1 for c in conflicts if c.is_terminal)
        merged = sum(1 for c in conflicts if c.resolution_outcome == ResolutionOutcome.MERGE)
        return decided, merged
