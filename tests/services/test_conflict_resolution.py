# -*- coding: utf-8 -*-
"""
Tests for the conflict review workflow.

Tests cover:
- Detection opens one conflict per pair, re-detection adds nothing
- Resolution outcomes and the package gate (ReviewingConflicts -> ReadyToCommit)
- Escalation keeps the conflict pending and the gate closed
- Terminal conflicts cannot be decided again
- Mandatory reason, acting user, assignment and review attempts
- Queue, statistics and audit trail
- Conflicts of a cancelled package are frozen
- Conflict numbers past four digits; audit failures do not abort actions
"""

import pytest

from models.conflict import (
    ConfidenceLevel,
    Conflict,
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    ResolutionOutcome,
)
from models.import_package import ImportPackage, ImportStatus
from models.staging import EntityKind, ValidationStatus
from repositories.conflict_repository import ConflictFilter
from services.current_user import CurrentUserProvider
from services.exceptions import AuthorizationException, StateConflictException, ValidationException
from services.import_service import ImportService


EXISTING_PERSON = {
    "first_name": "احمد",
    "father_name": "محمد",
    "family_name": "الخطيب",
    "national_id": "01234567890",
    "gender": "M",
}


@pytest.fixture
def reviewing(service, staged_package, manifest, add_person):
    """A package whose staged person duplicates an authoritative one."""
    existing_id = add_person(EXISTING_PERSON)
    package = staged_package(manifest)
    service.run_detection(package.package_id)
    conflict = service.conflicts.conflict_repo.get_by_package(package.package_id)[0]
    return package.package_id, conflict, existing_id


class TestDetection:

    def test_one_person_conflict(self, service, reviewing):
        package_id, conflict, existing_id = reviewing

        assert service.package_conflicts(package_id) == (1, 1)
        assert conflict.conflict_type == ConflictType.PERSON_DUPLICATE
        assert conflict.first_entity_id == "p-1"
        assert conflict.second_entity_id == existing_id
        assert conflict.similarity_score == 100.0
        assert conflict.confidence_level == ConfidenceLevel.HIGH
        assert conflict.priority == ConflictPriority.HIGH
        assert conflict.status == ConflictStatus.PENDING_REVIEW
        assert conflict.conflict_number.startswith("CNF-")
        assert conflict.detected_by == "data.manager"

        package = service.get_package(package_id)
        assert package.status == ImportStatus.REVIEWING_CONFLICTS
        assert package.conflict_count == 1

    def test_redetection_creates_nothing(self, service, reviewing):
        package_id, _, _ = reviewing

        result = service.detection.detect(package_id)
        created, existing = service.conflicts.create_from_candidates(package_id, result.candidates)

        assert (created, existing) == (0, 1)
        assert service.package_conflicts(package_id) == (1, 1)

    def test_no_candidates_goes_straight_to_ready(self, service, staged_package, manifest):
        package = staged_package(manifest)
        service.run_detection(package.package_id)

        assert service.get_package(package.package_id).status == ImportStatus.READY_TO_COMMIT

    def test_within_batch_units_share_building_code(self, service, staged_package, manifest_factory):
        """Two staged buildings with one code: buildings Invalid, units matched at 100."""
        manifest = manifest_factory()
        records = manifest["records"]
        records["buildings"].append(dict(records["buildings"][0], original_id="b-2"))
        records["property_units"].append({
            "original_id": "u-2", "original_building_id": "b-2", "unit_identifier": "A-12",
        })
        package = staged_package(manifest)
        service.run_detection(package.package_id)

        conflicts = service.conflicts.conflict_repo.get_by_package(package.package_id)
        assert len(conflicts) == 1
        assert conflicts[0].conflict_type == ConflictType.PROPERTY_DUPLICATE_WITHIN_BATCH
        assert conflicts[0].similarity_score == 100
        assert {conflicts[0].first_entity_id, conflicts[0].second_entity_id} == {"u-1", "u-2"}

    def test_detection_requires_staging(self, service, manifest):
        package = service.submit_package(manifest)

        with pytest.raises(StateConflictException):
            service.run_detection(package.package_id)


class TestResolution:

    def test_keep_both_releases_gate(self, service, reviewing):
        package_id, conflict, _ = reviewing

        resolved = service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH,
                                            "Different people, same national id typo")

        assert resolved.status == ConflictStatus.RESOLVED
        assert resolved.resolution_outcome == ResolutionOutcome.KEEP_BOTH
        assert resolved.resolved_by == "data.manager"
        assert resolved.review_attempt_count == 1
        assert service.get_package(package_id).status == ImportStatus.READY_TO_COMMIT

    def test_merge_into_authoritative(self, service, reviewing):
        package_id, conflict, existing_id = reviewing

        resolved = service.conflicts.merge(conflict.conflict_id, existing_id, "Same national id")

        assert resolved.merged_entity_id == existing_id
        assert resolved.discarded_entity_id == "p-1"
        assert resolved.merge_mapping["p-1"] == existing_id
        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.status == ValidationStatus.SKIPPED
        assert person.metadata.committed_entity_id == existing_id

    def test_merge_defaults_to_first_entity(self, service, reviewing):
        package_id, conflict, existing_id = reviewing

        resolved = service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.MERGE, "Same person")

        assert resolved.merge_mapping["merge_type"] == "authoritative_updated_from_staged"
        # The registry person survives; the staged record is traced to it
        assert resolved.merged_entity_id == existing_id
        assert resolved.discarded_entity_id == "p-1"
        assert resolved.merge_mapping["p-1"] == existing_id
        assert existing_id not in resolved.merge_mapping
        assert service.store.get(EntityKind.PERSON, existing_id)["is_active"] is True
        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.metadata.committed_entity_id == existing_id

        stored = service.conflicts.get_conflict(conflict.conflict_id)
        assert stored.merged_entity_id == existing_id
        assert stored.merge_mapping["p-1"] == existing_id

    def test_keep_second_skips_staged_side(self, service, reviewing):
        package_id, conflict, existing_id = reviewing

        service.conflicts.keep_second(conflict.conflict_id, "Registry record is authoritative")

        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.status == ValidationStatus.SKIPPED
        assert service.store.get(EntityKind.PERSON, existing_id)["is_active"] is True

    def test_keep_first_leaves_authoritative_alone(self, service, reviewing):
        package_id, conflict, existing_id = reviewing

        resolved = service.conflicts.keep_first(conflict.conflict_id, "Field data is newer")

        assert resolved.discarded_entity_id == existing_id
        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.status == ValidationStatus.VALID
        assert service.store.get(EntityKind.PERSON, existing_id)["is_active"] is True

    def test_mark_as_duplicate_changes_no_entity(self, service, reviewing):
        package_id, conflict, _ = reviewing

        resolved = service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.MARK_AS_DUPLICATE, "Known")

        assert resolved.merged_entity_id == "p-1"
        assert resolved.merge_mapping is None
        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.status == ValidationStatus.VALID

    def test_ignore(self, service, reviewing):
        package_id, conflict, _ = reviewing

        ignored = service.ignore_conflict(conflict.conflict_id, "Test data")

        assert ignored.status == ConflictStatus.IGNORED
        assert ignored.resolution_outcome is None
        assert service.get_package(package_id).status == ImportStatus.READY_TO_COMMIT


class TestGuards:

    def test_reason_is_mandatory(self, service, reviewing):
        _, conflict, _ = reviewing

        with pytest.raises(ValidationException):
            service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "   ")

        assert service.conflicts.get_conflict(conflict.conflict_id).status == ConflictStatus.PENDING_REVIEW

    def test_terminal_conflict_is_not_reopened(self, service, reviewing):
        """A second decision fails and leaves the first one in place."""
        _, conflict, _ = reviewing
        service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "Not a duplicate")

        with pytest.raises(StateConflictException):
            service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.MERGE, "Changed my mind")
        with pytest.raises(StateConflictException):
            service.escalate_conflict(conflict.conflict_id, "Too late")

        stored = service.conflicts.get_conflict(conflict.conflict_id)
        assert stored.resolution_outcome == ResolutionOutcome.KEEP_BOTH
        assert stored.merge_mapping is None

    def test_invalid_master_rolls_back(self, service, reviewing):
        _, conflict, _ = reviewing

        with pytest.raises(ValidationException):
            service.conflicts.merge(conflict.conflict_id, "not-in-pair", "Same person")

        stored = service.conflicts.get_conflict(conflict.conflict_id)
        assert stored.status == ConflictStatus.PENDING_REVIEW
        assert stored.review_attempt_count == 0

    def test_cancelled_package_freezes_conflicts(self, service, reviewing):
        """Nothing from an abandoned package reaches the registry."""
        package_id, conflict, existing_id = reviewing
        before = service.store.get(EntityKind.PERSON, existing_id)
        service.cancel_package(package_id, "Wrong device")

        with pytest.raises(StateConflictException):
            service.conflicts.merge(conflict.conflict_id, "p-1", "Same person")
        with pytest.raises(StateConflictException):
            service.ignore_conflict(conflict.conflict_id, "Test data")
        with pytest.raises(StateConflictException):
            service.escalate_conflict(conflict.conflict_id, "Needs legal review")
        with pytest.raises(StateConflictException):
            service.conflicts.assign(conflict.conflict_id, "reviewer.1")

        assert service.store.get(EntityKind.PERSON, existing_id) == before
        stored = service.conflicts.get_conflict(conflict.conflict_id)
        assert stored.status == ConflictStatus.PENDING_REVIEW
        assert stored.review_attempt_count == 0
        person = service.staging_repo.get_by_original_id(package_id, EntityKind.PERSON, "p-1")
        assert person.status == ValidationStatus.VALID

    def test_acting_user_required(self, db, reviewing):
        _, conflict, _ = reviewing
        anonymous = ImportService(db, CurrentUserProvider())

        with pytest.raises(AuthorizationException):
            anonymous.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "Reason")


class TestEscalation:

    def test_escalation_keeps_gate_closed(self, service, reviewing):
        package_id, conflict, _ = reviewing

        escalated = service.escalate_conflict(conflict.conflict_id, "Needs legal review")

        assert escalated.status == ConflictStatus.PENDING_REVIEW
        assert escalated.is_escalated
        assert escalated.priority == ConflictPriority.HIGH
        assert escalated.escalated_by == "data.manager"
        assert service.get_package(package_id).status == ImportStatus.REVIEWING_CONFLICTS
        with pytest.raises(StateConflictException):
            service.commit_package(package_id, approve_all_valid=True)

    def test_escalated_conflict_can_still_be_resolved(self, service, reviewing):
        package_id, conflict, _ = reviewing
        service.escalate_conflict(conflict.conflict_id, "Needs legal review")
        service.escalate_conflict(conflict.conflict_id, "Still unclear")

        resolved = service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "Cleared")

        assert resolved.escalation_reason == "Needs legal review\nStill unclear"
        assert service.get_package(package_id).status == ImportStatus.READY_TO_COMMIT


class TestAssignmentAndReview:

    def test_assign(self, service, reviewing):
        _, conflict, _ = reviewing

        assigned = service.conflicts.assign(conflict.conflict_id, "reviewer.1", target_hours=24)

        assert assigned.assigned_to == "reviewer.1"
        assert assigned.target_resolution_hours == 24
        with pytest.raises(ValidationException):
            service.conflicts.assign(conflict.conflict_id, "reviewer.1", target_hours=0)

    def test_review_attempts_are_counted(self, service, reviewing):
        _, conflict, _ = reviewing

        service.conflicts.record_review_attempt(conflict.conflict_id, "Called the family")
        reviewed = service.conflicts.record_review_attempt(conflict.conflict_id, "No answer")

        assert reviewed.review_attempt_count == 2
        assert reviewed.review_history[-1]["note"] == "No answer"
        assert reviewed.status == ConflictStatus.PENDING_REVIEW


class TestQueue:

    def test_queue_filter_and_pagination(self, service, reviewing):
        package_id, conflict, _ = reviewing

        page = service.get_conflict_queue(ConflictFilter(import_package_id=package_id), page=1, page_size=10)
        empty = service.get_conflict_queue(ConflictFilter(status=ConflictStatus.RESOLVED))

        assert page["total"] == 1
        assert page["items"][0]["conflict_id"] == conflict.conflict_id
        assert empty["total"] == 0

    def test_stats(self, service, reviewing):
        package_id, conflict, _ = reviewing
        service.escalate_conflict(conflict.conflict_id, "Needs legal review")

        stats = service.conflicts.get_queue_stats(package_id)

        assert stats["total"] == 1
        assert stats["total_pending"] == 1
        assert stats["escalated"] == 1
        assert stats["overdue"] == 0

    def test_detail_has_audit_trail(self, service, reviewing):
        _, conflict, _ = reviewing
        service.escalate_conflict(conflict.conflict_id, "Needs legal review")
        service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "Cleared")

        detail = service.get_conflict_detail(conflict.conflict_id)

        actions = [entry["action"] for entry in detail["audit_trail"]]
        assert "conflict_created" in actions
        assert "conflict_escalated" in actions
        assert "conflict_resolved" in actions
        assert detail["status"] == "resolved"


class TestNumbering:

    def _conflict(self, package_id, second_id, number):
        return Conflict(
            import_package_id=package_id,
            conflict_type=ConflictType.PERSON_DUPLICATE,
            first_entity_id="p-1",
            second_entity_id=second_id,
            conflict_number=number,
        )

    def test_sequence_past_four_digits(self, db, service, reviewing):
        """Numbers are compared as integers, so 10000 follows 9999."""
        package_id, _, _ = reviewing
        repo = service.conflicts.conflict_repo
        repo.insert_if_absent(self._conflict(package_id, "x-1", "CNF-2026-9999"))
        repo.insert_if_absent(self._conflict(package_id, "x-2", "CNF-2026-10000"))

        assert repo.next_conflict_number(year=2026) == "CNF-2026-10001"

    def test_package_sequence_past_four_digits(self, service):
        repo = service.package_repo
        repo.create(ImportPackage(package_number="PKG-2026-9999", file_name="a.uhc"))
        repo.create(ImportPackage(package_number="PKG-2026-10000", file_name="b.uhc"))

        assert repo.next_package_number(year=2026) == "PKG-2026-10001"


class TestAuditFailure:
    """A broken audit log is reported, never raised."""

    def test_pipeline_survives_missing_audit_table(self, db, service, reviewing, manifest_factory):
        package_id, conflict, _ = reviewing
        db.execute("DROP TABLE audit_log")

        resolved = service.resolve_conflict(conflict.conflict_id, ResolutionOutcome.KEEP_BOTH, "Not a duplicate")
        submitted = service.submit_package(manifest_factory())

        assert resolved.status == ConflictStatus.RESOLVED
        assert service.get_package(package_id).status == ImportStatus.READY_TO_COMMIT
        assert service.get_package(submitted.package_id).status == ImportStatus.PENDING
