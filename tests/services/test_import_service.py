# -*- coding: utf-8 -*-
"""
Tests for package intake and the package lifecycle.

Tests cover:
- Submission: numbering, checksum, one staged record per entity
- Structural rejection: package kept as Failed, PackageStructureException raised
- Package state machine: allowed and rejected transitions
- Approval and operator skip of staged records
- Cancel and commit reset
- Status queries and audit entries
"""

import pytest

from app.config import Config
from models.import_package import ImportPackage, ImportStatus
from models.staging import EntityKind, ValidationStatus
from services.exceptions import (
    NotFoundException,
    PackageStructureException,
    StateConflictException,
)


class TestSubmission:

    def test_stages_one_record_per_entity(self, service, manifest):
        package = service.submit_package(manifest)

        assert package.status == ImportStatus.PENDING
        assert package.package_number.startswith("PKG-")
        assert package.total_records == 8
        assert package.device_id == "tablet-07"
        assert len(package.checksum) == 64

        records = service.get_staging_records(package.package_id)
        assert len(records) == 8
        assert all(r.status == ValidationStatus.PENDING for r in records)
        person = service.get_staging_records(package.package_id, EntityKind.PERSON)[0]
        assert person.original_id == "p-1"
        assert "original_id" not in person.payload

    def test_package_numbers_are_sequential(self, service, manifest_factory):
        first = service.submit_package(manifest_factory())
        second = service.submit_package(manifest_factory())

        assert first.package_number != second.package_number
        assert second.package_number > first.package_number

    def test_declared_checksum_is_kept(self, service, manifest):
        manifest["checksum"] = "abc123"

        assert service.submit_package(manifest).checksum == "abc123"

    def test_submission_is_audited(self, service, manifest):
        package = service.submit_package(manifest)

        trail = service.audit.get_trail("import_package", package.package_id)
        assert trail[0]["action"] == "package_submitted"
        assert trail[0]["performed_by"] == "data.manager"


class TestStructuralRejection:

    def _rejected(self, service, manifest):
        with pytest.raises(PackageStructureException) as exc_info:
            service.submit_package(manifest)
        return exc_info.value

    def test_missing_records_section(self, service):
        error = self._rejected(service, {"file_name": "empty.uhc"})

        package = service.get_package(error.package_id)
        assert package.status == ImportStatus.FAILED
        assert "records" in package.error_message

    def test_duplicate_original_id(self, service, manifest):
        manifest["records"]["persons"].append(dict(manifest["records"]["persons"][0]))

        error = self._rejected(service, manifest)

        assert any("duplicate original_id p-1" in e for e in error.errors)
        assert service.get_staging_records(error.package_id) == []

    def test_unknown_collection(self, service, manifest):
        manifest["records"]["vehicles"] = []

        error = self._rejected(service, manifest)

        assert "Unknown collection 'vehicles'" in error.errors

    def test_record_limit(self, service, manifest, monkeypatch):
        monkeypatch.setattr(Config, "MAX_IMPORT_RECORDS", 5)

        error = self._rejected(service, manifest)

        assert any("limit is 5" in e for e in error.errors)


class TestPackageStateMachine:
    """Transitions on the ImportPackage model itself."""

    def test_happy_path(self):
        package = ImportPackage(package_number="PKG-2026-0001")
        package.start_validation("u")
        package.complete_validation(3, 1, 0, 0, "u")
        assert package.status == ImportStatus.STAGING

        package.set_conflict_results(2, "u")
        assert package.status == ImportStatus.REVIEWING_CONFLICTS
        package.mark_conflicts_resolved("u")
        package.start_commit("u")
        package.complete_commit(4, 0, 0, "u")

        assert package.status == ImportStatus.COMPLETED
        assert package.get_success_rate() == 100.0

    @pytest.mark.parametrize("committed,failed,expected", [
        (4, 0, ImportStatus.COMPLETED),
        (3, 1, ImportStatus.PARTIALLY_COMPLETED),
        (0, 4, ImportStatus.FAILED),
    ])
    def test_commit_outcome(self, committed, failed, expected):
        package = ImportPackage(status=ImportStatus.COMMITTING)
        package.complete_commit(committed, failed, 0, "u")

        assert package.status == expected

    def test_cannot_skip_validation(self):
        package = ImportPackage()

        with pytest.raises(StateConflictException):
            package.start_commit("u")
        assert package.status == ImportStatus.PENDING

    def test_terminal_states_are_final(self):
        package = ImportPackage(status=ImportStatus.COMPLETED)

        with pytest.raises(StateConflictException):
            package.cancel("late", "u")
        with pytest.raises(StateConflictException):
            package.mark_failed("boom", "u")

    def test_reset_commit(self):
        stuck = ImportPackage(status=ImportStatus.COMMITTING)
        stuck.reset_commit("worker died", "u")
        assert stuck.status == ImportStatus.READY_TO_COMMIT

        never_committed = ImportPackage(status=ImportStatus.FAILED)
        with pytest.raises(StateConflictException):
            never_committed.reset_commit("retry", "u")

    def test_archive_only_after_commit(self):
        package = ImportPackage(status=ImportStatus.READY_TO_COMMIT)

        with pytest.raises(StateConflictException):
            package.archive("/tmp/archive", "u")


class TestServiceLifecycle:

    def test_validation_runs_once(self, service, staged_package, manifest):
        package = staged_package(manifest)

        with pytest.raises(StateConflictException):
            service.run_validation(package.package_id)

    def test_validation_crash_fails_package(self, service, manifest, monkeypatch):
        package = service.submit_package(manifest)

        def explode(batch):
            raise RuntimeError("disk full")
        monkeypatch.setattr(service.pipeline, "run", explode)

        with pytest.raises(RuntimeError):
            service.run_validation(package.package_id)

        package = service.get_package(package.package_id)
        assert package.status == ImportStatus.FAILED
        assert "disk full" in package.error_message

    def test_cancel_before_commit(self, service, staged_package, manifest):
        package = staged_package(manifest)

        cancelled = service.cancel_package(package.package_id, "Wrong device")

        assert cancelled.status == ImportStatus.CANCELLED
        assert "[Cancelled]: Wrong device" in service.get_package(package.package_id).processing_notes
        with pytest.raises(StateConflictException):
            service.run_detection(package.package_id)

    def test_cancel_after_commit_is_rejected(self, service, staged_package, manifest):
        package = staged_package(manifest)
        service.run_detection(package.package_id)
        service.commit_package(package.package_id, approve_all_valid=True)

        with pytest.raises(StateConflictException):
            service.cancel_package(package.package_id, "Too late")

    def test_unknown_package(self, service):
        with pytest.raises(NotFoundException):
            service.get_package("missing")


class TestApproval:

    def test_approve_all_eligible(self, service, staged_package, manifest):
        package = staged_package(manifest)

        assert service.approve_for_commit(package.package_id) == 8
        # Already approved records are not counted twice
        assert service.approve_for_commit(package.package_id) == 0

    def test_skipped_record_cannot_be_approved(self, service, staged_package, manifest):
        package = staged_package(manifest)
        survey = service.get_staging_records(package.package_id, EntityKind.SURVEY)[0]

        skipped = service.skip_staging_record(survey.staging_id, "Duplicate visit")

        assert skipped.status == ValidationStatus.SKIPPED
        assert skipped.metadata.skip_reason == "Duplicate visit"
        with pytest.raises(StateConflictException):
            service.approve_for_commit(package.package_id, [survey.staging_id])

    def test_record_from_another_package(self, service, staged_package, manifest_factory):
        first = staged_package(manifest_factory())
        second = staged_package(manifest_factory())
        foreign = service.get_staging_records(second.package_id)[0]

        with pytest.raises(NotFoundException):
            service.approve_for_commit(first.package_id, [foreign.staging_id])

    def test_committed_record_cannot_be_skipped(self, service, staged_package, manifest):
        package = staged_package(manifest)
        service.run_detection(package.package_id)
        service.commit_package(package.package_id, approve_all_valid=True)
        record = service.get_staging_records(package.package_id)[0]

        with pytest.raises(StateConflictException):
            service.skip_staging_record(record.staging_id, "Oops")


class TestQueries:

    def test_package_status(self, service, staged_package, manifest):
        package = staged_package(manifest)

        status = service.get_package_status(package.package_id)

        assert status["status"] == "staging"
        assert status["staging"]["person"]["valid"] == 1
        assert status["conflicts"]["total"] == 0

    def test_list_packages(self, service, manifest_factory):
        for _ in range(3):
            service.submit_package(manifest_factory())

        page = service.list_packages(status=ImportStatus.PENDING, page=1, page_size=2)

        assert page["total"] == 3
        assert len(page["items"]) == 2
        assert service.list_packages(status=ImportStatus.COMPLETED)["total"] == 0
