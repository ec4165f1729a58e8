# -*- coding: utf-8 -*-
"""
Import service.

Entry point of the import reconciliation pipeline. Drives a package through
its lifecycle:

    submit -> validate -> detect duplicates -> (review conflicts) -> approve -> commit

Each phase checks the package status first and records its actor from the
CurrentUserProvider.
"""

import hashlib
import json
from typing import Any, Dict, List, Optional, Tuple

from app.config import Config
from models.commit_report import CommitReport
from models.conflict import ResolutionOutcome
from models.import_package import CANCELLABLE_STATUSES, REPORTABLE_STATUSES, ImportPackage, ImportStatus
from models.staging import ELIGIBLE_STATUSES, EntityKind, StagingMetadata, StagingRecord, ValidationStatus
from repositories.authoritative_repository import AuthoritativeStore
from repositories.conflict_repository import ConflictFilter
from repositories.database import Database
from repositories.package_repository import ImportPackageRepository
from repositories.staging_repository import StagingRepository
from services.audit_service import AuditLogger
from services.commit_service import CommitService
from services.conflict_resolution import ConflictResolutionService
from services.current_user import CurrentUserProvider
from services.duplicate_detection_service import DetectionResult, DuplicateDetectionService
from services.exceptions import NotFoundException, PackageStructureException, StateConflictException
from services.validation import StagingBatch, ValidationFactory, ValidationPipeline, ValidationReport
from services.vocabulary_version_service import VocabularyVersionProvider
from utils.helpers import clean_text
from utils.logger import get_logger

logger = get_logger(__name__)

_KINDS_BY_COLLECTION = {kind.collection_name: kind for kind in EntityKind}

# Phases that may still change staging data
_OPEN_STATUSES = (
    ImportStatus.STAGING,
    ImportStatus.REVIEWING_CONFLICTS,
    ImportStatus.READY_TO_COMMIT,
)


class ImportService:
    """
    Import pipeline facade.

    Usage:
        service = ImportService(db, CurrentUserProvider("data.manager"))
        package = service.submit_package(manifest)
        service.run_validation(package.package_id)
        service.run_detection(package.package_id)
        report = service.commit_package(package.package_id, approve_all_valid=True)
    """

    def __init__(self, db: Database, user_provider: CurrentUserProvider,
                 vocabulary_provider: Optional[VocabularyVersionProvider] = None,
                 archive_base_path: Optional[str] = None):
        self.db = db
        self.user_provider = user_provider
        self.audit = AuditLogger(db)
        self.package_repo = ImportPackageRepository(db)
        self.staging_repo = StagingRepository(db)
        self.store = AuthoritativeStore(db)
        self.pipeline = ValidationPipeline(ValidationFactory(vocabulary_provider))
        self.detection = DuplicateDetectionService(self.staging_repo, self.store)
        self.conflicts = ConflictResolutionService(db, user_provider, audit=self.audit)
        self.commit_service = CommitService(
            db,
            conflict_statistics=self.conflicts.conflict_statistics,
            archive_base_path=archive_base_path
        )

    # ==================== Helpers ====================

    def _get_package(self, package_id: str) -> ImportPackage:
        package = self.package_repo.get_by_id(package_id)
        if not package:
            raise NotFoundException(f"Import package {package_id} not found",
                                    entity_type="ImportPackage", entity_id=package_id)
        return package

    @staticmethod
    def _require_status(package: ImportPackage, allowed: tuple, action: str) -> None:
        if package.status not in allowed:
            raise StateConflictException(
                f"Cannot {action} package {package.package_number}",
                entity_type="ImportPackage",
                entity_id=package.package_id,
                current_status=package.status.value,
                expected=[s.value for s in allowed]
            )

    def _fail(self, package: ImportPackage, error: str, user_id: str) -> None:
        package.mark_failed(error, user_id)
        self.package_repo.update(package)
        self.audit.log("package_failed", "import_package", package.package_id, {"error": error}, user_id)
        logger.error(f"Package {package.package_number} failed: {error}")

    # ==================== Intake ====================

    @staticmethod
    def _structure_errors(manifest: Any) -> List[str]:
        """Problems that make a manifest unusable as a whole."""
        if not isinstance(manifest, dict):
            return ["Package manifest must be an object"]
        collections = manifest.get("records")
        if not isinstance(collections, dict):
            return ["Package manifest has no 'records' section"]

        errors = []
        total = 0
        for collection, items in collections.items():
            kind = _KINDS_BY_COLLECTION.get(collection)
            if kind is None:
                errors.append(f"Unknown collection '{collection}'")
                continue
            if not isinstance(items, list):
                errors.append(f"Collection '{collection}' must be a list")
                continue
            seen = set()
            for index, item in enumerate(items):
                original_id = clean_text(item.get("original_id")) if isinstance(item, dict) else ""
                if not original_id:
                    errors.append(f"{collection}[{index}]: missing original_id")
                elif original_id in seen:
                    errors.append(f"{collection}[{index}]: duplicate original_id {original_id}")
                seen.add(original_id)
            total += len(items)

        if total > Config.MAX_IMPORT_RECORDS:
            errors.append(f"Package holds {total} records, the limit is {Config.MAX_IMPORT_RECORDS}")
        return errors

    @staticmethod
    def _checksum(manifest: Dict[str, Any]) -> str:
        content = json.dumps(manifest.get("records", {}), sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    def submit_package(self, manifest: Dict[str, Any]) -> ImportPackage:
        """
        Register a parsed package and stage one record per entity.

        Raises:
            PackageStructureException: the manifest cannot be staged; the
                package is kept with status Failed
        """
        user_id = self.user_provider.require_user_id()
        data = manifest if isinstance(manifest, dict) else {}

        package = ImportPackage(
            file_name=clean_text(data.get("file_name")),
            checksum=clean_text(data.get("checksum")) or (self._checksum(data) if data else None),
            device_id=clean_text(data.get("device_id")) or None,
            vocabulary_versions=dict(data.get("vocabulary_versions") or {}),
            created_by=user_id,
        )
        with self.db.transaction() as cursor:
            self.package_repo.create(package, cursor=cursor)

        errors = self._structure_errors(manifest)
        if errors:
            self._fail(package, "; ".join(errors[:10]), user_id)
            raise PackageStructureException(
                f"Package {package.package_number} cannot be staged", package_id=package.package_id, errors=errors
            )

        records = []
        for collection, items in manifest["records"].items():
            kind = _KINDS_BY_COLLECTION[collection]
            for item in items:
                payload = {k: v for k, v in item.items() if k != "original_id"}
                records.append(StagingRecord(
                    kind=kind,
                    metadata=StagingMetadata(
                        import_package_id=package.package_id,
                        original_entity_id=clean_text(item["original_id"]),
                    ),
                    payload=payload,
                ))

        with self.db.transaction() as cursor:
            self.staging_repo.add_many(records, cursor=cursor)
            package.total_records = len(records)
            self.package_repo.update(package, cursor=cursor)

        self.audit.log("package_submitted", "import_package", package.package_id, {
            "package_number": package.package_number,
            "file_name": package.file_name,
            "records": len(records),
        }, user_id)
        logger.info(f"Submitted package {package.package_number} with {len(records)} records")
        return package

    # ==================== Validation ====================

    def run_validation(self, package_id: str) -> ValidationReport:
        """
        Run the validation levels and move the package to Staging,
        ValidationFailed or Quarantined.
        """
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        package.start_validation(user_id)
        self.package_repo.update(package)

        try:
            records = self.staging_repo.get_by_package(package_id)
            batch = StagingBatch(package_id, records, package.vocabulary_versions)
            report = self.pipeline.run(batch)
        except Exception as e:
            self._fail(package, f"Validation aborted: {e}", user_id)
            raise

        with self.db.transaction() as cursor:
            self.staging_repo.update_many(records, cursor=cursor)
            package.validation_notes = report.package_notes
            if report.is_quarantined:
                package.quarantine("; ".join(report.quarantine_reasons), user_id)
            else:
                package.complete_validation(
                    report.total(ValidationStatus.VALID),
                    report.total(ValidationStatus.WARNING),
                    report.total(ValidationStatus.INVALID),
                    report.total(ValidationStatus.SKIPPED),
                    user_id
                )
            self.package_repo.update(package, cursor=cursor)

        self.audit.log("package_validated", "import_package", package_id, {
            "status": package.status.value,
            "totals": report.to_dict()["totals"],
        }, user_id)
        logger.info(f"Validated package {package.package_number}: {package.status.value}")
        return report

    # ==================== Duplicate detection ====================

    def run_detection(self, package_id: str) -> DetectionResult:
        """
        Match staged persons and units, open conflicts, and move the package
        to ReviewingConflicts (or straight to ReadyToCommit).
        """
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        self._require_status(package, (ImportStatus.STAGING,), "run duplicate detection on")

        result = self.detection.detect(package_id)
        created, existing = self.conflicts.create_from_candidates(package_id, result.candidates)

        with self.db.transaction() as cursor:
            pending = self.conflicts.conflict_repo.count_pending(package_id, cursor=cursor)
            package.set_conflict_results(pending, user_id)
            package.conflict_count = len(self.conflicts.conflict_repo.get_by_package(package_id, cursor=cursor))
            self.package_repo.update(package, cursor=cursor)

        self.audit.log("duplicates_detected", "import_package", package_id, {
            "candidates": len(result.candidates),
            "conflicts_created": created,
            "conflicts_existing": existing,
        }, user_id)
        return result

    # ==================== Approval ====================

    def approve_for_commit(self, package_id: str, staging_ids: Optional[List[str]] = None) -> int:
        """
        Flag staged records for commit.

        Without staging_ids every Valid/Warning record is approved; named
        records that are not eligible raise StateConflictException.

        Returns:
            Number of records approved
        """
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        self._require_status(package, _OPEN_STATUSES, "approve records of")

        if staging_ids is None:
            records = [
                r for r in self.staging_repo.get_by_package(package_id, statuses=ELIGIBLE_STATUSES)
                if not r.metadata.is_approved_for_commit and not r.metadata.is_committed
            ]
        else:
            records = []
            for staging_id in staging_ids:
                record = self.staging_repo.get_by_id(staging_id)
                if record is None or record.metadata.import_package_id != package_id:
                    raise NotFoundException(f"Staging record {staging_id} not found in package",
                                            entity_type="StagingRecord", entity_id=staging_id)
                records.append(record)

        for record in records:
            record.metadata.approve_for_commit()

        with self.db.transaction() as cursor:
            self.staging_repo.update_many(records, cursor=cursor)

        self.audit.log("records_approved", "import_package", package_id, {"count": len(records)}, user_id)
        return len(records)

    def skip_staging_record(self, staging_id: str, reason: str) -> StagingRecord:
        """Operator override: exclude one staged record from commit."""
        user_id = self.user_provider.require_user_id()
        record = self.staging_repo.get_by_id(staging_id)
        if record is None:
            raise NotFoundException(f"Staging record {staging_id} not found",
                                    entity_type="StagingRecord", entity_id=staging_id)
        package = self._get_package(record.metadata.import_package_id)
        self._require_status(package, _OPEN_STATUSES, "skip records of")
        if record.metadata.is_committed:
            raise StateConflictException(
                "Committed records cannot be skipped", entity_type="StagingRecord",
                entity_id=staging_id, current_status=record.status.value
            )

        record.metadata.mark_as_skipped(reason)
        self.staging_repo.update(record)
        self.audit.log("record_skipped", "staging_record", staging_id, {"reason": reason}, user_id)
        return record

    # ==================== Commit ====================

    def commit_package(self, package_id: str, approve_all_valid: bool = False) -> CommitReport:
        """
        Commit approved records of a ReadyToCommit package.

        Args:
            approve_all_valid: Approve every Valid/Warning record first
        """
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        self._require_status(package, (ImportStatus.READY_TO_COMMIT,), "commit")

        if approve_all_valid:
            self.approve_for_commit(package_id)

        package.start_commit(user_id)
        self.package_repo.update(package)
        logger.info(f"Committing package {package.package_number}")

        try:
            report = self.commit_service.commit(package, user_id)
        except Exception as e:
            self._fail(package, f"Commit aborted: {e}", user_id)
            raise

        self.audit.log("package_committed", "import_package", package_id, {
            "status": report.status,
            "committed": report.total_committed,
            "failed": report.total_failed,
            "skipped": report.total_skipped,
        }, user_id)
        return report

    def get_commit_report(self, package_id: str) -> CommitReport:
        package = self._get_package(package_id)
        self._require_status(package, REPORTABLE_STATUSES, "report on")
        return self.commit_service.build_report(package)

    def reset_commit(self, package_id: str, reason: str) -> ImportPackage:
        """Return a package stuck in (or failed during) commit to ReadyToCommit."""
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        package.reset_commit(reason, user_id)
        self.package_repo.update(package)
        self.audit.log("commit_reset", "import_package", package_id, {"reason": reason}, user_id)
        return package

    def cancel_package(self, package_id: str, reason: str) -> ImportPackage:
        """Stop further work on a package. Committed records are kept."""
        user_id = self.user_provider.require_user_id()
        package = self._get_package(package_id)
        self._require_status(package, CANCELLABLE_STATUSES, "cancel")
        package.cancel(reason, user_id)
        self.package_repo.update(package)
        self.audit.log("package_cancelled", "import_package", package_id, {"reason": reason}, user_id)
        logger.info(f"Cancelled package {package.package_number}")
        return package

    # ==================== Queries ====================

    def get_package(self, package_id: str) -> ImportPackage:
        return self._get_package(package_id)

    def get_package_status(self, package_id: str) -> Dict[str, Any]:
        package = self._get_package(package_id)
        status = package.to_dict()
        status["staging"] = self.staging_repo.count_by_status(package_id)
        status["conflicts"] = self.conflicts.get_queue_stats(package_id)
        return status

    def list_packages(self, status: Optional[ImportStatus] = None, page: int = 1,
                      page_size: Optional[int] = None) -> Dict[str, Any]:
        page = max(1, page)
        page_size = min(max(1, page_size or Config.DEFAULT_PAGE_SIZE), Config.MAX_PAGE_SIZE)
        total = self.package_repo.count(status)
        packages = self.package_repo.list_packages(status, limit=page_size, offset=(page - 1) * page_size)
        return {
            'items': [p.to_dict() for p in packages],
            'total': total,
            'page': page,
            'page_size': page_size,
        }

    def get_staging_summary(self, package_id: str) -> Dict[str, Dict[str, int]]:
        self._get_package(package_id)
        return self.staging_repo.count_by_status(package_id)

    def get_staging_records(self, package_id: str, kind: Optional[EntityKind] = None) -> List[StagingRecord]:
        return self.staging_repo.get_by_package(package_id, kind)

    # ==================== Conflicts ====================

    def get_conflict_queue(self, conflict_filter: Optional[ConflictFilter] = None, page: int = 1,
                           page_size: Optional[int] = None) -> Dict[str, Any]:
        return self.conflicts.get_queue(conflict_filter, page, page_size)

    def get_conflict_detail(self, conflict_id: str) -> Dict[str, Any]:
        return self.conflicts.get_detail(conflict_id)

    def resolve_conflict(self, conflict_id: str, outcome: ResolutionOutcome, reason: str,
                         master_entity_id: Optional[str] = None, notes: Optional[str] = None):
        return self.conflicts.resolve(conflict_id, outcome, reason, master_entity_id, notes)

    def escalate_conflict(self, conflict_id: str, reason: str):
        return self.conflicts.escalate(conflict_id, reason)

    def ignore_conflict(self, conflict_id: str, reason: str):
        return self.conflicts.ignore(conflict_id, reason)

    def package_conflicts(self, package_id: str) -> Tuple[int, int]:
        """(pending, total) conflicts of a package."""
        conflicts = self.conflicts.conflict_repo.get_by_package(package_id)
        return sum(1 for c in conflicts if not c.is_terminal), len(conflicts)
