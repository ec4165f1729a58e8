# -*- coding: utf-8 -*-
"""
Commit Service
==============
Copies approved staged records into the authoritative store.

Features:
- Fixed kind order so references resolve to already committed entities
- One transaction per record (authoritative write + staging update)
- Partial failure: a failing record is reported, the batch goes on
- Buildings upserted by their 17-digit code
- Commit report re-derivable from staging data
- Archive of the report under ARCHIVE_BASE_PATH/{year}/{package_number}
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from app.config import Config
from models.commit_report import CommitError, CommitReport, EntityCommitSummary
from models.import_package import ImportPackage
from models.staging import COMMIT_ORDER, EntityKind, StagingRecord, ValidationStatus
from repositories.authoritative_repository import AuthoritativeStore
from repositories.database import Database
from repositories.package_repository import ImportPackageRepository
from repositories.staging_repository import StagingRepository
from services.entity_mapping import DEFERRED_REFERENCE_FIELDS, REFERENCE_FIELDS, column_values
from services.exceptions import NotFoundException
from utils.helpers import dump_json
from utils.logger import get_logger

logger = get_logger(__name__)

REPORT_FILE_NAME = "commit_report.json"


class CommitService:
    """Commit pipeline and commit report."""

    def __init__(self, db: Database, conflict_statistics=None, archive_base_path: Optional[str] = None):
        """
        Args:
            conflict_statistics: callable(package_id) -> (decided, merged)
            archive_base_path: Root of package archives (defaults to Config)
        """
        self.db = db
        self.store = AuthoritativeStore(db)
        self.staging_repo = StagingRepository(db)
        self.package_repo = ImportPackageRepository(db)
        self.conflict_statistics = conflict_statistics
        self.archive_base_path = Path(archive_base_path or Config.ARCHIVE_BASE_PATH)

    # ==================== Commit ====================

    def commit(self, package: ImportPackage, user_id: str) -> CommitReport:
        """
        Commit a package that is in Committing state.

        Moves it to Completed, PartiallyCompleted or Failed and archives it.
        """
        started = time.perf_counter()
        id_map = self.staging_repo.committed_id_map(package.package_id)

        for kind in COMMIT_ORDER:
            for record in self.staging_repo.get_by_package(package.package_id, kind):
                if not record.metadata.is_approved_for_commit or record.metadata.is_committed:
                    continue
                self._commit_record(package, record, id_map, user_id)

        self._link_deferred_references(package, id_map, user_id)

        duration_ms = int((time.perf_counter() - started) * 1000)
        report = self.build_report(package, duration_ms)
        package.complete_commit(report.total_committed, report.total_failed, report.total_skipped, user_id)
        self.package_repo.update(package)
        logger.info(
            f"Committed package {package.package_number}: {report.total_committed}/{report.total_approved} "
            f"records, status {package.status.value}"
        )

        self.archive(package, report, user_id)
        report.status = package.status.value
        report.is_archived = package.is_archived
        report.archive_path = package.archive_path
        return report

    def _commit_record(self, package: ImportPackage, record: StagingRecord,
                       id_map: Dict[Tuple[str, str], str], user_id: str) -> bool:
        try:
            with self.db.transaction() as cursor:
                entity_id = self._write(package, record, id_map, user_id, cursor)
                record.metadata.set_committed_entity_id(entity_id)
                self.staging_repo.update(record, cursor=cursor)
        except Exception as e:
            record.metadata.committed_entity_id = None
            record.metadata.commit_error = str(e)
            logger.error(
                f"Commit failed for {record.kind.value} {record.original_id} "
                f"in package {package.package_number}: {e}"
            )
            self.staging_repo.update(record)
            return False

        id_map[(record.kind.value, record.original_id)] = entity_id
        return True

    def _resolve_references(self, record: StagingRecord, id_map: Dict[Tuple[str, str], str],
                            fields) -> Dict[str, Any]:
        """Map original-id reference fields to authoritative ids."""
        values = {}
        for payload_field, target, column in fields:
            original_id = record.ref(payload_field)
            if not original_id:
                continue
            entity_id = id_map.get((target.value, original_id))
            if entity_id is None:
                raise NotFoundException(
                    f"Unresolved reference {payload_field}={original_id}",
                    entity_type=target.value,
                    entity_id=original_id
                )
            values[column] = entity_id
        return values

    def _write(self, package: ImportPackage, record: StagingRecord,
               id_map: Dict[Tuple[str, str], str], user_id: str, cursor: Any) -> str:
        """Create (or, for buildings, upsert) the authoritative entity of a record."""
        kind = record.kind
        references = self._resolve_references(record, id_map, REFERENCE_FIELDS.get(kind, []))

        building_code = None
        if kind == EntityKind.PROPERTY_UNIT:
            building = self.store.get(EntityKind.BUILDING, references["building_id"], cursor=cursor)
            building_code = building["building_code"] if building else None

        values = column_values(kind, record.payload, building_code=building_code)
        values.update(references)

        if kind == EntityKind.BUILDING:
            existing = self.store.find_building_by_code(values["building_code"], cursor=cursor)
            if existing:
                data = dict(existing.get("data") or {})
                data.update(record.payload)
                self.store.update(kind, existing["building_id"], {}, data, user_id, cursor=cursor)
                return existing["building_id"]

        return self.store.create(
            kind, values, dict(record.payload), user_id,
            source_package_id=package.package_id,
            source_original_id=record.original_id,
            cursor=cursor
        )

    def _link_deferred_references(self, package: ImportPackage,
                                  id_map: Dict[Tuple[str, str], str], user_id: str) -> None:
        """Fill in references to kinds committed after the referencing kind."""
        for kind, fields in DEFERRED_REFERENCE_FIELDS.items():
            for record in self.staging_repo.get_by_package(package.package_id, kind):
                if not record.metadata.is_committed or record.status == ValidationStatus.SKIPPED:
                    continue
                for payload_field, target, column in fields:
                    original_id = record.ref(payload_field)
                    entity_id = id_map.get((target.value, original_id)) if original_id else None
                    if original_id and entity_id is None:
                        logger.warning(
                            f"{kind.label} {record.original_id}: {payload_field}={original_id} "
                            f"was not committed, link left empty"
                        )
                    elif entity_id:
                        self.store.update(
                            kind, record.metadata.committed_entity_id, {column: entity_id}, None, user_id
                        )

    # ==================== Report ====================

    def build_report(self, package: ImportPackage, duration_ms: int = 0) -> CommitReport:
        """Derive the commit report from the staged records of a package."""
        report = CommitReport(
            package_id=package.package_id,
            package_number=package.package_number,
            status=package.status.value,
            committed_by=package.committed_by,
            committed_at=package.committed_at,
            duration_ms=duration_ms,
            is_archived=package.is_archived,
            archive_path=package.archive_path,
        )

        for kind in COMMIT_ORDER:
            summary = EntityCommitSummary(entity_kind=kind.value)
            for record in self.staging_repo.get_by_package(package.package_id, kind):
                meta = record.metadata
                if record.status == ValidationStatus.SKIPPED:
                    summary.skipped += 1
                    continue
                if not meta.is_approved_for_commit:
                    continue
                summary.approved += 1
                if meta.is_committed:
                    summary.committed += 1
                    summary.id_mappings[record.original_id] = meta.committed_entity_id
                elif meta.commit_error:
                    report.errors.append(CommitError(
                        entity_kind=kind.value,
                        staging_id=record.staging_id,
                        original_id=record.original_id,
                        message=meta.commit_error,
                    ))
            report.summaries[kind.value] = summary

        if self.conflict_statistics:
            report.conflict_resolutions_applied, report.merges_performed = \
                self.conflict_statistics(package.package_id)
        return report

    # ==================== Archive ====================

    def archive(self, package: ImportPackage, report: CommitReport, user_id: Optional[str]) -> bool:
        """
        Write the report under the package archive folder and flag the package.

        Archiving is not critical: a failure is logged and the commit stands.
        """
        year = (package.committed_at or package.created_at).year
        archive_dir = self.archive_base_path / str(year) / package.package_number
        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
            report_data = report.to_dict()
            report_data["status"] = package.status.value
            (archive_dir / REPORT_FILE_NAME).write_text(dump_json(report_data), encoding="utf-8")
            package.archive(str(archive_dir), user_id)
            self.package_repo.update(package)
        except Exception as e:
            logger.warning(f"Failed to archive package {package.package_number}: {e}")
            return False

        logger.info(f"Archived package {package.package_number} to {archive_dir}")
        return True
