# -*- coding: utf-8 -*-
"""
Import package repository for database operations.
"""

from typing import Any, List, Optional

from models.import_package import ImportPackage, ImportStatus
from .database import Database
from utils.datetime_utils import from_isoformat, to_isoformat, utcnow
from utils.helpers import dump_json, format_sequence_number, load_json
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "package_id", "package_number", "file_name", "checksum", "device_id", "status",
    "vocabulary_versions", "total_records", "valid_records", "warning_records",
    "invalid_records", "skipped_records", "conflict_count",
    "successful_import_count", "failed_import_count", "skipped_import_count",
    "validation_notes", "processing_notes", "error_message",
    "validation_started_at", "validation_completed_at", "committed_at", "committed_by",
    "completed_at", "is_archived", "archive_path", "archived_at",
    "created_at", "created_by", "updated_at", "updated_by",
)


class ImportPackageRepository:
    """Repository for ImportPackage persistence."""

    def __init__(self, db: Database):
        self.db = db

    def next_package_number(self, year: Optional[int] = None, cursor: Any = None) -> str:
        """Next PKG-{year}-{NNNN} number."""
        year = year or utcnow().year
        prefix = f"PKG-{year}-"
        row = self.db.fetch_one(
            "SELECT MAX(CAST(SUBSTR(package_number, ?) AS INTEGER)) as last_sequence "
            "FROM import_packages WHERE package_number LIKE ?",
            (len(prefix) + 1, prefix + "%"),
            cursor=cursor
        )
        sequence = (row["last_sequence"] or 0) + 1 if row else 1
        return format_sequence_number("PKG", year, sequence)

    def create(self, package: ImportPackage, cursor: Any = None) -> ImportPackage:
        """Insert a new package, assigning its number when missing."""
        if not package.package_number:
            package.package_number = self.next_package_number(package.created_at.year, cursor=cursor)

        placeholders = ", ".join("?" for _ in _COLUMNS)
        self.db.execute(
            f"INSERT INTO import_packages ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            self._to_params(package),
            cursor=cursor
        )
        logger.debug(f"Created import package: {package.package_number}")
        return package

    def update(self, package: ImportPackage, cursor: Any = None) -> ImportPackage:
        """Persist every mutable column of a package."""
        assignments = ", ".join(f"{col} = ?" for col in _COLUMNS[1:])
        params = self._to_params(package)[1:] + (package.package_id,)
        self.db.execute(
            f"UPDATE import_packages SET {assignments} WHERE package_id = ?",
            params,
            cursor=cursor
        )
        return package

    def get_by_id(self, package_id: str, cursor: Any = None) -> Optional[ImportPackage]:
        row = self.db.fetch_one(
            "SELECT * FROM import_packages WHERE package_id = ?", (package_id,), cursor=cursor
        )
        return self._row_to_package(row) if row else None

    def list_packages(self, status: Optional[ImportStatus] = None,
                      limit: int = 20, offset: int = 0) -> List[ImportPackage]:
        """List packages, newest first."""
        query = "SELECT * FROM import_packages"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, package_number DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        rows = self.db.fetch_all(query, tuple(params))
        return [self._row_to_package(row) for row in rows]

    def count(self, status: Optional[ImportStatus] = None) -> int:
        if status:
            row = self.db.fetch_one(
                "SELECT COUNT(*) as count FROM import_packages WHERE status = ?", (status.value,)
            )
        else:
            row = self.db.fetch_one("SELECT COUNT(*) as count FROM import_packages")
        return row["count"] if row else 0

    def _to_params(self, p: ImportPackage) -> tuple:
        return (
            p.package_id, p.package_number, p.file_name, p.checksum, p.device_id, p.status.value,
            dump_json(p.vocabulary_versions), p.total_records, p.valid_records, p.warning_records,
            p.invalid_records, p.skipped_records, p.conflict_count,
            p.successful_import_count, p.failed_import_count, p.skipped_import_count,
            dump_json(p.validation_notes), p.processing_notes, p.error_message,
            to_isoformat(p.validation_started_at), to_isoformat(p.validation_completed_at),
            to_isoformat(p.committed_at), p.committed_by,
            to_isoformat(p.completed_at), 1 if p.is_archived else 0, p.archive_path,
            to_isoformat(p.archived_at),
            to_isoformat(p.created_at), p.created_by, to_isoformat(p.updated_at), p.updated_by,
        )

    def _row_to_package(self, row) -> ImportPackage:
        """Convert database row to ImportPackage."""
        data = row.to_dict() if hasattr(row, "to_dict") else dict(row)
        return ImportPackage(
            package_id=data["package_id"],
            package_number=data["package_number"],
            file_name=data.get("file_name") or "",
            checksum=data.get("checksum"),
            device_id=data.get("device_id"),
            status=ImportStatus(data["status"]),
            vocabulary_versions=load_json(data.get("vocabulary_versions"), {}),
            total_records=data.get("total_records") or 0,
            valid_records=data.get("valid_records") or 0,
            warning_records=data.get("warning_records") or 0,
            invalid_records=data.get("invalid_records") or 0,
            skipped_records=data.get("skipped_records") or 0,
            conflict_count=data.get("conflict_count") or 0,
            successful_import_count=data.get("successful_import_count") or 0,
            failed_import_count=data.get("failed_import_count") or 0,
            skipped_import_count=data.get("skipped_import_count") or 0,
            validation_notes=load_json(data.get("validation_notes"), []),
            processing_notes=data.get("processing_notes") or "",
            error_message=data.get("error_message"),
            validation_started_at=from_isoformat(data.get("validation_started_at")),
            validation_completed_at=from_isoformat(data.get("validation_completed_at")),
            committed_at=from_isoformat(data.get("committed_at")),
            committed_by=data.get("committed_by"),
            completed_at=from_isoformat(data.get("completed_at")),
            is_archived=bool(data.get("is_archived")),
            archive_path=data.get("archive_path"),
            archived_at=from_isoformat(data.get("archived_at")),
            created_at=from_isoformat(data.get("created_at")) or utcnow(),
            created_by=data.get("created_by"),
            updated_at=from_isoformat(data.get("updated_at")) or utcnow(),
            updated_by=data.get("updated_by"),
        )
