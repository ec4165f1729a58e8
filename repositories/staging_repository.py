# -*- coding: utf-8 -*-
"""
Staging repository.

A single parametrized store for all eight entity kinds, keyed by entity_kind.
Records are never physically deleted.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.staging import EntityKind, StagingMetadata, StagingRecord, ValidationStatus
from .database import Database
from utils.datetime_utils import from_isoformat, to_isoformat, utcnow
from utils.helpers import dump_json, load_json
from utils.logger import get_logger

logger = get_logger(__name__)


class StagingRepository:
    """Repository for staged records of every entity kind."""

    def __init__(self, db: Database):
        self.db = db

    def add_many(self, records: Iterable[StagingRecord], cursor: Any = None) -> int:
        """Insert staged records. Duplicate original ids violate the unique index."""
        query = """
            INSERT INTO staging_records (
                staging_id, import_package_id, entity_kind, original_entity_id, payload,
                validation_status, validation_errors, validation_warnings,
                is_approved_for_commit, committed_entity_id, commit_error, skip_reason,
                staged_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        count = 0
        for record in records:
            meta = record.metadata
            self.db.execute(query, (
                meta.staging_id,
                meta.import_package_id,
                record.kind.value,
                meta.original_entity_id,
                dump_json(record.payload),
                meta.validation_status.value,
                dump_json(meta.validation_errors),
                dump_json(meta.validation_warnings),
                1 if meta.is_approved_for_commit else 0,
                meta.committed_entity_id,
                meta.commit_error,
                meta.skip_reason,
                to_isoformat(meta.staged_at),
                to_isoformat(utcnow()),
            ), cursor=cursor)
            count += 1
        logger.debug(f"Staged {count} records")
        return count

    def get_by_id(self, staging_id: str, cursor: Any = None) -> Optional[StagingRecord]:
        row = self.db.fetch_one(
            "SELECT * FROM staging_records WHERE staging_id = ?", (staging_id,), cursor=cursor
        )
        return self._row_to_record(row) if row else None

    def get_by_original_id(self, package_id: str, kind: EntityKind, original_id: str,
                           cursor: Any = None) -> Optional[StagingRecord]:
        row = self.db.fetch_one(
            "SELECT * FROM staging_records "
            "WHERE import_package_id = ? AND entity_kind = ? AND original_entity_id = ?",
            (package_id, kind.value, original_id),
            cursor=cursor
        )
        return self._row_to_record(row) if row else None

    def get_by_package(self, package_id: str, kind: Optional[EntityKind] = None,
                       statuses: Optional[Iterable[ValidationStatus]] = None,
                       cursor: Any = None) -> List[StagingRecord]:
        """Staged records of a package, in staging order."""
        query = "SELECT * FROM staging_records WHERE import_package_id = ?"
        params: list = [package_id]
        if kind:
            query += " AND entity_kind = ?"
            params.append(kind.value)
        if statuses:
            values = [s.value for s in statuses]
            query += f" AND validation_status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY staged_at, original_entity_id"
        rows = self.db.fetch_all(query, tuple(params), cursor=cursor)
        return [self._row_to_record(row) for row in rows]

    def update(self, record: StagingRecord, cursor: Any = None) -> StagingRecord:
        """Persist metadata and payload of a staged record."""
        meta = record.metadata
        self.db.execute("""
            UPDATE staging_records SET
                payload = ?, validation_status = ?, validation_errors = ?,
                validation_warnings = ?, is_approved_for_commit = ?,
                committed_entity_id = ?, commit_error = ?, skip_reason = ?, updated_at = ?
            WHERE staging_id = ?
        """, (
            dump_json(record.payload),
            meta.validation_status.value,
            dump_json(meta.validation_errors),
            dump_json(meta.validation_warnings),
            1 if meta.is_approved_for_commit else 0,
            meta.committed_entity_id,
            meta.commit_error,
            meta.skip_reason,
            to_isoformat(utcnow()),
            meta.staging_id,
        ), cursor=cursor)
        return record

    def update_many(self, records: Iterable[StagingRecord], cursor: Any = None) -> None:
        for record in records:
            self.update(record, cursor=cursor)

    def committed_id_map(self, package_id: str,
                         cursor: Any = None) -> Dict[Tuple[str, str], str]:
        """{(entity_kind, original id): authoritative id} for committed or merged records."""
        rows = self.db.fetch_all(
            "SELECT entity_kind, original_entity_id, committed_entity_id FROM staging_records "
            "WHERE import_package_id = ? AND committed_entity_id IS NOT NULL",
            (package_id,),
            cursor=cursor
        )
        return {
            (row["entity_kind"], row["original_entity_id"]): row["committed_entity_id"]
            for row in rows
        }

    def count_by_status(self, package_id: str) -> Dict[str, Dict[str, int]]:
        """{entity_kind: {validation_status: count}}"""
        rows = self.db.fetch_all("""
            SELECT entity_kind, validation_status, COUNT(*) as count
            FROM staging_records
            WHERE import_package_id = ?
            GROUP BY entity_kind, validation_status
        """, (package_id,))

        summary: Dict[str, Dict[str, int]] = {}
        for row in rows:
            summary.setdefault(row["entity_kind"], {})[row["validation_status"]] = row["count"]
        return summary

    def _row_to_record(self, row) -> StagingRecord:
        """Convert database row to StagingRecord."""
        data = row.to_dict() if hasattr(row, "to_dict") else dict(row)
        metadata = StagingMetadata(
            import_package_id=data["import_package_id"],
            original_entity_id=data["original_entity_id"],
            staging_id=data["staging_id"],
            validation_status=ValidationStatus(data["validation_status"]),
            validation_errors=load_json(data.get("validation_errors"), []),
            validation_warnings=load_json(data.get("validation_warnings"), []),
            is_approved_for_commit=bool(data.get("is_approved_for_commit")),
            committed_entity_id=data.get("committed_entity_id"),
            commit_error=data.get("commit_error"),
            skip_reason=data.get("skip_reason"),
            staged_at=from_isoformat(data.get("staged_at")) or utcnow(),
        )
        return StagingRecord(
            kind=EntityKind(data["entity_kind"]),
            metadata=metadata,
            payload=load_json(data.get("payload"), {}),
        )
