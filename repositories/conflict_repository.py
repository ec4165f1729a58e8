# -*- coding: utf-8 -*-
"""
Conflict repository.

The conflicts table carries UNIQUE(import_package_id, pair_key), so a second
insert for the same unordered pair is a no-op (ON CONFLICT DO NOTHING).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from models.conflict import (
    Conflict,
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    ConfidenceLevel,
    ResolutionOutcome,
)
from .database import Database
from utils.datetime_utils import from_isoformat, to_isoformat, utcnow
from utils.helpers import dump_json, format_sequence_number, load_json
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "conflict_id", "conflict_number", "import_package_id", "conflict_type", "entity_type",
    "pair_key", "first_entity_id", "second_entity_id", "first_entity_identifier",
    "second_entity_identifier", "similarity_score", "confidence_level", "matching_criteria",
    "data_comparison", "description", "status", "resolution_outcome", "priority",
    "is_escalated", "escalation_reason", "escalated_at", "escalated_by",
    "assigned_to", "assigned_at", "target_resolution_hours", "due_at",
    "review_attempt_count", "review_history", "merged_entity_id", "discarded_entity_id",
    "merge_mapping", "resolution_reason", "resolution_notes", "resolved_at", "resolved_by",
    "is_auto_detected", "detected_at", "detected_by",
)


@dataclass
class ConflictFilter:
    """Queue filter; unset fields do not restrict."""
    conflict_type: Optional[ConflictType] = None
    status: Optional[ConflictStatus] = None
    priority: Optional[ConflictPriority] = None
    import_package_id: Optional[str] = None
    assigned_to: Optional[str] = None
    is_escalated: Optional[bool] = None
    overdue_only: bool = False

    def to_where(self) -> Tuple[str, list]:
        conditions = []
        params: list = []

        if self.conflict_type:
            conditions.append("conflict_type = ?")
            params.append(self.conflict_type.value)
        if self.status:
            conditions.append("status = ?")
            params.append(self.status.value)
        if self.priority:
            conditions.append("priority = ?")
            params.append(self.priority.value)
        if self.import_package_id:
            conditions.append("import_package_id = ?")
            params.append(self.import_package_id)
        if self.assigned_to:
            conditions.append("assigned_to = ?")
            params.append(self.assigned_to)
        if self.is_escalated is not None:
            conditions.append("is_escalated = ?")
            params.append(1 if self.is_escalated else 0)
        if self.overdue_only:
            conditions.append("status = ? AND due_at < ?")
            params.extend([ConflictStatus.PENDING_REVIEW.value, to_isoformat(utcnow())])

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        return where_clause, params


class ConflictRepository:
    """Repository for the conflict queue."""

    def __init__(self, db: Database):
        self.db = db

    def next_conflict_number(self, year: Optional[int] = None, cursor: Any = None) -> str:
        """Next CNF-{year}-{NNNN} number."""
        year = year or utcnow().year
        prefix = f"CNF-{year}-"
        # Numeric max; text ordering puts 9999 after 10000
        row = self.db.fetch_one(
            "SELECT MAX(CAST(SUBSTR(conflict_number, ?) AS INTEGER)) as last_sequence "
            "FROM conflicts WHERE conflict_number LIKE ?",
            (len(prefix) + 1, prefix + "%"),
            cursor=cursor
        )
        sequence = (row["last_sequence"] or 0) + 1 if row else 1
        return format_sequence_number("CNF", year, sequence)

    def insert_if_absent(self, conflict: Conflict, cursor: Any = None) -> bool:
        """
        Insert a conflict unless one already exists for its pair in the package.

        Returns:
            True when a row was inserted
        """
        existing = self.get_by_pair(conflict.import_package_id, conflict.pair_key, cursor=cursor)
        if existing:
            return False

        placeholders = ", ".join("?" for _ in _COLUMNS)
        self.db.execute(
            f"INSERT INTO conflicts ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT (import_package_id, pair_key) DO NOTHING",
            self._to_params(conflict),
            cursor=cursor
        )
        stored = self.get_by_pair(conflict.import_package_id, conflict.pair_key, cursor=cursor)
        return stored is not None and stored.conflict_id == conflict.conflict_id

    def update(self, conflict: Conflict, cursor: Any = None) -> Conflict:
        assignments = ", ".join(f"{col} = ?" for col in _COLUMNS[1:])
        params = self._to_params(conflict)[1:] + (conflict.conflict_id,)
        self.db.execute(
            f"UPDATE conflicts SET {assignments} WHERE conflict_id = ?",
            params,
            cursor=cursor
        )
        return conflict

    def get_by_id(self, conflict_id: str, cursor: Any = None) -> Optional[Conflict]:
        row = self.db.fetch_one(
            "SELECT * FROM conflicts WHERE conflict_id = ?", (conflict_id,), cursor=cursor
        )
        return self._row_to_conflict(row) if row else None

    def get_by_pair(self, package_id: str, pair_key: str, cursor: Any = None) -> Optional[Conflict]:
        row = self.db.fetch_one(
            "SELECT * FROM conflicts WHERE import_package_id = ? AND pair_key = ?",
            (package_id, pair_key),
            cursor=cursor
        )
        return self._row_to_conflict(row) if row else None

    def get_by_package(self, package_id: str, cursor: Any = None) -> List[Conflict]:
        rows = self.db.fetch_all(
            "SELECT * FROM conflicts WHERE import_package_id = ? ORDER BY conflict_number",
            (package_id,),
            cursor=cursor
        )
        return [self._row_to_conflict(row) for row in rows]

    def count_pending(self, package_id: str, cursor: Any = None) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) as count FROM conflicts WHERE import_package_id = ? AND status = ?",
            (package_id, ConflictStatus.PENDING_REVIEW.value),
            cursor=cursor
        )
        return row["count"] if row else 0

    def query(self, conflict_filter: ConflictFilter, limit: int, offset: int) -> List[Conflict]:
        """Filtered queue, highest priority and oldest first."""
        where_clause, params = conflict_filter.to_where()
        query = f"""
            SELECT * FROM conflicts
            WHERE {where_clause}
            ORDER BY
                CASE priority
                    WHEN 'high' THEN 1
                    WHEN 'normal' THEN 2
                    ELSE 3
                END,
                detected_at ASC,
                conflict_number ASC
            LIMIT ? OFFSET ?
        """
        params.extend([limit, offset])
        rows = self.db.fetch_all(query, tuple(params))
        return [self._row_to_conflict(row) for row in rows]

    def count(self, conflict_filter: ConflictFilter) -> int:
        where_clause, params = conflict_filter.to_where()
        row = self.db.fetch_one(
            f"SELECT COUNT(*) as count FROM conflicts WHERE {where_clause}", tuple(params)
        )
        return row["count"] if row else 0

    def grouped_counts(self, package_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Counts grouped by status, priority, type and escalation."""
        query = """
            SELECT status, priority, conflict_type, is_escalated, COUNT(*) as count
            FROM conflicts
        """
        params: list = []
        if package_id:
            query += " WHERE import_package_id = ?"
            params.append(package_id)
        query += " GROUP BY status, priority, conflict_type, is_escalated"
        return [row.to_dict() for row in self.db.fetch_all(query, tuple(params))]

    def _to_params(self, c: Conflict) -> tuple:
        return (
            c.conflict_id, c.conflict_number, c.import_package_id, c.conflict_type.value,
            c.entity_type, c.pair_key, c.first_entity_id, c.second_entity_id,
            c.first_entity_identifier, c.second_entity_identifier, c.similarity_score,
            c.confidence_level.value, dump_json(c.matching_criteria),
            dump_json(c.data_comparison), c.description, c.status.value,
            c.resolution_outcome.value if c.resolution_outcome else None, c.priority.value,
            1 if c.is_escalated else 0, c.escalation_reason, to_isoformat(c.escalated_at),
            c.escalated_by, c.assigned_to, to_isoformat(c.assigned_at),
            c.target_resolution_hours, to_isoformat(c.due_at),
            c.review_attempt_count, dump_json(c.review_history), c.merged_entity_id,
            c.discarded_entity_id, dump_json(c.merge_mapping), c.resolution_reason,
            c.resolution_notes, to_isoformat(c.resolved_at), c.resolved_by,
            1 if c.is_auto_detected else 0, to_isoformat(c.detected_at), c.detected_by,
        )

    def _row_to_conflict(self, row) -> Conflict:
        """Convert database row to Conflict."""
        data = row.to_dict() if hasattr(row, "to_dict") else dict(row)
        outcome = data.get("resolution_outcome")
        return Conflict(
            conflict_id=data["conflict_id"],
            conflict_number=data["conflict_number"],
            import_package_id=data["import_package_id"],
            conflict_type=ConflictType(data["conflict_type"]),
            first_entity_id=data["first_entity_id"],
            second_entity_id=data["second_entity_id"],
            first_entity_identifier=data.get("first_entity_identifier") or "",
            second_entity_identifier=data.get("second_entity_identifier") or "",
            similarity_score=data.get("similarity_score") or 0.0,
            confidence_level=ConfidenceLevel(data.get("confidence_level") or "low"),
            matching_criteria=load_json(data.get("matching_criteria"), []),
            data_comparison=load_json(data.get("data_comparison"), {}),
            description=data.get("description") or "",
            status=ConflictStatus(data["status"]),
            resolution_outcome=ResolutionOutcome(outcome) if outcome else None,
            priority=ConflictPriority(data["priority"]),
            is_escalated=bool(data.get("is_escalated")),
            escalation_reason=data.get("escalation_reason"),
            escalated_at=from_isoformat(data.get("escalated_at")),
            escalated_by=data.get("escalated_by"),
            assigned_to=data.get("assigned_to"),
            assigned_at=from_isoformat(data.get("assigned_at")),
            target_resolution_hours=data.get("target_resolution_hours") or 72,
            review_attempt_count=data.get("review_attempt_count") or 0,
            review_history=load_json(data.get("review_history"), []),
            merged_entity_id=data.get("merged_entity_id"),
            discarded_entity_id=data.get("discarded_entity_id"),
            merge_mapping=load_json(data.get("merge_mapping")),
            resolution_reason=data.get("resolution_reason"),
            resolution_notes=data.get("resolution_notes"),
            resolved_at=from_isoformat(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            is_auto_detected=bool(data.get("is_auto_detected")),
            detected_at=from_isoformat(data.get("detected_at")) or utcnow(),
            detected_by=data.get("detected_by"),
        )
