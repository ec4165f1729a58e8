# -*- coding: utf-8 -*-
"""
Authoritative store.

Production tables outside the import boundary. The pipeline only reads by
key, creates, updates from staged data, relinks references on merge and
deactivates merged-away entities; nothing is physically deleted.
"""

from typing import Any, Dict, List, Optional, Tuple
import uuid

from models.staging import EntityKind
from .database import Database
from utils.datetime_utils import to_isoformat, utcnow
from utils.helpers import dump_json, load_json
from utils.logger import get_logger

logger = get_logger(__name__)

# kind -> (table, id column, indexed columns besides the id)
TABLES: Dict[EntityKind, Tuple[str, str, Tuple[str, ...]]] = {
    EntityKind.BUILDING: ("buildings", "building_id", ("building_code",)),
    EntityKind.PROPERTY_UNIT: (
        "property_units", "unit_id",
        ("building_id", "building_code", "unit_identifier", "unit_key"),
    ),
    EntityKind.PERSON: (
        "persons", "person_id",
        ("national_id", "first_name", "father_name", "family_name", "family_name_key",
         "gender", "year_of_birth", "mobile_number", "phone_number"),
    ),
    EntityKind.HOUSEHOLD: ("households", "household_id", ("property_unit_id", "head_person_id")),
    EntityKind.RELATION: (
        "person_property_relations", "relation_id",
        ("person_id", "property_unit_id", "relation_type", "ownership_share"),
    ),
    EntityKind.EVIDENCE: ("evidences", "evidence_id", ("person_id", "relation_id", "claim_id")),
    EntityKind.CLAIM: ("claims", "claim_id", ("property_unit_id", "claimant_person_id")),
    EntityKind.SURVEY: ("surveys", "survey_id", ("building_id",)),
}

# Foreign references to relink when an entity of the key kind is merged away
REFERENCE_COLUMNS: Dict[EntityKind, List[Tuple[str, str]]] = {
    EntityKind.PERSON: [
        ("households", "head_person_id"),
        ("person_property_relations", "person_id"),
        ("evidences", "person_id"),
        ("claims", "claimant_person_id"),
    ],
    EntityKind.PROPERTY_UNIT: [
        ("households", "property_unit_id"),
        ("person_property_relations", "property_unit_id"),
        ("claims", "property_unit_id"),
    ],
}


class AuthoritativeStore:
    """Lookup, create and merge operations on the authoritative tables."""

    def __init__(self, db: Database):
        self.db = db

    # ==================== Lookups ====================

    def get(self, kind: EntityKind, entity_id: str, cursor: Any = None) -> Optional[Dict[str, Any]]:
        table, id_col, _ = TABLES[kind]
        row = self.db.fetch_one(f"SELECT * FROM {table} WHERE {id_col} = ?", (entity_id,), cursor=cursor)
        return self._row_to_dict(row) if row else None

    def find_persons_by_national_id(self, national_id: str) -> List[Dict[str, Any]]:
        """Active persons with the same national id (case-insensitive)."""
        rows = self.db.fetch_all(
            "SELECT * FROM persons WHERE LOWER(national_id) = LOWER(?) AND is_active = 1",
            (national_id.strip(),)
        )
        return [self._row_to_dict(row) for row in rows]

    def find_persons_by_name_prefix(self, family_prefix: str, limit: int = 500) -> List[Dict[str, Any]]:
        """Active persons whose normalised family name starts with the prefix."""
        rows = self.db.fetch_all(
            "SELECT * FROM persons WHERE family_name_key LIKE ? AND is_active = 1 LIMIT ?",
            (family_prefix + "%", limit)
        )
        return [self._row_to_dict(row) for row in rows]

    def find_units_by_key(self, unit_key: str) -> List[Dict[str, Any]]:
        """Active property units with the composite building+unit key."""
        rows = self.db.fetch_all(
            "SELECT * FROM property_units WHERE unit_key = ? AND is_active = 1", (unit_key,)
        )
        return [self._row_to_dict(row) for row in rows]

    def find_building_by_code(self, building_code: str, cursor: Any = None) -> Optional[Dict[str, Any]]:
        row = self.db.fetch_one(
            "SELECT * FROM buildings WHERE building_code = ?", (building_code,), cursor=cursor
        )
        return self._row_to_dict(row) if row else None

    def count(self, kind: EntityKind, active_only: bool = True) -> int:
        table, _, _ = TABLES[kind]
        query = f"SELECT COUNT(*) as count FROM {table}"
        if active_only:
            query += " WHERE is_active = 1"
        row = self.db.fetch_one(query)
        return row["count"] if row else 0

    # ==================== Writes ====================

    def create(self, kind: EntityKind, values: Dict[str, Any], data: Dict[str, Any],
               user_id: Optional[str], source_package_id: Optional[str] = None,
               source_original_id: Optional[str] = None, cursor: Any = None) -> str:
        """
        Insert an authoritative entity.

        Args:
            values: Indexed column values (see TABLES)
            data: Full entity payload stored as JSON

        Returns:
            The new entity id
        """
        table, id_col, columns = TABLES[kind]
        entity_id = values.get(id_col) or str(uuid.uuid4())
        now = to_isoformat(utcnow())

        names = [id_col] + list(columns) + [
            "data", "is_active", "source_package_id", "source_original_id",
            "created_at", "created_by", "updated_at", "updated_by",
        ]
        params = [entity_id] + [values.get(col) for col in columns] + [
            dump_json(data), 1, source_package_id, source_original_id,
            now, user_id, now, user_id,
        ]
        self.db.execute(
            f"INSERT INTO {table} ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)})",
            tuple(params),
            cursor=cursor
        )
        logger.debug(f"Created {kind.value}: {entity_id}")
        return entity_id

    def update(self, kind: EntityKind, entity_id: str, values: Dict[str, Any],
               data: Optional[Dict[str, Any]], user_id: Optional[str], cursor: Any = None) -> None:
        """Overwrite indexed columns (and the payload, when given)."""
        table, id_col, columns = TABLES[kind]
        assignments = [f"{col} = ?" for col in columns if col in values]
        params = [values[col] for col in columns if col in values]
        if data is not None:
            assignments.append("data = ?")
            params.append(dump_json(data))
        assignments.extend(["updated_at = ?", "updated_by = ?"])
        params.extend([to_isoformat(utcnow()), user_id, entity_id])
        self.db.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE {id_col} = ?",
            tuple(params),
            cursor=cursor
        )

    def relink_references(self, kind: EntityKind, old_id: str, new_id: str,
                          cursor: Any = None) -> Dict[str, int]:
        """
        Point every foreign reference held by old_id at new_id.

        Returns:
            {"table.column": rows updated}
        """
        updated = {}
        for table, column in REFERENCE_COLUMNS.get(kind, []):
            count_row = self.db.fetch_one(
                f"SELECT COUNT(*) as count FROM {table} WHERE {column} = ?", (old_id,), cursor=cursor
            )
            count = count_row["count"] if count_row else 0
            if count:
                self.db.execute(
                    f"UPDATE {table} SET {column} = ? WHERE {column} = ?", (new_id, old_id), cursor=cursor
                )
            updated[f"{table}.{column}"] = count
        return updated

    def deactivate(self, kind: EntityKind, entity_id: str, merged_into_id: Optional[str],
                   user_id: Optional[str], cursor: Any = None) -> None:
        table, id_col, _ = TABLES[kind]
        self.db.execute(
            f"UPDATE {table} SET is_active = 0, merged_into_id = ?, updated_at = ?, updated_by = ? "
            f"WHERE {id_col} = ?",
            (merged_into_id, to_isoformat(utcnow()), user_id, entity_id),
            cursor=cursor
        )

    def _row_to_dict(self, row) -> Dict[str, Any]:
        data = row.to_dict() if hasattr(row, "to_dict") else dict(row)
        data["data"] = load_json(data.get("data"), {})
        data["is_active"] = bool(data.get("is_active"))
        return data
