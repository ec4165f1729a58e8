# -*- coding: utf-8 -*-
"""
Audit logger.

Fire-and-forget: a failed audit write is logged and swallowed so it never
breaks the pipeline step that produced it.
"""

from typing import Any, Dict, List, Optional

from repositories.database import Database
from utils.datetime_utils import to_isoformat, utcnow
from utils.helpers import dump_json, load_json
from utils.logger import get_logger

logger = get_logger(__name__)


class AuditLogger:
    """Writes pipeline and conflict actions to audit_log."""

    def __init__(self, db: Database):
        self.db = db

    def log(self, action: str, entity_type: str, entity_id: Optional[str],
            details: Optional[Dict[str, Any]] = None, performed_by: Optional[str] = None) -> None:
        try:
            self.db.execute("""
                INSERT INTO audit_log (action, entity_type, entity_id, details, performed_by, performed_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                action,
                entity_type,
                entity_id,
                dump_json(details or {}),
                performed_by,
                to_isoformat(utcnow()),
            ))
        except Exception as e:
            logger.warning(f"Failed to log {action} on {entity_type} {entity_id}: {e}")

    def get_trail(self, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
        """Audit entries of one entity, oldest first."""
        rows = self.db.fetch_all("""
            SELECT id, action, entity_type, entity_id, details, performed_by, performed_at
            FROM audit_log
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY performed_at ASC, id ASC
        """, (entity_type, entity_id))

        return [
            {
                'id': row['id'],
                'action': row['action'],
                'details': load_json(row['details'], {}),
                'performed_by': row['performed_by'],
                'performed_at': row['performed_at'],
            }
            for row in rows
        ]
