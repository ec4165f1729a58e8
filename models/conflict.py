# -*- coding: utf-8 -*-
"""
Conflict model.

A Conflict is a reviewable duplicate candidate between two entities. Process
state (ConflictStatus) and the recorded decision (ResolutionOutcome) are kept
as two separate values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from utils.datetime_utils import utcnow


class ConflictType(Enum):
    """Types of duplicate conflicts."""
    PERSON_DUPLICATE = "person_duplicate"
    PERSON_DUPLICATE_WITHIN_BATCH = "person_duplicate_within_batch"
    PROPERTY_DUPLICATE = "property_duplicate"
    PROPERTY_DUPLICATE_WITHIN_BATCH = "property_duplicate_within_batch"

    @property
    def entity_type(self) -> str:
        if self in (ConflictType.PERSON_DUPLICATE, ConflictType.PERSON_DUPLICATE_WITHIN_BATCH):
            return "person"
        return "property_unit"

    @property
    def is_within_batch(self) -> bool:
        return self.value.endswith("_within_batch")


class ConflictStatus(Enum):
    """Process state of a conflict."""
    PENDING_REVIEW = "pending_review"   # Awaiting a human decision
    RESOLVED = "resolved"
    IGNORED = "ignored"


TERMINAL_CONFLICT_STATUSES = (ConflictStatus.RESOLVED, ConflictStatus.IGNORED)


class ResolutionOutcome(Enum):
    """Decision recorded on a resolved conflict."""
    MERGE = "merge"
    KEEP_BOTH = "keep_both"                   # Reviewed, not a duplicate
    KEEP_FIRST = "keep_first"
    KEEP_SECOND = "keep_second"
    MARK_AS_DUPLICATE = "mark_as_duplicate"


class ConflictPriority(Enum):
    """Review priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ConfidenceLevel(Enum):
    """Confidence band of a similarity score."""
    HIGH = "high"       # >= 90
    MEDIUM = "medium"   # 70-89
    LOW = "low"         # below the report threshold


def make_pair_key(entity_type: str, first_id: str, second_id: str) -> str:
    """Order-independent key of an entity pair."""
    a, b = sorted([str(first_id), str(second_id)])
    return f"{entity_type}:{a}|{b}"


@dataclass
class Conflict:
    """A human-reviewable duplicate candidate."""
    import_package_id: str
    conflict_type: ConflictType
    first_entity_id: str
    second_entity_id: str
    conflict_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    conflict_number: str = ""
    first_entity_identifier: str = ""
    second_entity_identifier: str = ""
    similarity_score: float = 0.0
    confidence_level: ConfidenceLevel = ConfidenceLevel.LOW
    matching_criteria: List[str] = field(default_factory=list)
    data_comparison: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    status: ConflictStatus = ConflictStatus.PENDING_REVIEW
    resolution_outcome: Optional[ResolutionOutcome] = None
    priority: ConflictPriority = ConflictPriority.NORMAL

    is_escalated: bool = False
    escalation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None
    escalated_by: Optional[str] = None

    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    target_resolution_hours: int = 72

    review_attempt_count: int = 0
    review_history: List[Dict[str, Any]] = field(default_factory=list)

    merged_entity_id: Optional[str] = None
    discarded_entity_id: Optional[str] = None
    merge_mapping: Optional[Dict[str, Any]] = None
    resolution_reason: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    is_auto_detected: bool = True
    detected_at: datetime = field(default_factory=utcnow)
    detected_by: Optional[str] = None

    @property
    def entity_type(self) -> str:
        return self.conflict_type.entity_type

    @property
    def pair_key(self) -> str:
        return make_pair_key(self.entity_type, self.first_entity_id, self.second_entity_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CONFLICT_STATUSES

    @property
    def due_at(self) -> datetime:
        return self.detected_at + timedelta(hours=self.target_resolution_hours)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Still pending after its target resolution window."""
        if self.status != ConflictStatus.PENDING_REVIEW:
            return False
        return (now or utcnow()) > self.due_at

    def to_dict(self) -> Dict[str, Any]:
        def iso(value):
            return value.isoformat() if value else None

        return {
            'conflict_id': self.conflict_id,
            'conflict_number': self.conflict_number,
            'import_package_id': self.import_package_id,
            'conflict_type': self.conflict_type.value,
            'entity_type': self.entity_type,
            'first_entity_id': self.first_entity_id,
            'second_entity_id': self.second_entity_id,
            'first_entity_identifier': self.first_entity_identifier,
            'second_entity_identifier': self.second_entity_identifier,
            'similarity_score': self.similarity_score,
            'confidence_level': self.confidence_level.value,
            'matching_criteria': list(self.matching_criteria),
            'data_comparison': self.data_comparison,
            'description': self.description,
            'status': self.status.value,
            'resolution_outcome': self.resolution_outcome.value if self.resolution_outcome else None,
            'priority': self.priority.value,
            'is_escalated': self.is_escalated,
            'escalation_reason': self.escalation_reason,
            'escalated_at': iso(self.escalated_at),
            'escalated_by': self.escalated_by,
            'assigned_to': self.assigned_to,
            'assigned_at': iso(self.assigned_at),
            'target_resolution_hours': self.target_resolution_hours,
            'due_at': iso(self.due_at),
            'is_overdue': self.is_overdue(),
            'review_attempt_count': self.review_attempt_count,
            'review_history': list(self.review_history),
            'merged_entity_id': self.merged_entity_id,
            'discarded_entity_id': self.discarded_entity_id,
            'merge_mapping': self.merge_mapping,
            'resolution_reason': self.resolution_reason,
            'resolution_notes': self.resolution_notes,
            'resolved_at': iso(self.resolved_at),
            'resolved_by': self.resolved_by,
            'is_auto_detected': self.is_auto_detected,
            'detected_at': iso(self.detected_at),
            'detected_by': self.detected_by,
        }
