# -*- coding: utf-8 -*-
"""
Duplicate detection over one staged package.

Runs the person and property matchers on the eligible staged records and
returns the candidates; persisting them as conflicts is up to the caller.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.staging import EntityKind
from repositories.authoritative_repository import AuthoritativeStore
from repositories.staging_repository import StagingRepository
from services.matching_service import MatchCandidate, PersonMatcher, PropertyMatcher
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class DetectionResult:
    """Candidates found for one package."""
    package_id: str
    person_candidates: List[MatchCandidate] = field(default_factory=list)
    property_candidates: List[MatchCandidate] = field(default_factory=list)

    @property
    def candidates(self) -> List[MatchCandidate]:
        return self.person_candidates + self.property_candidates

    def to_dict(self) -> Dict[str, Any]:
        return {
            'package_id': self.package_id,
            'person_candidates': len(self.person_candidates),
            'property_candidates': len(self.property_candidates),
            'candidates': [c.to_dict() for c in self.candidates],
        }


class DuplicateDetectionService:
    """Person and property matching for a staged package."""

    def __init__(self, staging_repo: StagingRepository, store: AuthoritativeStore,
                 person_matcher: Optional[PersonMatcher] = None,
                 property_matcher: Optional[PropertyMatcher] = None):
        self.staging_repo = staging_repo
        self.person_matcher = person_matcher or PersonMatcher(store)
        self.property_matcher = property_matcher or PropertyMatcher(store)

    def detect(self, package_id: str) -> DetectionResult:
        persons = self.staging_repo.get_by_package(package_id, EntityKind.PERSON)
        units = self.staging_repo.get_by_package(package_id, EntityKind.PROPERTY_UNIT)
        buildings = self.staging_repo.get_by_package(package_id, EntityKind.BUILDING)

        result = DetectionResult(
            package_id=package_id,
            person_candidates=self.person_matcher.detect(persons),
            property_candidates=self.property_matcher.detect(units, buildings),
        )
        logger.info(
            f"Duplicate detection for {package_id}: {len(result.person_candidates)} person, "
            f"{len(result.property_candidates)} property candidates"
        )
        return result
