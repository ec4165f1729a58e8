# -*- coding: utf-8 -*-
"""
Level 7 - Vocabulary version compatibility.

Package level: each declared code-list version is compared with the canonical
one. A MAJOR difference is a package-level required issue (the package is
quarantined); MINOR/PATCH differences and unknown domains are advisory notes.
Record level: unknown code values are advisory.
"""

from typing import List, Optional, Tuple

from models.staging import EntityKind
from services.vocabulary_version_service import VersionCompatibility, VocabularyVersionProvider
from utils.helpers import clean_text
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy

# (kind, payload field, code list)
CODED_FIELDS: List[Tuple[EntityKind, str, str]] = [
    (EntityKind.BUILDING, "building_type", "building_type"),
    (EntityKind.BUILDING, "building_status", "building_status"),
    (EntityKind.BUILDING, "damage_level", "damage_level"),
    (EntityKind.PROPERTY_UNIT, "unit_type", "property_unit_type"),
    (EntityKind.PROPERTY_UNIT, "unit_status", "property_unit_status"),
    (EntityKind.CLAIM, "claim_source", "claim_source"),
    (EntityKind.CLAIM, "priority", "case_priority"),
]


class VocabularyVersionValidator(ValidationStrategy):
    """Declared code-list versions and coded values."""

    name = "VocabularyVersion"
    level = 7

    def __init__(self, provider: Optional[VocabularyVersionProvider] = None):
        self.provider = provider or VocabularyVersionProvider()

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = self._check_versions(batch)
        for kind, field_name, domain in CODED_FIELDS:
            for record in batch.of_kind(kind):
                value = clean_text(record.get(field_name))
                if value and not self.provider.is_known_code(domain, value):
                    issues.append(self.advisory(
                        record, f"{kind.label} {record.original_id}: unknown {domain} code '{value}'", field_name
                    ))
        return issues

    def _check_versions(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        for domain, declared in sorted(batch.vocabulary_versions.items()):
            compatibility = self.provider.compare(domain, declared)
            canonical = self.provider.get_version(domain)

            if compatibility == VersionCompatibility.MAJOR_DIFFERENCE:
                issues.append(self.required(
                    None, f"Vocabulary '{domain}' version {declared} is incompatible with {canonical}", domain
                ))
            elif compatibility in (VersionCompatibility.MINOR_DIFFERENCE, VersionCompatibility.PATCH_DIFFERENCE):
                issues.append(self.advisory(
                    None, f"Vocabulary '{domain}' version {declared} differs from {canonical} "
                          f"({compatibility.value})", domain
                ))
            elif compatibility == VersionCompatibility.UNKNOWN_DOMAIN:
                issues.append(self.advisory(None, f"Vocabulary '{domain}' is not known", domain))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        kinds = {kind for kind, _, _ in CODED_FIELDS}
        return sum(len(batch.of_kind(kind)) for kind in kinds)
