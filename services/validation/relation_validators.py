# -*- coding: utf-8 -*-
"""
Levels 2-4 - Cross-entity checks within one package.

References between staged records use the original (device) ids, so they
are resolved against the same package only.
"""

from collections import Counter
from typing import Dict, List, Tuple

from app.config import Vocabularies
from models.staging import EntityKind
from utils.helpers import clean_text, safe_int
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy

OWNER_RELATION_TYPE = next(code for code, name, _ in Vocabularies.RELATION_TYPES if name == "Owner")

# (source kind, field, referenced kind, optional)
REFERENCE_RULES: List[Tuple[EntityKind, str, EntityKind, bool]] = [
    (EntityKind.PROPERTY_UNIT, "original_building_id", EntityKind.BUILDING, False),
    (EntityKind.HOUSEHOLD, "original_property_unit_id", EntityKind.PROPERTY_UNIT, False),
    (EntityKind.RELATION, "original_person_id", EntityKind.PERSON, False),
    (EntityKind.RELATION, "original_property_unit_id", EntityKind.PROPERTY_UNIT, False),
    (EntityKind.CLAIM, "original_property_unit_id", EntityKind.PROPERTY_UNIT, False),
    (EntityKind.SURVEY, "original_building_id", EntityKind.BUILDING, False),
    (EntityKind.EVIDENCE, "original_person_id", EntityKind.PERSON, True),
    (EntityKind.EVIDENCE, "original_relation_id", EntityKind.RELATION, True),
    (EntityKind.EVIDENCE, "original_claim_id", EntityKind.CLAIM, True),
    (EntityKind.PERSON, "original_household_id", EntityKind.HOUSEHOLD, True),
]


class CrossEntityRelationValidator(ValidationStrategy):
    """Every reference must resolve to a staged record of the referenced kind."""

    name = "CrossEntityRelation"
    level = 2

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        for source_kind, field_name, target_kind, optional in REFERENCE_RULES:
            for record in batch.of_kind(source_kind):
                reference = record.ref(field_name)
                if reference is None:
                    # Missing mandatory references are reported by DataConsistency
                    continue
                if not batch.has(target_kind, reference):
                    issues.append(self.required(
                        record,
                        f"{source_kind.label} {record.original_id}: {field_name} '{reference}' "
                        f"does not match any {target_kind.label} in this package",
                        field_name
                    ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        kinds = {rule[0] for rule in REFERENCE_RULES}
        return sum(len(batch.of_kind(kind)) for kind in kinds)


class OwnershipEvidenceValidator(ValidationStrategy):
    """Owner relations should carry supporting evidence."""

    name = "OwnershipEvidence"
    level = 3

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        evidences = batch.of_kind(EntityKind.EVIDENCE)
        linked_relations = {e.ref("original_relation_id") for e in evidences if e.ref("original_relation_id")}

        for relation in batch.of_kind(EntityKind.RELATION):
            if safe_int(relation.get("relation_type")) != OWNER_RELATION_TYPE:
                continue
            if relation.original_id not in linked_relations:
                issues.append(self.advisory(
                    relation,
                    f"PersonPropertyRelation {relation.original_id}: ownership claimed without supporting evidence"
                ))

        for evidence in evidences:
            if not clean_text(evidence.get("file_path")):
                issues.append(self.advisory(
                    evidence, f"Evidence {evidence.original_id}: file path is empty", "file_path"
                ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        return len(batch.of_kind(EntityKind.RELATION)) + len(batch.of_kind(EntityKind.EVIDENCE))


class HouseholdStructureValidator(ValidationStrategy):
    """Plausibility of declared household composition."""

    name = "HouseholdStructure"
    level = 4

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        members: Dict[str, int] = Counter(
            p.ref("original_household_id") for p in batch.of_kind(EntityKind.PERSON)
            if p.ref("original_household_id")
        )

        for household in batch.of_kind(EntityKind.HOUSEHOLD):
            size = safe_int(household.get("household_size"), 0)
            males = safe_int(household.get("male_count"), 0)
            females = safe_int(household.get("female_count"), 0)

            if males + females > 0 and males + females != size:
                issues.append(self.advisory(
                    household,
                    f"Household {household.original_id}: male ({males}) + female ({females}) "
                    f"does not equal household size ({size})",
                    "household_size"
                ))

            head = household.ref("original_head_person_id")
            if head and not batch.has(EntityKind.PERSON, head):
                issues.append(self.advisory(
                    household,
                    f"Household {household.original_id}: head of household '{head}' is not in this package",
                    "original_head_person_id"
                ))

            linked = members.get(household.original_id, 0)
            if linked and linked != size:
                issues.append(self.advisory(
                    household,
                    f"Household {household.original_id}: {linked} linked members but declared size is {size}",
                    "household_size"
                ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        return len(batch.of_kind(EntityKind.HOUSEHOLD))
