# -*- coding: utf-8 -*-
"""
Level 8 - Building and unit code format.

The composite building code must be 17 digits and unique in the package;
unit identifiers must be unique within their building.
"""

from collections import defaultdict
from typing import Dict, List

from models.building import BUILDING_CODE_LENGTH, Building
from models.staging import EntityKind, StagingRecord
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy


class BuildingUnitCodeValidator(ValidationStrategy):
    """17-digit building codes and per-building unit identifiers."""

    name = "BuildingUnitCode"
    level = 8

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        by_code: Dict[str, List[StagingRecord]] = defaultdict(list)

        for record in batch.of_kind(EntityKind.BUILDING):
            building = Building.from_payload(record.payload, record.original_id)
            code = building.building_id
            if not building.has_valid_code:
                issues.append(self.required(
                    record,
                    f"Building {record.original_id}: building code '{code}' must be {BUILDING_CODE_LENGTH} digits",
                    "building_id"
                ))
                continue

            provided = (building.provided_building_id or "").replace("-", "")
            if provided and provided != code:
                issues.append(self.advisory(
                    record,
                    f"Building {record.original_id}: provided code {provided} differs from computed {code}",
                    "building_id"
                ))
            by_code[code].append(record)

        for code, members in by_code.items():
            if len(members) > 1:
                others = ", ".join(m.original_id for m in members)
                for record in members:
                    issues.append(self.required(
                        record, f"Building {record.original_id}: duplicate building code {code} ({others})",
                        "building_id"
                    ))

        by_unit: Dict[tuple, List[StagingRecord]] = defaultdict(list)
        for record in batch.of_kind(EntityKind.PROPERTY_UNIT):
            building_ref = record.ref("original_building_id")
            unit_identifier = record.ref("unit_identifier")
            if building_ref and unit_identifier:
                by_unit[(building_ref, unit_identifier.casefold())].append(record)

        for (building_ref, unit_identifier), members in by_unit.items():
            if len(members) > 1:
                for record in members:
                    issues.append(self.required(
                        record,
                        f"PropertyUnit {record.original_id}: unit identifier '{record.ref('unit_identifier')}' "
                        f"is repeated in building {building_ref}",
                        "unit_identifier"
                    ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        return len(batch.of_kind(EntityKind.BUILDING)) + len(batch.of_kind(EntityKind.PROPERTY_UNIT))
