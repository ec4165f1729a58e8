# -*- coding: utf-8 -*-
"""
Level 1 - Data consistency.

Per-record field checks: required fields present, administrative codes of the
right width, counts and measures in range, coordinates inside Syria.
"""

from typing import List

from models.building import BUILDING_CODE_PARTS
from models.staging import EntityKind, StagingRecord
from utils.datetime_utils import from_isoformat, utcnow
from utils.helpers import clean_text, safe_float, safe_int
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy, missing_fields

# Syria bounding box
SYRIA_LAT_RANGE = (32.0, 37.5)
SYRIA_LNG_RANGE = (35.5, 42.5)

MAX_NATIONAL_ID_LENGTH = 20
MIN_BIRTH_YEAR = 1900


def within_syria(latitude: float, longitude: float) -> bool:
    return (SYRIA_LAT_RANGE[0] <= latitude <= SYRIA_LAT_RANGE[1]
            and SYRIA_LNG_RANGE[0] <= longitude <= SYRIA_LNG_RANGE[1])


class DataConsistencyValidator(ValidationStrategy):
    """Field-level consistency of every staged record."""

    name = "DataConsistency"
    level = 1

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        checks = {
            EntityKind.BUILDING: self._check_building,
            EntityKind.PROPERTY_UNIT: self._check_unit,
            EntityKind.PERSON: self._check_person,
            EntityKind.HOUSEHOLD: self._check_household,
            EntityKind.RELATION: self._check_relation,
            EntityKind.EVIDENCE: self._check_evidence,
            EntityKind.CLAIM: self._check_claim,
            EntityKind.SURVEY: self._check_survey,
        }
        for kind, check in checks.items():
            for record in batch.of_kind(kind):
                issues.extend(check(record))
        return issues

    def _require(self, record: StagingRecord, fields: List[str]) -> List[ValidationIssue]:
        return [
            self.required(record, f"{record.kind.label} {record.original_id}: {name} is required", name)
            for name in missing_fields(record.payload, fields)
        ]

    def _check_building(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = []
        for name, width in BUILDING_CODE_PARTS:
            value = clean_text(record.get(name))
            if not value:
                issues.append(self.required(record, f"Building {record.original_id}: {name} is required", name))
            elif len(value) != width or not value.isdigit():
                issues.append(self.required(
                    record, f"Building {record.original_id}: {name} must be {width} digits", name
                ))

        counts = {}
        for name in ("number_of_units", "number_of_apartments", "number_of_shops"):
            value = safe_int(record.get(name), 0)
            counts[name] = value
            if value < 0:
                issues.append(self.required(record, f"Building {record.original_id}: {name} cannot be negative", name))

        if counts["number_of_apartments"] + counts["number_of_shops"] > counts["number_of_units"]:
            issues.append(self.advisory(
                record, f"Building {record.original_id}: apartments + shops exceed number of units",
                "number_of_units"
            ))

        latitude = safe_float(record.get("latitude"))
        longitude = safe_float(record.get("longitude"))
        if latitude is not None and longitude is not None and not within_syria(latitude, longitude):
            issues.append(self.advisory(
                record, f"Building {record.original_id}: coordinates are outside Syria", "latitude"
            ))
        return issues

    def _check_unit(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["original_building_id", "unit_identifier"])
        area = safe_float(record.get("area_sqm"))
        if area is not None and area <= 0:
            issues.append(self.advisory(record, f"PropertyUnit {record.original_id}: area must be positive", "area_sqm"))
        return issues

    def _check_person(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["first_name", "father_name", "family_name"])

        national_id = clean_text(record.get("national_id"))
        if len(national_id) > MAX_NATIONAL_ID_LENGTH:
            issues.append(self.advisory(
                record, f"Person {record.original_id}: national id is longer than {MAX_NATIONAL_ID_LENGTH} characters",
                "national_id"
            ))

        year = safe_int(record.get("year_of_birth"))
        if year is not None and not MIN_BIRTH_YEAR <= year <= utcnow().year:
            issues.append(self.advisory(
                record, f"Person {record.original_id}: year of birth {year} is out of range", "year_of_birth"
            ))
        return issues

    def _check_household(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["original_property_unit_id", "head_of_household_name"])

        size = safe_int(record.get("household_size"))
        if size is None or size <= 0:
            issues.append(self.required(
                record, f"Household {record.original_id}: household size must be greater than zero", "household_size"
            ))
        for name in ("male_count", "female_count"):
            if safe_int(record.get(name), 0) < 0:
                issues.append(self.required(record, f"Household {record.original_id}: {name} cannot be negative", name))
        return issues

    def _check_relation(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["original_person_id", "original_property_unit_id"])
        share = safe_float(record.get("ownership_share"))
        if share is not None and not 0 <= share <= 100:
            issues.append(self.required(
                record, f"PersonPropertyRelation {record.original_id}: ownership share must be between 0 and 100",
                "ownership_share"
            ))
        return issues

    def _check_evidence(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["original_file_name"])
        size = safe_int(record.get("file_size_bytes"))
        if size is not None and size <= 0:
            issues.append(self.advisory(record, f"Evidence {record.original_id}: file is empty", "file_size_bytes"))
        if not any(record.ref(name) for name in ("original_person_id", "original_relation_id", "original_claim_id")):
            issues.append(self.advisory(
                record, f"Evidence {record.original_id}: not linked to a person, relation or claim"
            ))
        return issues

    def _check_claim(self, record: StagingRecord) -> List[ValidationIssue]:
        return self._require(record, ["original_property_unit_id", "claim_type"])

    def _check_survey(self, record: StagingRecord) -> List[ValidationIssue]:
        issues = self._require(record, ["original_building_id", "survey_date"])
        raw_date = record.get("survey_date")
        if raw_date:
            survey_date = from_isoformat(raw_date)
            if survey_date is None:
                issues.append(self.required(
                    record, f"Survey {record.original_id}: survey date '{raw_date}' is not a valid date", "survey_date"
                ))
            elif survey_date > utcnow():
                issues.append(self.advisory(record, f"Survey {record.original_id}: survey date is in the future", "survey_date"))
        return issues
