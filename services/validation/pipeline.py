# -*- coding: utf-8 -*-
"""
Validation pipeline.

Runs every registered level over a StagingBatch, then folds the issues into
each record's status (worst status wins):

    no issue        -> Valid
    advisory only   -> Warning
    any required    -> Invalid

Skipped records are left untouched. Package-level issues are returned
separately; a required one means the package must be quarantined.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.staging import EntityKind, ValidationStatus
from utils.logger import get_logger
from .validation_factory import ValidationFactory
from .validation_strategy import Severity, StagingBatch, ValidationIssue

logger = get_logger(__name__)


@dataclass
class ValidatorResult:
    """Outcome of one validation level. error_count is -1 when the level crashed."""
    name: str
    level: int
    error_count: int = 0
    warning_count: int = 0
    records_checked: int = 0
    duration_ms: int = 0

    @property
    def crashed(self) -> bool:
        return self.error_count < 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "name": self.name,
            "level": self.level,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "records_checked": self.records_checked,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ValidationReport:
    """Summary of one validation pass over a package."""
    package_id: str
    validator_results: List[ValidatorResult] = field(default_factory=list)
    package_issues: List[ValidationIssue] = field(default_factory=list)
    counts: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def is_quarantined(self) -> bool:
        return any(i.severity == Severity.REQUIRED for i in self.package_issues)

    @property
    def quarantine_reasons(self) -> List[str]:
        return [i.message for i in self.package_issues if i.severity == Severity.REQUIRED]

    @property
    def package_notes(self) -> List[str]:
        return [i.format() for i in self.package_issues]

    def total(self, status: ValidationStatus) -> int:
        return sum(per_kind.get(status.value, 0) for per_kind in self.counts.values())

    @property
    def eligible_count(self) -> int:
        return self.total(ValidationStatus.VALID) + self.total(ValidationStatus.WARNING)

    def to_dict(self) -> Dict:
        return {
            "package_id": self.package_id,
            "validators": [r.to_dict() for r in self.validator_results],
            "package_notes": self.package_notes,
            "is_quarantined": self.is_quarantined,
            "counts": self.counts,
            "totals": {s.value: self.total(s) for s in ValidationStatus},
        }


class ValidationPipeline:
    """Ordered validator chain with worst-status-wins aggregation."""

    def __init__(self, factory: Optional[ValidationFactory] = None):
        self.factory = factory or ValidationFactory()

    def run(self, batch: StagingBatch) -> ValidationReport:
        """
        Validate a batch in place.

        Record metadata (status, errors, warnings) is updated on the batch's
        StagingRecord objects; persisting them is the caller's job.
        """
        report = ValidationReport(package_id=batch.package_id)
        errors: Dict[str, List[str]] = defaultdict(list)
        warnings: Dict[str, List[str]] = defaultdict(list)

        for validator in self.factory.get_validators():
            started = time.perf_counter()
            result = ValidatorResult(name=validator.name, level=validator.level)
            try:
                issues = validator.validate(batch)
                result.records_checked = validator.records_checked(batch)
            except Exception as e:
                logger.exception(f"Validator {validator.name} crashed on package {batch.package_id}: {e}")
                result.error_count = -1
                result.duration_ms = int((time.perf_counter() - started) * 1000)
                report.validator_results.append(result)
                continue

            for issue in issues:
                if issue.severity == Severity.REQUIRED:
                    result.error_count += 1
                else:
                    result.warning_count += 1

                if issue.is_package_level:
                    report.package_issues.append(issue)
                elif issue.severity == Severity.REQUIRED:
                    errors[issue.staging_id].append(issue.format())
                else:
                    warnings[issue.staging_id].append(issue.format())

            result.duration_ms = int((time.perf_counter() - started) * 1000)
            report.validator_results.append(result)
            logger.debug(
                f"{validator.name}: {result.error_count} errors, {result.warning_count} warnings "
                f"({result.records_checked} records)"
            )

        for record in batch.records:
            if record.status == ValidationStatus.SKIPPED:
                continue
            record.metadata.apply_validation(errors.get(record.staging_id, []), warnings.get(record.staging_id, []))

        report.counts = self.summarize(batch)
        return report

    @staticmethod
    def summarize(batch: StagingBatch) -> Dict[str, Dict[str, int]]:
        """{entity_kind: {status: count}} over the batch."""
        counts: Dict[str, Dict[str, int]] = {}
        for kind in EntityKind:
            per_kind = {status.value: 0 for status in ValidationStatus}
            for record in batch.records:
                if record.kind == kind:
                    per_kind[record.status.value] += 1
            counts[kind.value] = per_kind
        return counts
