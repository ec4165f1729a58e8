# -*- coding: utf-8 -*-
"""Level 6 - Claims arriving from the field must be fresh drafts."""

from typing import List

from models.staging import EntityKind
from utils.helpers import clean_text
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy

EXPECTED_LIFECYCLE_STAGE = "draft_pending_submission"
EXPECTED_STATUS = "draft"
EXPECTED_SOURCE = "field_collection"

# Numeric code of FieldCollection in the claim source vocabulary
FIELD_COLLECTION_CODE = "1"


class ClaimLifecycleValidator(ValidationStrategy):
    """Lifecycle stage, status and source of imported claims."""

    name = "ClaimLifecycle"
    level = 6

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        for claim in batch.of_kind(EntityKind.CLAIM):
            stage = clean_text(claim.get("lifecycle_stage")).lower()
            if stage and stage != EXPECTED_LIFECYCLE_STAGE:
                issues.append(self.advisory(
                    claim, f"Claim {claim.original_id}: unexpected lifecycle stage '{stage}' for a field import",
                    "lifecycle_stage"
                ))

            status = clean_text(claim.get("status")).lower()
            if status and status != EXPECTED_STATUS:
                issues.append(self.advisory(
                    claim, f"Claim {claim.original_id}: imported claims should be drafts (got '{status}')", "status"
                ))

            source = clean_text(claim.get("claim_source")).lower()
            if source and source not in (EXPECTED_SOURCE, FIELD_COLLECTION_CODE):
                issues.append(self.advisory(
                    claim, f"Claim {claim.original_id}: claim source '{source}' is not field collection",
                    "claim_source"
                ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        return len(batch.of_kind(EntityKind.CLAIM))
