# -*- coding: utf-8 -*-
"""
Validation Factory - Registry of the validation levels.

Provides a central point for creating the ordered validator chain run by the
validation pipeline.
"""

from typing import Dict, List, Optional

from services.vocabulary_version_service import VocabularyVersionProvider
from .validation_strategy import ValidationStrategy
from .data_consistency import DataConsistencyValidator
from .relation_validators import (
    CrossEntityRelationValidator,
    HouseholdStructureValidator,
    OwnershipEvidenceValidator,
)
from .spatial_validator import SpatialGeometryValidator
from .claim_lifecycle import ClaimLifecycleValidator
from .vocabulary_validator import VocabularyVersionValidator
from .building_code_validator import BuildingUnitCodeValidator


class ValidationFactory:
    """
    Registry of validation strategies, keyed by name and run by level.
    """

    def __init__(self, vocabulary_provider: Optional[VocabularyVersionProvider] = None):
        """Initialize the factory with the eight built-in levels."""
        self._validators: Dict[str, ValidationStrategy] = {}
        self._register_default_validators(vocabulary_provider)

    def _register_default_validators(self, vocabulary_provider: Optional[VocabularyVersionProvider]):
        """Register built-in validators."""
        for validator in (
            DataConsistencyValidator(),
            CrossEntityRelationValidator(),
            OwnershipEvidenceValidator(),
            HouseholdStructureValidator(),
            SpatialGeometryValidator(),
            ClaimLifecycleValidator(),
            VocabularyVersionValidator(vocabulary_provider),
            BuildingUnitCodeValidator(),
        ):
            self.register_validator(validator)

    def register_validator(self, validator: ValidationStrategy):
        """
        Register (or replace) a validation strategy.

        Args:
            validator: ValidationStrategy instance with a unique name
        """
        self._validators[validator.name] = validator

    def get_validator(self, name: str) -> Optional[ValidationStrategy]:
        return self._validators.get(name)

    def get_validators(self) -> List[ValidationStrategy]:
        """Registered validators in run order (level, then name)."""
        return sorted(self._validators.values(), key=lambda v: (v.level, v.name))

    def get_registered_types(self) -> List[str]:
        return [v.name for v in self.get_validators()]
