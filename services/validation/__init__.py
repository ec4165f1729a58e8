# -*- coding: utf-8 -*-
"""Validation services package."""

from .validation_strategy import (
    Severity,
    StagingBatch,
    ValidationIssue,
    ValidationStrategy,
)
from .validation_factory import ValidationFactory
from .pipeline import ValidationPipeline, ValidationReport, ValidatorResult

__all__ = [
    'Severity',
    'StagingBatch',
    'ValidationIssue',
    'ValidationStrategy',
    'ValidationFactory',
    'ValidationPipeline',
    'ValidationReport',
    'ValidatorResult',
]
