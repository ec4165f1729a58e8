# -*- coding: utf-8 -*-
"""
Level 5 - Spatial geometry well-formedness.

Checks building coordinates and the WKT geometry type. Full topological checks
(self-intersection, area) belong to the GIS layer, not to import validation.
"""

from typing import List

from models.staging import EntityKind
from utils.helpers import clean_text, safe_float
from .data_consistency import SYRIA_LAT_RANGE, SYRIA_LNG_RANGE, within_syria
from .validation_strategy import StagingBatch, ValidationIssue, ValidationStrategy

SUPPORTED_WKT_TYPES = ("POINT", "POLYGON", "MULTIPOLYGON")


class SpatialGeometryValidator(ValidationStrategy):
    """Coordinates inside the country bounds, paired lat/lng, known WKT type."""

    name = "SpatialGeometry"
    level = 5

    def validate(self, batch: StagingBatch) -> List[ValidationIssue]:
        issues = []
        for building in batch.of_kind(EntityKind.BUILDING):
            latitude = safe_float(building.get("latitude"))
            longitude = safe_float(building.get("longitude"))

            if (latitude is None) != (longitude is None):
                issues.append(self.required(
                    building,
                    f"Building {building.original_id}: latitude and longitude must be provided together",
                    "latitude" if latitude is None else "longitude"
                ))
            elif latitude is not None and not within_syria(latitude, longitude):
                issues.append(self.required(
                    building,
                    f"Building {building.original_id}: point ({latitude:.6f}, {longitude:.6f}) is outside "
                    f"lat {SYRIA_LAT_RANGE[0]}-{SYRIA_LAT_RANGE[1]}, lng {SYRIA_LNG_RANGE[0]}-{SYRIA_LNG_RANGE[1]}",
                    "latitude"
                ))

            wkt = clean_text(building.get("geometry_wkt"))
            if wkt and not wkt.upper().startswith(SUPPORTED_WKT_TYPES):
                issues.append(self.advisory(
                    building,
                    f"Building {building.original_id}: unsupported geometry type '{wkt.split('(')[0].strip()}'",
                    "geometry_wkt"
                ))
        return issues

    def records_checked(self, batch: StagingBatch) -> int:
        return len(batch.of_kind(EntityKind.BUILDING))
