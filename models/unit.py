# -*- coding: utf-8 -*-
"""
Property unit entity model.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.helpers import clean_text, safe_float, safe_int


def make_unit_key(building_code: Optional[str], unit_identifier: Optional[str]) -> Optional[str]:
    """
    Composite key used for deterministic property matching.

    building code + "|" + unit identifier, stripped and case-folded.
    Returns None when either part is missing.
    """
    code = clean_text(building_code).casefold()
    unit = clean_text(unit_identifier).casefold()
    if not code or not unit:
        return None
    return f"{code}|{unit}"


@dataclass
class PropertyUnit:
    """Property unit (apartment, shop...) inside a building."""

    # Staging original id, or authoritative unit_id
    entity_id: str = ""
    is_staged: bool = True

    # Staged building reference and its computed 17-digit code
    original_building_id: Optional[str] = None
    building_code: str = ""

    unit_identifier: str = ""
    unit_type: Optional[int] = None
    unit_status: Optional[int] = None
    floor_number: Optional[int] = None
    area_sqm: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], entity_id: str,
                     building_code: str = "", is_staged: bool = True) -> 'PropertyUnit':
        return cls(
            entity_id=entity_id,
            is_staged=is_staged,
            original_building_id=clean_text(payload.get("original_building_id")) or None,
            building_code=clean_text(building_code or payload.get("building_code")),
            unit_identifier=clean_text(payload.get("unit_identifier")),
            unit_type=safe_int(payload.get("unit_type")),
            unit_status=safe_int(payload.get("unit_status")),
            floor_number=safe_int(payload.get("floor_number")),
            area_sqm=safe_float(payload.get("area_sqm")),
        )

    @property
    def unit_key(self) -> Optional[str]:
        return make_unit_key(self.building_code, self.unit_identifier)

    @property
    def identifier(self) -> str:
        return f"{self.building_code}/{self.unit_identifier}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "is_staged": self.is_staged,
            "original_building_id": self.original_building_id,
            "building_code": self.building_code,
            "unit_identifier": self.unit_identifier,
            "unit_type": self.unit_type,
            "unit_status": self.unit_status,
            "floor_number": self.floor_number,
            "area_sqm": self.area_sqm,
        }
