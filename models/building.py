# -*- coding: utf-8 -*-
"""
Building entity model.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.helpers import clean_text, safe_float, safe_int


# (field, digits) in code order
BUILDING_CODE_PARTS = (
    ("governorate_code", 2),
    ("district_code", 2),
    ("subdistrict_code", 2),
    ("community_code", 3),
    ("neighborhood_code", 3),
    ("building_number", 5),
)

BUILDING_CODE_LENGTH = 17


@dataclass
class Building:
    """
    Staged or authoritative building.

    Building ID Format (17 digits):
    GG-DD-SS-CCC-NNN-BBBBB
    - GG: Governorate code (2 digits)
    - DD: District code (2 digits)
    - SS: Sub-district code (2 digits)
    - CCC: Community code (3 digits)
    - NNN: Neighborhood code (3 digits)
    - BBBBB: Building number (5 digits)
    """

    original_id: str = ""
    governorate_code: str = ""
    district_code: str = ""
    subdistrict_code: str = ""
    community_code: str = ""
    neighborhood_code: str = ""
    building_number: str = ""

    # Code supplied by the device, checked against the computed one
    provided_building_id: Optional[str] = None

    building_type: Optional[int] = None
    building_status: Optional[int] = None
    damage_level: Optional[int] = None
    number_of_units: int = 0
    number_of_apartments: int = 0
    number_of_shops: int = 0

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geometry_wkt: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], original_id: str = "") -> 'Building':
        return cls(
            original_id=original_id,
            governorate_code=clean_text(payload.get("governorate_code")),
            district_code=clean_text(payload.get("district_code")),
            subdistrict_code=clean_text(payload.get("subdistrict_code")),
            community_code=clean_text(payload.get("community_code")),
            neighborhood_code=clean_text(payload.get("neighborhood_code")),
            building_number=clean_text(payload.get("building_number")),
            provided_building_id=clean_text(payload.get("building_id")) or None,
            building_type=safe_int(payload.get("building_type")),
            building_status=safe_int(payload.get("building_status")),
            damage_level=safe_int(payload.get("damage_level")),
            number_of_units=safe_int(payload.get("number_of_units"), 0),
            number_of_apartments=safe_int(payload.get("number_of_apartments"), 0),
            number_of_shops=safe_int(payload.get("number_of_shops"), 0),
            latitude=safe_float(payload.get("latitude")),
            longitude=safe_float(payload.get("longitude")),
            geometry_wkt=clean_text(payload.get("geometry_wkt")) or None,
        )

    def generate_building_id(self) -> str:
        """
        Compose the 17-digit building code (no dashes).

        Example: governorate(01) + district(02) + subdistrict(03) +
                 community(001) + neighborhood(002) + building(00001)
        """
        return "".join(getattr(self, name) for name, _ in BUILDING_CODE_PARTS)

    @property
    def building_id(self) -> str:
        """Computed building code; the one used for matching and commit."""
        return self.generate_building_id()

    @property
    def building_id_display(self) -> str:
        """Formatted code with dashes: 01-02-03-001-002-00001"""
        return "-".join(getattr(self, name) for name, _ in BUILDING_CODE_PARTS)

    @property
    def has_valid_code(self) -> bool:
        code = self.building_id
        return len(code) == BUILDING_CODE_LENGTH and code.isdigit()
