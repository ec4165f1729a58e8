# -*- coding: utf-8 -*-
"""
Person entity model.

The same view is built from a staged payload and from an authoritative row
so the matcher compares like with like.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.helpers import clean_text, safe_int


@dataclass
class Person:
    """
    Person as seen by the duplicate matcher.
    Supports Arabic names and Syrian national ID format.
    """

    # Staging original id, or authoritative person_id
    entity_id: str = ""
    is_staged: bool = True

    first_name: str = ""
    father_name: str = ""
    family_name: str = ""
    mother_name: str = ""

    national_id: str = ""  # Syrian National ID (11 digits)
    gender: Optional[str] = None
    year_of_birth: Optional[int] = None

    mobile_number: Optional[str] = None
    phone_number: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], entity_id: str, is_staged: bool = True) -> 'Person':
        return cls(
            entity_id=entity_id,
            is_staged=is_staged,
            first_name=clean_text(payload.get("first_name")),
            father_name=clean_text(payload.get("father_name")),
            family_name=clean_text(payload.get("family_name")),
            mother_name=clean_text(payload.get("mother_name")),
            national_id=clean_text(payload.get("national_id")),
            gender=clean_text(payload.get("gender")) or None,
            year_of_birth=safe_int(payload.get("year_of_birth")),
            mobile_number=clean_text(payload.get("mobile_number")) or None,
            phone_number=clean_text(payload.get("phone_number")) or None,
        )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.father_name, self.family_name]
        return " ".join(p for p in parts if p)

    @property
    def identifier(self) -> str:
        """Reviewer-facing label: 'full name (NID: x)'."""
        return f"{self.full_name} (NID: {self.national_id or '-'})"

    @property
    def contact_number(self) -> Optional[str]:
        """Mobile number, falling back to the landline."""
        return self.mobile_number or self.phone_number

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "is_staged": self.is_staged,
            "first_name": self.first_name,
            "father_name": self.father_name,
            "family_name": self.family_name,
            "mother_name": self.mother_name,
            "national_id": self.national_id,
            "gender": self.gender,
            "year_of_birth": self.year_of_birth,
            "mobile_number": self.mobile_number,
            "phone_number": self.phone_number,
        }
