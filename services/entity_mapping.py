# -*- coding: utf-8 -*-
"""
Staged payload -> authoritative columns.

REFERENCE_FIELDS lists, per kind, the payload fields holding original ids of
other staged records and the authoritative column each one resolves to.
The same table drives commit-time resolution and staged relinking on merge.
"""

from typing import Any, Dict, List, Optional, Tuple

from models.building import Building
from models.staging import EntityKind
from models.unit import make_unit_key
from services.matching_service import ArabicNameMatcher
from utils.helpers import clean_text, safe_float, safe_int

# kind -> [(payload field, referenced kind, column)]
REFERENCE_FIELDS: Dict[EntityKind, List[Tuple[str, EntityKind, str]]] = {
    EntityKind.PROPERTY_UNIT: [
        ("original_building_id", EntityKind.BUILDING, "building_id"),
    ],
    EntityKind.HOUSEHOLD: [
        ("original_property_unit_id", EntityKind.PROPERTY_UNIT, "property_unit_id"),
        ("original_head_person_id", EntityKind.PERSON, "head_person_id"),
    ],
    EntityKind.RELATION: [
        ("original_person_id", EntityKind.PERSON, "person_id"),
        ("original_property_unit_id", EntityKind.PROPERTY_UNIT, "property_unit_id"),
    ],
    EntityKind.EVIDENCE: [
        ("original_person_id", EntityKind.PERSON, "person_id"),
        ("original_relation_id", EntityKind.RELATION, "relation_id"),
    ],
    EntityKind.CLAIM: [
        ("original_property_unit_id", EntityKind.PROPERTY_UNIT, "property_unit_id"),
        ("original_claimant_person_id", EntityKind.PERSON, "claimant_person_id"),
    ],
    EntityKind.SURVEY: [
        ("original_building_id", EntityKind.BUILDING, "building_id"),
    ],
}

# Claims commit after evidence, so evidence -> claim links are filled in afterwards
DEFERRED_REFERENCE_FIELDS: Dict[EntityKind, List[Tuple[str, EntityKind, str]]] = {
    EntityKind.EVIDENCE: [
        ("original_claim_id", EntityKind.CLAIM, "claim_id"),
    ],
}


def staged_references_to(kind: EntityKind) -> List[Tuple[EntityKind, str]]:
    """(referencing kind, payload field) pairs that point at records of kind."""
    pairs = []
    for tables in (REFERENCE_FIELDS, DEFERRED_REFERENCE_FIELDS):
        for referencing_kind, fields in tables.items():
            for payload_field, target, _ in fields:
                if target == kind:
                    pairs.append((referencing_kind, payload_field))
    return pairs


def column_values(kind: EntityKind, payload: Dict[str, Any],
                  building_code: Optional[str] = None) -> Dict[str, Any]:
    """
    Indexed column values of a staged payload, references excluded.

    Args:
        building_code: Code of the unit's building (property units only)
    """
    if kind == EntityKind.BUILDING:
        return {"building_code": Building.from_payload(payload, "").building_id}

    if kind == EntityKind.PROPERTY_UNIT:
        unit_identifier = clean_text(payload.get("unit_identifier"))
        return {
            "building_code": building_code,
            "unit_identifier": unit_identifier,
            "unit_key": make_unit_key(building_code, unit_identifier),
        }

    if kind == EntityKind.PERSON:
        family_name = clean_text(payload.get("family_name"))
        return {
            "national_id": clean_text(payload.get("national_id")) or None,
            "first_name": clean_text(payload.get("first_name")),
            "father_name": clean_text(payload.get("father_name")),
            "family_name": family_name,
            "family_name_key": ArabicNameMatcher.family_key(family_name),
            "gender": clean_text(payload.get("gender")) or None,
            "year_of_birth": safe_int(payload.get("year_of_birth")),
            "mobile_number": clean_text(payload.get("mobile_number")) or None,
            "phone_number": clean_text(payload.get("phone_number")) or None,
        }

    if kind == EntityKind.RELATION:
        return {
            "relation_type": safe_int(payload.get("relation_type")),
            "ownership_share": safe_float(payload.get("ownership_share")),
        }

    return {}


def non_blank(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, "")}
