# -*- coding: utf-8 -*-
"""
Shared fixtures for the import pipeline tests.

Every test gets its own SQLite file under tmp_path, an acting operator and
an ImportService whose archive folder also lives under tmp_path.
"""

import copy

import pytest

from models.staging import EntityKind
from repositories.authoritative_repository import AuthoritativeStore
from repositories.database import Database
from services.current_user import CurrentUserProvider
from services.entity_mapping import column_values
from services.import_service import ImportService


BUILDING_CODE = "01020300100200001"

BUILDING = {
    "original_id": "b-1",
    "governorate_code": "01",
    "district_code": "02",
    "subdistrict_code": "03",
    "community_code": "001",
    "neighborhood_code": "002",
    "building_number": "00001",
    "building_type": 1,
    "number_of_units": 1,
    "number_of_apartments": 1,
    "latitude": 33.5138,
    "longitude": 36.2765,
}

UNIT = {
    "original_id": "u-1",
    "original_building_id": "b-1",
    "unit_identifier": "A-12",
    "unit_type": 1,
    "floor_number": 2,
    "area_sqm": 120,
}

PERSON = {
    "original_id": "p-1",
    "first_name": "أحمد",
    "father_name": "محمد",
    "family_name": "الخطيب",
    "national_id": "01234567890",
    "gender": "M",
    "year_of_birth": 1980,
    "mobile_number": "+963 944 123 456",
}

HOUSEHOLD = {
    "original_id": "h-1",
    "original_property_unit_id": "u-1",
    "original_head_person_id": "p-1",
    "head_of_household_name": "أحمد محمد الخطيب",
    "household_size": 1,
}

RELATION = {
    "original_id": "r-1",
    "original_person_id": "p-1",
    "original_property_unit_id": "u-1",
    "relation_type": 1,
    "ownership_share": 100,
}

EVIDENCE = {
    "original_id": "e-1",
    "original_file_name": "deed.pdf",
    "file_path": "evidence/deed.pdf",
    "file_size_bytes": 20480,
    "original_person_id": "p-1",
    "original_relation_id": "r-1",
    "original_claim_id": "c-1",
}

CLAIM = {
    "original_id": "c-1",
    "original_property_unit_id": "u-1",
    "original_claimant_person_id": "p-1",
    "claim_type": "ownership",
    "lifecycle_stage": "draft_pending_submission",
    "status": "draft",
    "claim_source": 1,
}

SURVEY = {
    "original_id": "s-1",
    "original_building_id": "b-1",
    "survey_date": "2024-03-15",
}


def build_manifest(**collections):
    """
    A complete, valid package manifest (one record of every kind).

    Keyword arguments replace whole collections, e.g. persons=[...].
    """
    records = {
        "buildings": [BUILDING],
        "property_units": [UNIT],
        "persons": [PERSON],
        "households": [HOUSEHOLD],
        "person_property_relations": [RELATION],
        "evidences": [EVIDENCE],
        "claims": [CLAIM],
        "surveys": [SURVEY],
    }
    records.update(collections)
    return copy.deepcopy({
        "file_name": "field-device-07.uhc",
        "device_id": "tablet-07",
        "vocabulary_versions": {"building_type": "1.0.0", "property_unit_type": "1.0.0"},
        "records": records,
    })


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database with the pipeline schema."""
    database = Database(tmp_path / "import.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def user_provider():
    return CurrentUserProvider("data.manager")


@pytest.fixture
def store(db):
    return AuthoritativeStore(db)


@pytest.fixture
def service(db, user_provider, tmp_path):
    return ImportService(db, user_provider, archive_base_path=str(tmp_path / "archives"))


@pytest.fixture
def manifest():
    return build_manifest()


@pytest.fixture
def manifest_factory():
    return build_manifest


@pytest.fixture
def staged_package(service):
    """Submit and validate a manifest; returns the package."""
    def _stage(manifest):
        package = service.submit_package(manifest)
        service.run_validation(package.package_id)
        return service.get_package(package.package_id)
    return _stage


@pytest.fixture
def add_person(store):
    """Insert an authoritative person from a payload; returns its id."""
    def _add(payload, person_id=None):
        values = column_values(EntityKind.PERSON, payload)
        if person_id:
            values["person_id"] = person_id
        return store.create(EntityKind.PERSON, values, dict(payload), "seed")
    return _add


@pytest.fixture
def add_unit(store):
    """Insert an authoritative building and property unit; returns the unit id."""
    def _add(building_code=BUILDING_CODE, unit_identifier="A-12", unit_id=None):
        building = store.find_building_by_code(building_code)
        if building:
            building_id = building["building_id"]
        else:
            building_id = store.create(EntityKind.BUILDING, {"building_code": building_code}, {}, "seed")
        values = column_values(
            EntityKind.PROPERTY_UNIT, {"unit_identifier": unit_identifier}, building_code=building_code
        )
        values["building_id"] = building_id
        if unit_id:
            values["unit_id"] = unit_id
        return store.create(EntityKind.PROPERTY_UNIT, values, {"unit_identifier": unit_identifier}, "seed")
    return _add
