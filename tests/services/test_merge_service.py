# -*- coding: utf-8 -*-
"""
Tests for merging the two sides of a duplicate conflict.

Tests cover:
- Authoritative into authoritative: references relinked, loser deactivated
- Staged into authoritative: staged record skipped, points at the master
- Authoritative updated from a staged master
- Staged into staged: package references rewritten to the master
- Master outside the pair, missing entities, rollback on failure
"""

import pytest

from models.conflict import Conflict, ConflictType
from models.import_package import ImportPackage
from models.staging import EntityKind, StagingMetadata, StagingRecord, ValidationStatus
from repositories.package_repository import ImportPackageRepository
from repositories.staging_repository import StagingRepository
from services.exceptions import NotFoundException, ValidationException
from services.merge_service import MergeService


PERSON_A = {"first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب", "national_id": "01234567890"}
PERSON_B = {"first_name": "احمد", "father_name": "محمد", "family_name": "الخطيب", "mobile_number": "0944123456"}


@pytest.fixture
def package(db):
    return ImportPackageRepository(db).create(ImportPackage(file_name="merge.uhc", created_by="tester"))


@pytest.fixture
def staging_repo(db):
    return StagingRepository(db)


@pytest.fixture
def merge_service(staging_repo, store):
    return MergeService(staging_repo, store)


@pytest.fixture
def stage(package, staging_repo):
    """Add one staged record to the package."""
    def _stage(kind, original_id, payload, committed_entity_id=None):
        record = StagingRecord(
            kind=kind,
            metadata=StagingMetadata(
                import_package_id=package.package_id,
                original_entity_id=original_id,
                validation_status=ValidationStatus.VALID,
                committed_entity_id=committed_entity_id,
            ),
            payload=dict(payload),
        )
        staging_repo.add_many([record])
        return record
    return _stage


def make_conflict(package, first, second, conflict_type=ConflictType.PERSON_DUPLICATE):
    return Conflict(
        import_package_id=package.package_id,
        conflict_type=conflict_type,
        first_entity_id=first,
        second_entity_id=second,
        conflict_number="CNF-2026-0001",
    )


class TestAuthoritativeMerge:
    """Both sides already exist in the authoritative store."""

    def test_relinks_and_deactivates(self, db, package, store, stage, add_person, merge_service):
        """Merging B into A moves every reference to A and deactivates B."""
        person_a = add_person(PERSON_A)
        person_b = add_person(PERSON_B)
        relation_id = store.create(EntityKind.RELATION, {"person_id": person_b, "relation_type": 1}, {}, "seed")
        household_id = store.create(EntityKind.HOUSEHOLD, {"head_person_id": person_b}, {}, "seed")
        claim_id = store.create(EntityKind.CLAIM, {"claimant_person_id": person_b}, {}, "seed")
        # Staged record already committed as A
        stage(EntityKind.PERSON, "p-1", PERSON_A, committed_entity_id=person_a)
        conflict = make_conflict(package, "p-1", person_b)

        with db.transaction() as cursor:
            mapping = merge_service.merge(conflict, "p-1", "supervisor", cursor)

        assert mapping[person_b] == person_a
        assert mapping["merge_type"] == "authoritative_into_authoritative"
        assert mapping["references_updated"]["person_property_relations.person_id"] == 1
        assert store.get(EntityKind.RELATION, relation_id)["person_id"] == person_a
        assert store.get(EntityKind.HOUSEHOLD, household_id)["head_person_id"] == person_a
        assert store.get(EntityKind.CLAIM, claim_id)["claimant_person_id"] == person_a

        loser = store.get(EntityKind.PERSON, person_b)
        assert loser["is_active"] is False
        assert loser["merged_into_id"] == person_a
        assert store.get(EntityKind.PERSON, person_a)["is_active"] is True


class TestStagedMerge:

    def test_staged_into_authoritative(self, db, package, stage, add_person, merge_service, staging_repo):
        existing = add_person(PERSON_A)
        stage(EntityKind.PERSON, "p-1", PERSON_B)
        conflict = make_conflict(package, "p-1", existing)

        with db.transaction() as cursor:
            mapping = merge_service.merge(conflict, existing, "supervisor", cursor)

        assert mapping == {
            "p-1": existing,
            "merge_type": "staged_into_authoritative",
            "master_entity_id": existing,
            "discarded_entity_id": "p-1",
            "references_updated": {},
        }
        record = staging_repo.get_by_original_id(package.package_id, EntityKind.PERSON, "p-1")
        assert record.status == ValidationStatus.SKIPPED
        assert record.metadata.committed_entity_id == existing

    def test_staged_values_fill_authoritative_gaps(self, db, package, stage, add_person, merge_service, store):
        """Blank registry fields take the staged value; filled ones are kept."""
        existing = add_person(PERSON_A)
        stage(EntityKind.PERSON, "p-1", PERSON_B)
        conflict = make_conflict(package, "p-1", existing)

        with db.transaction() as cursor:
            merge_service.merge(conflict, existing, "supervisor", cursor)

        person = store.get(EntityKind.PERSON, existing)
        assert person["mobile_number"] == "0944123456"
        assert person["national_id"] == "01234567890"
        assert person["first_name"] == "أحمد"
        assert person["data"]["mobile_number"] == "0944123456"
        assert person["data"]["first_name"] == "أحمد"

    def test_authoritative_updated_from_staged_master(self, db, package, stage, add_person,
                                                      merge_service, store, staging_repo):
        existing = add_person(PERSON_A)
        stage(EntityKind.PERSON, "p-1", PERSON_B)
        conflict = make_conflict(package, "p-1", existing)

        with db.transaction() as cursor:
            mapping = merge_service.merge(conflict, "p-1", "supervisor", cursor)

        assert mapping["merge_type"] == "authoritative_updated_from_staged"
        updated = store.get(EntityKind.PERSON, existing)
        assert updated["mobile_number"] == "0944123456"
        # Blank staged values do not erase existing ones
        assert updated["national_id"] == "01234567890"
        record = staging_repo.get_by_original_id(package.package_id, EntityKind.PERSON, "p-1")
        assert record.status == ValidationStatus.SKIPPED
        assert record.metadata.committed_entity_id == existing

    def test_staged_into_staged_rewrites_references(self, db, package, stage, merge_service, staging_repo):
        stage(EntityKind.PERSON, "p-1", PERSON_A)
        stage(EntityKind.PERSON, "p-2", PERSON_B)
        stage(EntityKind.RELATION, "r-1", {"original_person_id": "p-2", "original_property_unit_id": "u-1"})
        stage(EntityKind.HOUSEHOLD, "h-1", {"original_head_person_id": "p-2"})
        conflict = make_conflict(package, "p-1", "p-2", ConflictType.PERSON_DUPLICATE_WITHIN_BATCH)

        with db.transaction() as cursor:
            mapping = merge_service.merge(conflict, "p-1", "supervisor", cursor)

        assert mapping["p-2"] == "p-1"
        assert mapping["references_updated"]["relation.original_person_id"] == 1
        relation = staging_repo.get_by_original_id(package.package_id, EntityKind.RELATION, "r-1")
        household = staging_repo.get_by_original_id(package.package_id, EntityKind.HOUSEHOLD, "h-1")
        assert relation.payload["original_person_id"] == "p-1"
        assert household.payload["original_head_person_id"] == "p-1"
        loser = staging_repo.get_by_original_id(package.package_id, EntityKind.PERSON, "p-2")
        assert loser.status == ValidationStatus.SKIPPED
        assert loser.metadata.committed_entity_id is None


class TestMergeErrors:

    def test_master_outside_pair(self, db, package, stage, add_person, merge_service):
        existing = add_person(PERSON_A)
        stage(EntityKind.PERSON, "p-1", PERSON_B)
        conflict = make_conflict(package, "p-1", existing)

        with pytest.raises(ValidationException):
            with db.transaction() as cursor:
                merge_service.merge(conflict, "someone-else", "supervisor", cursor)

    def test_missing_authoritative_side_rolls_back(self, db, package, stage, merge_service, staging_repo):
        """The staged side is untouched when the other side cannot be found."""
        stage(EntityKind.PERSON, "p-1", PERSON_B)
        conflict = make_conflict(package, "p-1", "no-such-person")

        with pytest.raises(NotFoundException):
            with db.transaction() as cursor:
                merge_service.merge(conflict, "no-such-person", "supervisor", cursor)

        record = staging_repo.get_by_original_id(package.package_id, EntityKind.PERSON, "p-1")
        assert record.status == ValidationStatus.VALID
