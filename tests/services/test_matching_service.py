# -*- coding: utf-8 -*-
"""
Tests for person and property duplicate matching.

Tests cover:
- Arabic name normalisation and component similarity
- Phone and gender normalisation
- Composite person score: weights, symmetry, bounds, national id short-circuit
- Confidence bands and the report threshold
- PersonMatcher phases (national id, name prefix, within batch)
- PropertyMatcher composite key matching, cross-batch and within batch
"""

import pytest

from models.conflict import ConfidenceLevel
from models.person import Person
from models.staging import EntityKind, StagingMetadata, StagingRecord, ValidationStatus
from services.matching_service import (
    ArabicNameMatcher,
    PersonMatcher,
    PropertyMatcher,
    normalize_gender,
    normalize_phone,
)


def staged(kind, original_id, payload, status=ValidationStatus.VALID):
    return StagingRecord(
        kind=kind,
        metadata=StagingMetadata(
            import_package_id="pkg-1", original_entity_id=original_id, validation_status=status
        ),
        payload=dict(payload),
    )


def person(entity_id="p-1", **fields):
    values = {
        "first_name": "أحمد",
        "father_name": "محمد",
        "family_name": "الخطيب",
        "gender": "M",
        "year_of_birth": 1980,
    }
    values.update(fields)
    return Person.from_payload(values, entity_id)


BUILDING_PARTS = {
    "governorate_code": "01",
    "district_code": "02",
    "subdistrict_code": "03",
    "community_code": "001",
    "neighborhood_code": "002",
    "building_number": "00001",
}


@pytest.fixture
def person_matcher(store):
    return PersonMatcher(store, high_threshold=90, report_threshold=70, workers=1)


@pytest.fixture
def property_matcher(store):
    return PropertyMatcher(store, match_score=100)


class TestArabicNameMatcher:

    def test_alef_and_taa_marbuta_variants(self):
        assert ArabicNameMatcher.normalize_arabic("أسامة") == ArabicNameMatcher.normalize_arabic("اسامه")

    def test_diacritics_and_tatweel_removed(self):
        assert ArabicNameMatcher.normalize_arabic("مُحَمّـد") == "محمد"

    def test_component_similarity_bounds(self):
        assert ArabicNameMatcher.component_similarity("محمد", "محمد") == 100.0
        assert ArabicNameMatcher.component_similarity("محمد", "") == 0.0
        assert 0 < ArabicNameMatcher.component_similarity("محمد", "محمود") < 100

    def test_levenshtein(self):
        assert ArabicNameMatcher.levenshtein("kitten", "sitting") == 3
        assert ArabicNameMatcher.levenshtein("", "abc") == 3

    def test_name_prefix(self):
        """Prefix is taken from the normalised family name."""
        assert ArabicNameMatcher.name_prefix("أحمد") == "احم"
        assert ArabicNameMatcher.name_prefix("") == ""


class TestNormalisation:

    @pytest.mark.parametrize("raw", ["+963 944 123 456", "963944123456", "0944123456", "944-123-456"])
    def test_phone_variants(self, raw):
        assert normalize_phone(raw) == "944123456"

    def test_short_phone_is_ignored(self):
        assert normalize_phone("12345") is None
        assert normalize_phone(None) is None

    @pytest.mark.parametrize("raw,expected", [
        ("M", "M"), ("male", "M"), ("ذكر", "M"), (1, "M"),
        ("F", "F"), ("Female", "F"), ("أنثى", "F"), ("انثى", "F"), ("2", "F"),
        ("", None), ("unknown", None),
    ])
    def test_gender_tokens(self, raw, expected):
        assert normalize_gender(raw) == expected


class TestPersonScore:
    """Composite similarity score."""

    def test_national_id_short_circuits(self, person_matcher):
        a = person("p-1", national_id="01234567890", first_name="خالد")
        b = person("p-2", national_id="01234567890", gender="F")

        score, criteria = person_matcher.score(a, b)

        assert score == 100.0
        assert criteria == ["national_id"]

    def test_all_criteria(self, person_matcher):
        """Same phone, name, birth year and gender reach 100."""
        a = person("p-1", mobile_number="0944123456")
        b = person("p-2", mobile_number="+963944123456")

        score, criteria = person_matcher.score(a, b)

        assert score == 100.0
        assert "phone" in criteria and "gender" in criteria and "year_of_birth" in criteria

    def test_weights_without_phone(self, person_matcher):
        """Name 40 + birth year 15 + gender 15."""
        score, _ = person_matcher.score(person("p-1"), person("p-2"))

        assert score == 70.0

    def test_gender_codes_compare_equal(self, person_matcher):
        score_text, _ = person_matcher.score(person("p-1", gender="ذكر"), person("p-2", gender="M"))
        score_code, _ = person_matcher.score(person("p-1", gender="1"), person("p-2", gender="male"))

        assert score_text == score_code == 70.0

    def test_symmetric(self, person_matcher):
        a = person("p-1", first_name="أحمد", mobile_number="0944123456")
        b = person("p-2", first_name="احمد", family_name="الخطيب", year_of_birth=1981)

        assert person_matcher.score(a, b)[0] == person_matcher.score(b, a)[0]

    def test_bounded(self, person_matcher):
        a = person("p-1")
        b = Person.from_payload({"first_name": "Sara"}, "p-2")

        score, _ = person_matcher.score(a, b)

        assert 0 <= score <= 100

    def test_confidence_bands(self, person_matcher):
        assert person_matcher.confidence(95) == ConfidenceLevel.HIGH
        assert person_matcher.confidence(90) == ConfidenceLevel.HIGH
        assert person_matcher.confidence(75) == ConfidenceLevel.MEDIUM
        assert person_matcher.confidence(69.9) == ConfidenceLevel.LOW

    def test_below_threshold_not_reported(self, person_matcher):
        a = person("p-1")
        b = person("p-2", first_name="سارة", father_name="علي", family_name="النجار",
                   gender="F", year_of_birth=1990)

        assert person_matcher.compare(a, b, within_batch=True) is None


class TestPersonDetection:
    """PersonMatcher.detect over staged records."""

    def test_national_id_against_authoritative(self, person_matcher, add_person):
        existing_id = add_person({
            "first_name": "احمد", "father_name": "محمد", "family_name": "الخطيب",
            "national_id": "01234567890",
        })
        records = [staged(EntityKind.PERSON, "p-1", {
            "first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب",
            "national_id": "01234567890",
        })]

        candidates = person_matcher.detect(records)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.score == 100.0
        assert candidate.confidence == ConfidenceLevel.HIGH
        assert not candidate.is_within_batch
        assert candidate.first_entity_id == "p-1"
        assert candidate.second_entity_id == existing_id

    def test_name_prefix_against_authoritative(self, person_matcher, add_person):
        """Without a national id the family-name prefix finds the candidate."""
        existing_id = add_person({
            "first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب",
            "gender": "ذكر", "year_of_birth": 1980, "mobile_number": "0944123456",
        })
        records = [staged(EntityKind.PERSON, "p-1", {
            "first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب",
            "gender": "M", "year_of_birth": 1980, "mobile_number": "+963944123456",
        })]

        candidates = person_matcher.detect(records)

        assert [c.second_entity_id for c in candidates] == [existing_id]
        assert candidates[0].score == 100.0

    def test_inactive_authoritative_persons_ignored(self, person_matcher, add_person, store):
        existing_id = add_person({"first_name": "أحمد", "family_name": "الخطيب", "national_id": "01234567890"})
        store.deactivate(EntityKind.PERSON, existing_id, None, "seed")
        records = [staged(EntityKind.PERSON, "p-1", {"first_name": "أحمد", "national_id": "01234567890"})]

        assert person_matcher.detect(records) == []

    def test_within_batch_pair(self, person_matcher):
        records = [
            staged(EntityKind.PERSON, "p-1", {
                "first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب",
                "gender": "M", "year_of_birth": 1980,
            }),
            staged(EntityKind.PERSON, "p-2", {
                "first_name": "احمد", "father_name": "محمد", "family_name": "الخطيب",
                "gender": "M", "year_of_birth": 1980,
            }),
        ]

        candidates = person_matcher.detect(records)

        assert len(candidates) == 1
        assert candidates[0].is_within_batch
        assert {candidates[0].first_entity_id, candidates[0].second_entity_id} == {"p-1", "p-2"}

    def test_invalid_records_excluded(self, person_matcher):
        records = [
            staged(EntityKind.PERSON, "p-1", {"first_name": "أحمد", "national_id": "1"}),
            staged(EntityKind.PERSON, "p-2", {"first_name": "أحمد", "national_id": "1"},
                   status=ValidationStatus.INVALID),
        ]

        assert person_matcher.detect(records) == []

    def test_parallel_workers_give_same_candidates(self, store):
        records = [
            staged(EntityKind.PERSON, f"p-{i}", {
                "first_name": "أحمد", "father_name": "محمد", "family_name": "الخطيب",
                "gender": "M", "year_of_birth": 1980,
            })
            for i in range(4)
        ]

        serial = PersonMatcher(store, workers=1).detect(records)
        parallel = PersonMatcher(store, workers=4).detect(records)

        assert sorted(c.pair_key for c in serial) == sorted(c.pair_key for c in parallel)
        assert len(serial) == 6


class TestPropertyMatcher:

    def test_cross_batch_composite_key(self, property_matcher, add_unit):
        existing_id = add_unit(unit_identifier="a-12")
        buildings = [staged(EntityKind.BUILDING, "b-1", BUILDING_PARTS)]
        units = [staged(EntityKind.PROPERTY_UNIT, "u-1", {"original_building_id": "b-1", "unit_identifier": "A-12"})]

        candidates = property_matcher.detect(units, buildings)

        assert len(candidates) == 1
        assert candidates[0].second_entity_id == existing_id
        assert candidates[0].score == 100
        assert candidates[0].confidence == ConfidenceLevel.HIGH

    def test_within_batch_same_code_and_identifier(self, property_matcher):
        """Two staged buildings with the same code hold the same unit."""
        buildings = [
            staged(EntityKind.BUILDING, "b-1", BUILDING_PARTS),
            staged(EntityKind.BUILDING, "b-2", BUILDING_PARTS),
        ]
        units = [
            staged(EntityKind.PROPERTY_UNIT, "u-1", {"original_building_id": "b-1", "unit_identifier": "A-12"}),
            staged(EntityKind.PROPERTY_UNIT, "u-2", {"original_building_id": "b-2", "unit_identifier": "a-12 "}),
        ]

        candidates = property_matcher.detect(units, buildings)

        assert len(candidates) == 1
        assert candidates[0].is_within_batch
        assert candidates[0].score == 100

    def test_different_identifier_no_match(self, property_matcher, add_unit):
        add_unit(unit_identifier="B-7")
        buildings = [staged(EntityKind.BUILDING, "b-1", BUILDING_PARTS)]
        units = [staged(EntityKind.PROPERTY_UNIT, "u-1", {"original_building_id": "b-1", "unit_identifier": "A-12"})]

        assert property_matcher.detect(units, buildings) == []

    def test_unit_without_resolvable_building_is_ignored(self, property_matcher):
        buildings = [staged(EntityKind.BUILDING, "b-1", dict(BUILDING_PARTS, building_number="1"))]
        units = [
            staged(EntityKind.PROPERTY_UNIT, "u-1", {"original_building_id": "b-1", "unit_identifier": "A-12"}),
            staged(EntityKind.PROPERTY_UNIT, "u-2", {"original_building_id": "b-1", "unit_identifier": "A-12"}),
        ]

        assert property_matcher.detect(units, buildings) == []
