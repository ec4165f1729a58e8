# -*- coding: utf-8 -*-
"""
Entity Matching Service
=======================
Duplicate detection for staged persons and property units.

Features:
- Arabic name normalisation and edit-distance similarity
- Composite person scoring (national id, phone, name, birth year, gender)
- Deterministic property matching on building code + unit identifier
- Cross-batch (authoritative store) and within-batch phases
- Candidates deduplicated by an order-independent pair key
"""

import re
import unicodedata
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.config import Config
from models.building import Building
from models.conflict import ConfidenceLevel, make_pair_key
from models.person import Person
from models.staging import StagingRecord, ValidationStatus
from models.unit import PropertyUnit
from repositories.authoritative_repository import AuthoritativeStore
from utils.helpers import clean_text
from utils.logger import get_logger

logger = get_logger(__name__)

# Composite person score weights (total 100)
PHONE_WEIGHT = 30
NAME_WEIGHT = 40
BIRTH_YEAR_WEIGHT = 15
GENDER_WEIGHT = 15

# Name component weights of the full-name similarity
FIRST_NAME_WEIGHT = 0.30
FATHER_NAME_WEIGHT = 0.30
FAMILY_NAME_WEIGHT = 0.40

NAME_PREFIX_LENGTH = 3
MIN_PHONE_DIGITS = 7
SYRIA_COUNTRY_CODE = "963"

PERSON_COMPARISON_FIELDS = [
    "first_name", "father_name", "family_name", "mother_name",
    "national_id", "gender", "year_of_birth", "mobile_number", "phone_number",
]
UNIT_COMPARISON_FIELDS = [
    "building_code", "unit_identifier", "unit_type", "unit_status", "floor_number", "area_sqm",
]

_MALE_TOKENS = {"M", "MALE", "ذكر", "1"}
_FEMALE_TOKENS = {"F", "FEMALE", "أنثى", "انثى", "2"}


@dataclass
class MatchCandidate:
    """A scored pair reported by a matcher. Not persisted; becomes a Conflict."""
    entity_type: str  # 'person' or 'property_unit'
    first_entity_id: str
    second_entity_id: str
    first_identifier: str
    second_identifier: str
    is_within_batch: bool
    score: float
    confidence: ConfidenceLevel
    matched_criteria: List[str] = field(default_factory=list)
    data_comparison: Dict[str, Any] = field(default_factory=dict)

    @property
    def pair_key(self) -> str:
        return make_pair_key(self.entity_type, self.first_entity_id, self.second_entity_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'first_entity_id': self.first_entity_id,
            'second_entity_id': self.second_entity_id,
            'first_identifier': self.first_identifier,
            'second_identifier': self.second_identifier,
            'is_within_batch': self.is_within_batch,
            'score': self.score,
            'confidence': self.confidence.value,
            'matched_criteria': list(self.matched_criteria),
            'data_comparison': self.data_comparison,
        }


def dedupe_candidates(candidates: Iterable[MatchCandidate]) -> List[MatchCandidate]:
    """Keep one candidate per unordered pair (the highest score)."""
    best: Dict[str, MatchCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.pair_key)
        if current is None or candidate.score > current.score:
            best[candidate.pair_key] = candidate
    return list(best.values())


def _compare_fields(first: Dict[str, Any], second: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
    """Side-by-side payload for the reviewer."""
    return {
        name: {
            'first': first.get(name),
            'second': second.get(name),
            'match': first.get(name) == second.get(name),
        }
        for name in fields
    }


class ArabicNameMatcher:
    """
    Arabic name similarity matching.
    Handles:
    - Diacritics (harakat) and tatweel removal
    - Alef, taa marbuta and alef maksura variants
    - Edit distance scaled to 0-100
    """

    ARABIC_NORMALIZATIONS = {
        'أ': 'ا', 'إ': 'ا', 'آ': 'ا', 'ٱ': 'ا',  # Alef variants
        'ة': 'ه',  # Taa marbuta
        'ى': 'ي',  # Alef maksura
    }
    TATWEEL = 'ـ'

    @classmethod
    def normalize_arabic(cls, text: Optional[str]) -> str:
        """Normalize Arabic text for comparison."""
        if not text:
            return ""

        chars = []
        for ch in str(text):
            if unicodedata.category(ch) in ('Mn', 'Me') or ch == cls.TATWEEL:
                continue
            chars.append(cls.ARABIC_NORMALIZATIONS.get(ch, ch))

        return re.sub(r'\s+', ' ', ''.join(chars)).strip()

    @staticmethod
    def levenshtein(s1: str, s2: str) -> int:
        """Edit distance with a two-row table."""
        if not s1:
            return len(s2)
        if not s2:
            return len(s1)
        if len(s1) > len(s2):
            s1, s2 = s2, s1

        previous = list(range(len(s1) + 1))
        for j, c2 in enumerate(s2, 1):
            current = [j]
            for i, c1 in enumerate(s1, 1):
                cost = 0 if c1 == c2 else 1
                current.append(min(current[i - 1] + 1, previous[i] + 1, previous[i - 1] + cost))
            previous = current
        return previous[-1]

    @classmethod
    def component_similarity(cls, name1: Optional[str], name2: Optional[str]) -> float:
        """
        Similarity of two name components, 0-100 (1 decimal).

        Returns 0 when either side is blank.
        """
        n1 = cls.normalize_arabic(name1)
        n2 = cls.normalize_arabic(name2)
        if not n1 or not n2:
            return 0.0
        if n1 == n2:
            return 100.0

        distance = cls.levenshtein(n1, n2)
        similarity = (1.0 - distance / max(len(n1), len(n2))) * 100
        return max(0.0, round(similarity, 1))

    @classmethod
    def full_name_similarity(cls, first: Person, second: Person) -> float:
        """Weighted first/father/family similarity, 0-100. Family name weighs most."""
        total = (
            cls.component_similarity(first.first_name, second.first_name) * FIRST_NAME_WEIGHT
            + cls.component_similarity(first.father_name, second.father_name) * FATHER_NAME_WEIGHT
            + cls.component_similarity(first.family_name, second.family_name) * FAMILY_NAME_WEIGHT
        )
        return round(total, 1)

    @classmethod
    def family_key(cls, family_name: Optional[str]) -> str:
        """Normalised family name as stored in persons.family_name_key."""
        return cls.normalize_arabic(family_name)

    @classmethod
    def name_prefix(cls, family_name: Optional[str]) -> str:
        return cls.family_key(family_name)[:NAME_PREFIX_LENGTH]


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """
    Digits only, without the Syrian country code or the local trunk zero.

    Returns None when fewer than MIN_PHONE_DIGITS digits remain.
    """
    digits = re.sub(r'\D', '', value or "")
    if digits.startswith(SYRIA_COUNTRY_CODE) and len(digits) > 9:
        digits = digits[len(SYRIA_COUNTRY_CODE):]
    if digits.startswith("0") and len(digits) > 9:
        digits = digits[1:]
    return digits if len(digits) >= MIN_PHONE_DIGITS else None


def normalize_gender(value: Any) -> Optional[str]:
    """Canonical 'M'/'F' from textual, Arabic or coded gender values."""
    token = clean_text(value).upper()
    if token in _MALE_TOKENS:
        return "M"
    if token in _FEMALE_TOKENS:
        return "F"
    return None


def _person_from_row(row: Dict[str, Any]) -> Person:
    return Person.from_payload(row, row["person_id"], is_staged=False)


def _unit_from_row(row: Dict[str, Any]) -> PropertyUnit:
    return PropertyUnit.from_payload(row, row["unit_id"], building_code=row.get("building_code"), is_staged=False)


def _eligible(records: Iterable[StagingRecord]) -> List[StagingRecord]:
    return [r for r in records if r.status in (ValidationStatus.VALID, ValidationStatus.WARNING)]


class PersonMatcher:
    """
    Person duplicate matcher.

    Phase 1: national id exact match against the authoritative store (score 100).
    Phase 2: composite scoring against authoritative persons sharing the
             family-name prefix, for staged persons phase 1 did not match.
    Phase 3: composite scoring within the batch over prefiltered buckets.
    """

    ENTITY_TYPE = "person"

    def __init__(self, store: AuthoritativeStore, high_threshold: Optional[float] = None,
                 report_threshold: Optional[float] = None, workers: Optional[int] = None):
        self.store = store
        self.high_threshold = high_threshold if high_threshold is not None \
            else Config.PERSON_HIGH_CONFIDENCE_THRESHOLD
        self.report_threshold = report_threshold if report_threshold is not None \
            else Config.PERSON_MEDIUM_CONFIDENCE_THRESHOLD
        self.workers = workers if workers is not None else Config.MATCHING_WORKERS

    # ==================== Scoring ====================

    def score(self, first: Person, second: Person) -> Tuple[float, List[str]]:
        """
        Similarity score (0-100) of two persons and the criteria that matched.

        Symmetric in its arguments.
        """
        nid1 = first.national_id.strip().lower()
        nid2 = second.national_id.strip().lower()
        if nid1 and nid2 and nid1 == nid2:
            return 100.0, ["national_id"]

        total = 0.0
        criteria = []

        phone1 = normalize_phone(first.contact_number)
        phone2 = normalize_phone(second.contact_number)
        if phone1 and phone2 and phone1 == phone2:
            total += PHONE_WEIGHT
            criteria.append("phone")

        name_similarity = ArabicNameMatcher.full_name_similarity(first, second)
        if name_similarity > 0:
            total += name_similarity / 100 * NAME_WEIGHT
            criteria.append(f"name:{name_similarity}")

        if first.year_of_birth and first.year_of_birth == second.year_of_birth:
            total += BIRTH_YEAR_WEIGHT
            criteria.append("year_of_birth")

        gender1 = normalize_gender(first.gender)
        if gender1 and gender1 == normalize_gender(second.gender):
            total += GENDER_WEIGHT
            criteria.append("gender")

        return round(min(total, 100.0), 1), criteria

    def confidence(self, score: float) -> ConfidenceLevel:
        if score >= self.high_threshold:
            return ConfidenceLevel.HIGH
        if score >= self.report_threshold:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def compare(self, first: Person, second: Person, within_batch: bool) -> Optional[MatchCandidate]:
        """Score a pair; None when below the report threshold."""
        score, criteria = self.score(first, second)
        if score < self.report_threshold:
            return None
        return MatchCandidate(
            entity_type=self.ENTITY_TYPE,
            first_entity_id=first.entity_id,
            second_entity_id=second.entity_id,
            first_identifier=first.identifier,
            second_identifier=second.identifier,
            is_within_batch=within_batch,
            score=score,
            confidence=self.confidence(score),
            matched_criteria=criteria,
            data_comparison=_compare_fields(first.to_dict(), second.to_dict(), PERSON_COMPARISON_FIELDS),
        )

    def _compare_all(self, pairs: List[Tuple[Person, Person]], within_batch: bool) -> List[MatchCandidate]:
        if self.workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(lambda pair: self.compare(pair[0], pair[1], within_batch), pairs))
        else:
            results = [self.compare(a, b, within_batch) for a, b in pairs]
        return [c for c in results if c is not None]

    # ==================== Detection ====================

    def detect(self, records: List[StagingRecord]) -> List[MatchCandidate]:
        """
        Run all three phases over the eligible staged persons.

        Returns:
            Candidates scoring at or above the report threshold, one per pair
        """
        persons = [Person.from_payload(r.payload, r.original_id) for r in _eligible(records)]
        candidates = []

        nid_matched = set()
        for person in persons:
            if not person.national_id:
                continue
            for row in self.store.find_persons_by_national_id(person.national_id):
                existing = _person_from_row(row)
                candidates.append(self.compare(person, existing, within_batch=False))
                nid_matched.add(person.entity_id)

        cross_pairs = []
        for person in persons:
            if person.entity_id in nid_matched:
                continue
            prefix = ArabicNameMatcher.name_prefix(person.family_name)
            if not prefix:
                continue
            for row in self.store.find_persons_by_name_prefix(prefix):
                cross_pairs.append((person, _person_from_row(row)))
        candidates.extend(self._compare_all(cross_pairs, within_batch=False))

        candidates.extend(self._compare_all(self._batch_pairs(persons), within_batch=True))

        result = dedupe_candidates(c for c in candidates if c is not None)
        logger.info(
            f"Person matching: {len(persons)} staged persons, {len(nid_matched)} national id hits, "
            f"{len(result)} candidates"
        )
        return result

    def _batch_pairs(self, persons: List[Person]) -> List[Tuple[Person, Person]]:
        """Within-batch pairs sharing a family-name prefix, a phone or a national id."""
        buckets: Dict[str, List[Person]] = defaultdict(list)
        for person in persons:
            prefix = ArabicNameMatcher.name_prefix(person.family_name)
            if prefix:
                buckets[f"name:{prefix}"].append(person)
            phone = normalize_phone(person.contact_number)
            if phone:
                buckets[f"phone:{phone}"].append(person)
            if person.national_id:
                buckets[f"nid:{person.national_id.strip().lower()}"].append(person)

        seen = set()
        pairs = []
        for members in buckets.values():
            for a, b in combinations(members, 2):
                if a.entity_id == b.entity_id:
                    continue
                key = tuple(sorted((a.entity_id, b.entity_id)))
                if key in seen:
                    continue
                seen.add(key)
                pairs.append((a, b))
        return pairs


class PropertyMatcher:
    """
    Property unit duplicate matcher.

    Deterministic: units match when building code and unit identifier are
    equal (case-insensitive). Buildings are never reported as duplicates.
    """

    ENTITY_TYPE = "property_unit"

    def __init__(self, store: AuthoritativeStore, match_score: Optional[float] = None):
        self.store = store
        self.match_score = float(match_score if match_score is not None else Config.PROPERTY_MATCH_SCORE)

    def _candidate(self, first: PropertyUnit, second: PropertyUnit, within_batch: bool) -> MatchCandidate:
        return MatchCandidate(
            entity_type=self.ENTITY_TYPE,
            first_entity_id=first.entity_id,
            second_entity_id=second.entity_id,
            first_identifier=first.identifier,
            second_identifier=second.identifier,
            is_within_batch=within_batch,
            score=self.match_score,
            confidence=ConfidenceLevel.HIGH,
            matched_criteria=["building_code", "unit_identifier"],
            data_comparison=_compare_fields(first.to_dict(), second.to_dict(), UNIT_COMPARISON_FIELDS),
        )

    @staticmethod
    def building_codes(building_records: List[StagingRecord]) -> Dict[str, str]:
        """Staged building original id -> computed 17-digit code."""
        codes = {}
        for record in building_records:
            if record.status == ValidationStatus.SKIPPED:
                continue
            building = Building.from_payload(record.payload, record.original_id)
            if building.has_valid_code:
                codes[record.original_id] = building.building_id
        return codes

    def detect(self, unit_records: List[StagingRecord],
               building_records: List[StagingRecord]) -> List[MatchCandidate]:
        """
        Within-batch grouping by composite key, then authoritative lookup.
        """
        codes = self.building_codes(building_records)
        units = []
        for record in _eligible(unit_records):
            code = codes.get(record.ref("original_building_id") or "", "")
            unit = PropertyUnit.from_payload(record.payload, record.original_id, building_code=code)
            if unit.unit_key:
                units.append(unit)

        candidates = []
        groups: Dict[str, List[PropertyUnit]] = defaultdict(list)
        for unit in units:
            groups[unit.unit_key].append(unit)
        for members in groups.values():
            for a, b in combinations(members, 2):
                candidates.append(self._candidate(a, b, within_batch=True))

        for unit in units:
            for row in self.store.find_units_by_key(unit.unit_key):
                candidates.append(self._candidate(unit, _unit_from_row(row), within_batch=False))

        result = dedupe_candidates(candidates)
        logger.info(f"Property matching: {len(units)} staged units, {len(result)} candidates")
        return result
