# -*- coding: utf-8 -*-


from pathlib import Path
from dataclasses import dataclass
from typing import Dict
import os

from dotenv import load_dotenv

# ============================================================================
# Load .env file for local environment configuration
# ============================================================================
load_dotenv()


def _parse_versions(raw: str) -> Dict[str, str]:
    """Parse 'domain=1.2.0,other=2.0.0' into a dict."""
    versions = {}
    for item in raw.split(","):
        if "=" not in item:
            continue
        domain, version = item.split("=", 1)
        if domain.strip():
            versions[domain.strip()] = version.strip()
    return versions


# ============================================================================
# Read settings from environment variables (from .env or system)
# ============================================================================
_DEFAULT_VOCABULARY_VERSIONS = {
    "building_type": "1.0.0",
    "building_status": "1.0.0",
    "damage_level": "1.0.0",
    "property_unit_type": "1.0.0",
    "property_unit_status": "1.0.0",
    "relation_type": "1.0.0",
    "evidence_type": "1.0.0",
    "claim_source": "1.0.0",
    "case_priority": "1.0.0",
    "gender": "1.0.0",
}

_VOCABULARY_VERSIONS = dict(_DEFAULT_VOCABULARY_VERSIONS)
_VOCABULARY_VERSIONS.update(_parse_versions(os.getenv("TRRCMS_VOCABULARY_VERSIONS", "")))

_PERSON_HIGH = int(os.getenv("TRRCMS_PERSON_HIGH_THRESHOLD", "90"))
_PERSON_MEDIUM = int(os.getenv("TRRCMS_PERSON_MEDIUM_THRESHOLD", "70"))
_TARGET_HOURS = int(os.getenv("TRRCMS_CONFLICT_TARGET_HOURS", "72"))
_MATCHING_WORKERS = int(os.getenv("TRRCMS_MATCHING_WORKERS", "1"))
_ARCHIVE_BASE_PATH = os.getenv("TRRCMS_ARCHIVE_BASE_PATH", "archives")
_LOG_LEVEL = os.getenv("TRRCMS_LOG_LEVEL", "DEBUG").upper()


@dataclass
class Config:
    """Application configuration."""

    # Application Info
    APP_NAME: str = "TRRCMS Import Pipeline"
    APP_TITLE: str = "Tenure Rights Registration - Import Reconciliation"
    VERSION: str = "1.0.0"
    ORGANIZATION: str = "UN-Habitat"

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # Database Configuration
    # SQLite (development/fallback)
    DB_NAME: str = "trrcms_import.db"
    DB_PATH: Path = DATA_DIR / DB_NAME

    # PostgreSQL (production)
    # Set TRRCMS_DB_TYPE=postgresql to use PostgreSQL
    DB_TYPE: str = os.getenv("TRRCMS_DB_TYPE", "sqlite")

    # Logging
    LOG_FILE: str = "import_pipeline.log"
    LOG_PATH: Path = LOGS_DIR / LOG_FILE
    LOG_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT: int = 3
    LOG_LEVEL: str = _LOG_LEVEL

    # Person matching (scores are 0-100)
    PERSON_HIGH_CONFIDENCE_THRESHOLD: int = _PERSON_HIGH
    PERSON_MEDIUM_CONFIDENCE_THRESHOLD: int = _PERSON_MEDIUM
    PROPERTY_MATCH_SCORE: int = 100
    MATCHING_WORKERS: int = _MATCHING_WORKERS

    # Conflict queue
    CONFLICT_TARGET_RESOLUTION_HOURS: int = _TARGET_HOURS
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Import packages
    MAX_IMPORT_RECORDS: int = 10000
    ARCHIVE_BASE_PATH: str = _ARCHIVE_BASE_PATH

    # Canonical vocabulary versions (MAJOR.MINOR.PATCH) per code list
    VOCABULARY_VERSIONS = _VOCABULARY_VERSIONS

    # Date/Time Formats
    DATE_FORMAT: str = "%Y-%m-%d"
    DATETIME_FORMAT: str = "%Y-%m-%d %H:%M:%S"


# Controlled vocabularies
class Vocabularies:
    # Value (code), Name (English), Name (Arabic)
    BUILDING_TYPES = [
        (1, "Residential", "سكني"),
        (2, "Commercial", "تجاري"),
        (3, "MixedUse", "مختلط (سكني وتجاري)"),
        (4, "Industrial", "صناعي"),
    ]

    BUILDING_STATUS = [
        (1, "Intact", "سليم"),
        (2, "MinorDamage", "أضرار طفيفة"),
        (3, "ModerateDamage", "أضرار متوسطة"),
        (4, "MajorDamage", "أضرار كبيرة"),
        (5, "SeverelyDamaged", "أضرار شديدة"),
        (6, "Destroyed", "مدمر"),
        (7, "UnderConstruction", "قيد الإنشاء"),
        (8, "Abandoned", "مهجور"),
        (99, "Unknown", "غير معروف"),
    ]

    DAMAGE_LEVELS = [
        (0, "None", "لا يوجد"),
        (1, "Minor", "طفيف"),
        (2, "Moderate", "متوسط"),
        (3, "Major", "كبير"),
        (4, "Destroyed", "مدمر"),
    ]

    UNIT_TYPES = [
        (1, "Apartment", "شقة سكنية"),
        (2, "Shop", "محل تجاري"),
        (3, "Office", "مكتب"),
        (4, "Warehouse", "مستودع"),
        (5, "Other", "أخرى"),
    ]

    UNIT_STATUS = [
        (1, "Occupied", "مشغول"),
        (2, "Vacant", "شاغر"),
        (3, "Damaged", "متضرر"),
        (4, "UnderRenovation", "قيد الترميم"),
        (5, "Uninhabitable", "غير صالح للسكن"),
        (6, "Locked", "مغلق"),
        (99, "Unknown", "غير معروف"),
    ]

    RELATION_TYPES = [
        (1, "Owner", "مالك"),
        (2, "Occupant", "شاغل"),
        (3, "Tenant", "مستأجر"),
        (4, "Guest", "ضيف"),
        (5, "Heir", "وريث"),
        (99, "Other", "آخر"),
    ]

    CLAIM_SOURCES = [
        (1, "FieldCollection", "جمع ميداني"),
        (2, "OfficeSubmission", "تقديم مكتبي"),
        (3, "Legacy", "بيانات سابقة"),
    ]

    CASE_PRIORITIES = [
        (1, "Low", "منخفضة"),
        (2, "Normal", "عادية"),
        (3, "High", "مرتفعة"),
        (4, "Urgent", "عاجلة"),
    ]

    EVIDENCE_TYPES = [
        (1, "Tabu Green", "طابو أخضر"),
        (2, "Tabu Red", "طابو أحمر"),
        (10, "Rental Contract", "عقد إيجار"),
        (20, "National Id Card", "بطاقة هوية وطنية"),
        (30, "Electricity Bill", "فاتورة كهرباء"),
        (40, "Court Order", "حكم محكمة"),
        (70, "Sale Contract", "عقد بيع"),
        (999, "Other", "أخرى"),
    ]

    GENDERS = [
        (1, "Male", "ذكر"),
        (2, "Female", "أنثى"),
    ]

    # Code list name -> vocabulary
    BY_DOMAIN = {
        "building_type": BUILDING_TYPES,
        "building_status": BUILDING_STATUS,
        "damage_level": DAMAGE_LEVELS,
        "property_unit_type": UNIT_TYPES,
        "property_unit_status": UNIT_STATUS,
        "relation_type": RELATION_TYPES,
        "claim_source": CLAIM_SOURCES,
        "case_priority": CASE_PRIORITIES,
        "evidence_type": EVIDENCE_TYPES,
        "gender": GENDERS,
    }

    @classmethod
    def codes(cls, domain: str) -> set:
        """Return the set of valid integer codes for a code list."""
        return {code for code, _, _ in cls.BY_DOMAIN.get(domain, [])}
