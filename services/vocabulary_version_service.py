# -*- coding: utf-8 -*-
"""
Vocabulary Version Provider
===========================
Supplies the canonical code-list versions and the controlled codes that
imported packages are checked against.

Features:
- Semantic versioning (MAJOR.MINOR.PATCH)
- Compatibility classification of a declared version against the canonical one
- Code lookup by numeric code or English name
"""

import re
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from app.config import Config, Vocabularies
from utils.logger import get_logger

logger = get_logger(__name__)

_VERSION_PATTERN = re.compile(r'^\d+\.\d+\.\d+$')


class VersionChangeType(Enum):
    """Type of version change."""
    MAJOR = "major"  # Breaking changes, incompatible with previous versions
    MINOR = "minor"  # New terms added, backwards compatible
    PATCH = "patch"  # Bug fixes, translations, no structural changes


class VersionCompatibility(Enum):
    """Outcome of comparing a declared version with the canonical one."""
    IDENTICAL = "identical"
    PATCH_DIFFERENCE = "patch_difference"
    MINOR_DIFFERENCE = "minor_difference"
    MAJOR_DIFFERENCE = "major_difference"
    UNKNOWN_DOMAIN = "unknown_domain"


def parse_version(version: str) -> Optional[Tuple[int, int, int]]:
    """Parse 'MAJOR.MINOR.PATCH'; None when malformed."""
    if not version or not _VERSION_PATTERN.match(str(version).strip()):
        return None
    major, minor, patch = str(version).strip().split('.')
    return int(major), int(minor), int(patch)


def _normalize_term(value: str) -> str:
    return re.sub(r'[\s_\-]', '', value).lower()


class VocabularyVersionProvider:
    """
    Canonical vocabulary versions and codes.

    Versions default to Config.VOCABULARY_VERSIONS; tests pass their own map.
    """

    def __init__(self, versions: Optional[Dict[str, str]] = None):
        self._versions = dict(versions if versions is not None else Config.VOCABULARY_VERSIONS)

    @property
    def versions(self) -> Dict[str, str]:
        return dict(self._versions)

    def get_version(self, domain: str) -> Optional[str]:
        return self._versions.get(domain)

    def compare(self, domain: str, declared: str) -> VersionCompatibility:
        """
        Classify a declared version against the canonical one.

        A malformed declared version is treated as a MAJOR difference.
        """
        canonical = self._versions.get(domain)
        if canonical is None:
            return VersionCompatibility.UNKNOWN_DOMAIN

        current = parse_version(canonical)
        incoming = parse_version(declared)
        if current is None or incoming is None:
            logger.warning(f"Malformed vocabulary version for {domain}: declared={declared!r} canonical={canonical!r}")
            return VersionCompatibility.MAJOR_DIFFERENCE

        if incoming[0] != current[0]:
            return VersionCompatibility.MAJOR_DIFFERENCE
        if incoming[1] != current[1]:
            return VersionCompatibility.MINOR_DIFFERENCE
        if incoming[2] != current[2]:
            return VersionCompatibility.PATCH_DIFFERENCE
        return VersionCompatibility.IDENTICAL

    def codes(self, domain: str) -> Set[int]:
        return Vocabularies.codes(domain)

    def is_known_code(self, domain: str, value: Any) -> bool:
        """True when value is a code, or an English term name, of the code list."""
        entries = Vocabularies.BY_DOMAIN.get(domain, [])
        if not entries:
            return True
        text = str(value).strip()
        if text.lstrip('-').isdigit():
            return int(text) in {code for code, _, _ in entries}
        return _normalize_term(text) in {_normalize_term(name) for _, name, _ in entries}
