# -*- coding: utf-8 -*-
"""
Utility helper functions.
"""

import json
from typing import Any, Optional, Union


def format_number(value: Optional[Union[int, float]], decimals: int = 0) -> str:
    """
    Format a number with thousands separator.

    Args:
        value: Number to format
        decimals: Decimal places

    Returns:
        Formatted number string
    """
    if value is None:
        return ""

    try:
        if decimals == 0:
            return f"{int(value):,}"
        else:
            return f"{float(value):,.{decimals}f}"
    except (ValueError, TypeError):
        return str(value)


def format_sequence_number(prefix: str, year: int, sequence: int) -> str:
    """
    Build a human-readable number such as PKG-2026-0007.

    Args:
        prefix: Number prefix (PKG, CNF)
        year: Calendar year
        sequence: 1-based sequence within the year
    """
    return f"{prefix}-{year}-{sequence:04d}"


def load_json(value: Optional[str], default: Any = None) -> Any:
    """Parse a JSON column, returning default for NULL or malformed text."""
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (ValueError, TypeError):
        return default


def dump_json(value: Any) -> Optional[str]:
    """Serialize a value for a JSON column (non-ASCII kept readable)."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Convert to int, returning default for blank or unparseable values."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        try:
            return int(float(value))
        except (ValueError, TypeError):
            return default


def safe_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Convert to float, returning default for blank or unparseable values."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def clean_text(value: Any) -> str:
    """Stringify and strip a value; None becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()
