# -*- coding: utf-8 -*-
"""
DateTime Utilities

Centralized datetime handling for the import pipeline. All timestamps are
naive UTC and stored as ISO strings.
"""

from datetime import datetime, date, timezone
from typing import Union, Optional


def utcnow() -> datetime:
    """Current UTC time (naive)."""
    return datetime.utcnow()


def _as_naive_utc(value: datetime) -> datetime:
    """Offset-aware values are shifted to UTC and made naive."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_isoformat(value: Union[datetime, date, str, None]) -> Optional[str]:
    """
    Convert a datetime-like value to an ISO format string.

    Args:
        value: datetime, date, ISO string, or None

    Returns:
        ISO format string, or None when value is None

    Examples:
        >>> to_isoformat(datetime(2024, 1, 15, 10, 30))
        '2024-01-15T10:30:00'
        >>> to_isoformat(None) is None
        True
    """
    if value is None:
        return None

    if isinstance(value, str):
        return value

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    return str(value)


def from_isoformat(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Convert ISO format string to datetime object.

    Reverse of to_isoformat() for deserialization.

    Args:
        value: ISO string, datetime, date, or None

    Returns:
        datetime object or None

    Examples:
        >>> from_isoformat('2024-01-15T10:30:00')
        datetime.datetime(2024, 1, 15, 10, 30)
        >>> from_isoformat('2024-01-15')
        datetime.datetime(2024, 1, 15, 0, 0)
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _as_naive_utc(value)

    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if 'T' in text or ' ' in text:
                if text.endswith('Z'):
                    text = text[:-1] + '+00:00'
                return _as_naive_utc(datetime.fromisoformat(text))
            return datetime.combine(date.fromisoformat(text), datetime.min.time())
        except ValueError:
            return None

    return None
