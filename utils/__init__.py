# -*- coding: utf-8 -*-
"""
TRRCMS Utility Module
"""

from .logger import get_logger, setup_logger
from .helpers import format_number, format_sequence_number, load_json, dump_json

__all__ = [
    "get_logger",
    "setup_logger",
    "format_number",
    "format_sequence_number",
    "load_json",
    "dump_json",
]
