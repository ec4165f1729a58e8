# -*- coding: utf-8 -*-
"""
TRRCMS Import Pipeline Core Module
"""

from .config import Config, Vocabularies

__all__ = ["Config", "Vocabularies"]
