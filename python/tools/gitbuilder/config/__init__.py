#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Override documents and configuration resolution.
"""

from .override import (
    OVERRIDE_FILENAME,
    OverrideDocument,
    find_override_document,
    load_override_document,
    parse_dependencies,
    parse_override_text,
)
from .resolver import ConfigResolver

__all__ = [
    "OVERRIDE_FILENAME",
    "OverrideDocument",
    "find_override_document",
    "load_override_document",
    "parse_dependencies",
    "parse_override_text",
    "ConfigResolver",
]
