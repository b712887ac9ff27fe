#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Finding the artifact a build produced.
"""

from .binary import (
    CONVENTIONAL_DIRS,
    BinaryLocator,
    is_native_executable,
    name_affinity,
)
from .browser import BrowseResult, BrowserEntry, DirectoryBrowser, list_entries
from .selection import ArtifactSelector, SelectionResult

__all__ = [
    "CONVENTIONAL_DIRS",
    "BinaryLocator",
    "is_native_executable",
    "name_affinity",
    "BrowseResult",
    "BrowserEntry",
    "DirectoryBrowser",
    "list_entries",
    "ArtifactSelector",
    "SelectionResult",
]
