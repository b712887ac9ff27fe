#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
gitbuilder

Detects the build system of an arbitrary source tree, runs its fixed
command sequence under supervision and finds the binary it produced.
"""

import sys

from loguru import logger

from .core.errors import (
    GitBuilderError,
    ClassificationError,
    ConfigurationError,
    DispatchError,
    JobConflictError,
    JobStateError,
    BuildError,
    DependencyError,
)
from .core.models import (
    ToolchainKind,
    BuildDescriptor,
    BuildConfig,
    ResolvedConfig,
    BuildJob,
    JobState,
    BinaryCandidate,
    ProgressEvent,
    ProgressKind,
    PathRelocation,
)
from .core.store import BuildStore, MemoryBuildStore, JsonBuildStore
from .detection.classifier import Classifier
from .config.override import OverrideDocument, load_override_document
from .config.resolver import ConfigResolver
from .execution.engine import ExecutionEngine
from .locator.binary import BinaryLocator
from .locator.browser import DirectoryBrowser
from .locator.selection import ArtifactSelector
from .utils.config import GitBuilderSettings, SettingsLoader
from .pipeline import GitBuilder, BuildOutcome

logger.remove()
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)

__version__ = "1.0.0"
__license__ = "GPL-3.0-or-later"


def get_tool_info() -> dict:
    """Metadata about the gitbuilder package."""
    return {
        "name": "gitbuilder",
        "version": __version__,
        "description": "Build-system detection, supervised builds and binary discovery for source trees",
        "license": __license__,
        "platform": ["linux", "macos"],
        "toolchains": [kind.value for kind in ToolchainKind],
        "functions": ["detect", "prepare", "build", "register_binary", "get_tool_info"],
        "requirements": ["python>=3.11", "loguru", "rich", "aiofiles", "pyelftools"],
        "classes": {
            "GitBuilder": "Single-target pipeline from detection to registered binary",
            "Classifier": "Build-system detection for a source tree",
            "ConfigResolver": "Merges detected, persisted and override configuration",
            "ExecutionEngine": "Supervised, logged execution of build steps",
            "BinaryLocator": "Tiered search for a build's output binary",
            "ArtifactSelector": "Interactive choice among located binaries",
        },
    }


__all__ = [
    "GitBuilder",
    "BuildOutcome",
    "Classifier",
    "ConfigResolver",
    "OverrideDocument",
    "load_override_document",
    "ExecutionEngine",
    "BinaryLocator",
    "DirectoryBrowser",
    "ArtifactSelector",
    "BuildStore",
    "MemoryBuildStore",
    "JsonBuildStore",
    "GitBuilderSettings",
    "SettingsLoader",
    "ToolchainKind",
    "BuildDescriptor",
    "BuildConfig",
    "ResolvedConfig",
    "BuildJob",
    "JobState",
    "BinaryCandidate",
    "ProgressEvent",
    "ProgressKind",
    "PathRelocation",
    "GitBuilderError",
    "ClassificationError",
    "ConfigurationError",
    "DispatchError",
    "JobConflictError",
    "JobStateError",
    "BuildError",
    "DependencyError",
    "get_tool_info",
    "__version__",
]
