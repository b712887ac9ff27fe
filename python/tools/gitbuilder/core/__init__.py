#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core data model, error hierarchy and store interface.
"""

from .errors import (
    ErrorContext,
    GitBuilderError,
    ClassificationError,
    ConfigurationError,
    DispatchError,
    JobConflictError,
    JobStateError,
    BuildError,
    DependencyError,
    handle_build_error,
)
from .models import (
    FlagCategory,
    ToolchainKind,
    PathRelocation,
    BuildDescriptor,
    BuildConfig,
    OverrideProposal,
    ResolvedConfig,
    JobState,
    BuildJob,
    BinaryCandidate,
    ProgressKind,
    ProgressEvent,
)
from .store import TargetRecord, BuildStore, MemoryBuildStore, JsonBuildStore

__all__ = [
    "ErrorContext",
    "GitBuilderError",
    "ClassificationError",
    "ConfigurationError",
    "DispatchError",
    "JobConflictError",
    "JobStateError",
    "BuildError",
    "DependencyError",
    "handle_build_error",
    "FlagCategory",
    "ToolchainKind",
    "PathRelocation",
    "BuildDescriptor",
    "BuildConfig",
    "OverrideProposal",
    "ResolvedConfig",
    "JobState",
    "BuildJob",
    "BinaryCandidate",
    "ProgressKind",
    "ProgressEvent",
    "TargetRecord",
    "BuildStore",
    "MemoryBuildStore",
    "JsonBuildStore",
]
