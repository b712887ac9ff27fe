#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data models for the build orchestration core.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum, auto
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set

from .errors import BuildError, ErrorContext, JobStateError


class FlagCategory(Enum):
    """Flag strings a target can persist, one per toolchain stage."""

    CONFIGURE = "configure"
    MAKE = "make"
    CMAKE = "cmake"


class ToolchainKind(Enum):
    """Closed set of toolchains the core knows how to drive."""

    CMAKE = "cmake"
    AUTOTOOLS = "autotools"
    AUTOGEN = "autogen"
    CUSTOM_CONFIGURE = "custom-configure"
    MAKE = "make"
    PYTHON = "python"
    NODE = "node"
    MESON = "meson"
    GRADLE = "gradle"
    MAVEN = "maven"

    @property
    def flag_categories(self) -> FrozenSet[FlagCategory]:
        """Flag categories this toolchain's steps consume."""
        return _FLAG_CATEGORIES[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[ToolchainKind]:
        """Map a build-method string such as ``CMake`` or ``custom_configure``."""
        if not value:
            return None
        normalized = value.strip().lower().replace("_", "-")
        for kind in cls:
            if kind.value == normalized:
                return kind
        return None


_FLAG_CATEGORIES: Dict[ToolchainKind, FrozenSet[FlagCategory]] = {
    ToolchainKind.CMAKE: frozenset({FlagCategory.CMAKE, FlagCategory.MAKE}),
    ToolchainKind.AUTOTOOLS: frozenset({FlagCategory.CONFIGURE, FlagCategory.MAKE}),
    ToolchainKind.AUTOGEN: frozenset({FlagCategory.CONFIGURE, FlagCategory.MAKE}),
    ToolchainKind.CUSTOM_CONFIGURE: frozenset(
        {FlagCategory.CONFIGURE, FlagCategory.MAKE}
    ),
    ToolchainKind.MAKE: frozenset({FlagCategory.MAKE}),
    ToolchainKind.PYTHON: frozenset(),
    ToolchainKind.NODE: frozenset(),
    ToolchainKind.MESON: frozenset(),
    ToolchainKind.GRADLE: frozenset(),
    ToolchainKind.MAVEN: frozenset(),
}

_DESCRIPTIONS: Dict[ToolchainKind, str] = {
    ToolchainKind.CMAKE: "CMake build system",
    ToolchainKind.AUTOTOOLS: "Autotools build system",
    ToolchainKind.AUTOGEN: "Autotools build system (needs autogen)",
    ToolchainKind.CUSTOM_CONFIGURE: "Custom configure script",
    ToolchainKind.MAKE: "Make build system",
    ToolchainKind.PYTHON: "Python package",
    ToolchainKind.NODE: "Node.js package",
    ToolchainKind.MESON: "Meson build system",
    ToolchainKind.GRADLE: "Gradle build system",
    ToolchainKind.MAVEN: "Maven build system",
}


@dataclass(frozen=True)
class PathRelocation:
    """Hint that a tree at ``source`` is currently being served from ``target``."""

    source: Path
    target: Path

    def apply(self, path: Path) -> Path:
        path = Path(path)
        try:
            relative = path.relative_to(self.source)
        except ValueError:
            return path
        return self.target / relative


@dataclass(frozen=True)
class BuildDescriptor:
    """One detected way of building a directory of the tree."""

    kind: ToolchainKind
    working_dir: Path
    source_file: Path
    description: str

    def relocated(self, relocation: Optional[PathRelocation]) -> BuildDescriptor:
        if relocation is None:
            return self
        return BuildDescriptor(
            kind=self.kind,
            working_dir=relocation.apply(self.working_dir),
            source_file=relocation.apply(self.source_file),
            description=self.description,
        )

    def with_kind(self, kind: ToolchainKind) -> BuildDescriptor:
        """Same directory and build file, driven by another toolchain."""
        return BuildDescriptor(
            kind=kind,
            working_dir=self.working_dir,
            source_file=self.source_file,
            description=kind.description,
        )

    def __str__(self) -> str:
        return f"{self.description} (in {self.working_dir})"


@dataclass
class BuildConfig:
    """Persisted per-target flags and dependency list."""

    configure_flags: str = ""
    make_flags: str = ""
    cmake_flags: str = ""
    dependencies: Set[str] = field(default_factory=set)

    def flags_for(self, category: FlagCategory) -> str:
        match category:
            case FlagCategory.CONFIGURE:
                return self.configure_flags
            case FlagCategory.MAKE:
                return self.make_flags
            case FlagCategory.CMAKE:
                return self.cmake_flags

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configure_flags": self.configure_flags,
            "make_flags": self.make_flags,
            "cmake_flags": self.cmake_flags,
            "dependencies": sorted(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BuildConfig:
        return cls(
            configure_flags=data.get("configure_flags") or "",
            make_flags=data.get("make_flags") or "",
            cmake_flags=data.get("cmake_flags") or "",
            dependencies=set(data.get("dependencies") or ()),
        )


@dataclass(frozen=True)
class OverrideProposal:
    """Store updates parsed from an override document, awaiting confirmation."""

    source: Path
    updates: Dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.updates)


@dataclass(frozen=True)
class ResolvedConfig:
    """Effective configuration for one build attempt."""

    descriptor: BuildDescriptor
    configure_flags: str = ""
    make_flags: str = ""
    cmake_flags: str = ""
    dependencies: FrozenSet[str] = frozenset()
    binary_path: Optional[Path] = None
    sources: Dict[str, str] = field(default_factory=dict, compare=False)
    proposal: Optional[OverrideProposal] = None

    def flags_for(self, category: FlagCategory) -> str:
        match category:
            case FlagCategory.CONFIGURE:
                return self.configure_flags
            case FlagCategory.MAKE:
                return self.make_flags
            case FlagCategory.CMAKE:
                return self.cmake_flags


class JobState(Enum):
    """Lifecycle of a single build attempt."""

    PENDING = auto()
    RUNNING = auto()
    SUCCEEDED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


@dataclass
class BuildJob:
    """One execution attempt of a descriptor; owns exactly one log file."""

    repo_id: str
    descriptor: BuildDescriptor
    log_path: Path
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.PENDING
    exit_code: Optional[int] = None
    failed_step: Optional[str] = None
    completed_steps: List[str] = field(default_factory=list)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def _transition(self, target: JobState) -> None:
        allowed = {
            JobState.PENDING: {JobState.RUNNING},
            JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED},
        }
        if target not in allowed.get(self.state, set()):
            raise JobStateError(
                f"Invalid job transition {self.state.name} -> {target.name}",
                job_id=self.job_id,
                context=ErrorContext(log_path=self.log_path),
            )
        self.state = target

    def start(self) -> None:
        self._transition(JobState.RUNNING)
        self.started_at = time.time()

    def succeed(self) -> None:
        self._transition(JobState.SUCCEEDED)
        self.exit_code = 0
        self.finished_at = time.time()

    def fail(self, step: Optional[str], exit_code: Optional[int]) -> None:
        self._transition(JobState.FAILED)
        self.failed_step = step
        self.exit_code = exit_code
        self.finished_at = time.time()

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.SUCCEEDED

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def raise_for_state(self) -> None:
        """Raise BuildError with step, toolchain and log location if the job failed."""
        if self.state is not JobState.FAILED:
            return
        raise BuildError(
            f"{self.descriptor.kind.value} build failed at step "
            f"'{self.failed_step}' (see {self.log_path})",
            step=self.failed_step,
            toolchain=self.descriptor.kind.value,
            context=ErrorContext(
                exit_code=self.exit_code,
                working_directory=self.descriptor.working_dir,
                log_path=self.log_path,
                execution_time=self.duration,
            ),
        )


@dataclass(frozen=True)
class BinaryCandidate:
    """A path proposed as the build's output artifact."""

    path: Path
    is_executable: bool
    matches_target_name: bool
    exact_match: bool = False
    tier: int = 0


class ProgressKind(Enum):
    STEP_STARTED = auto()
    HEARTBEAT = auto()
    STEP_FINISHED = auto()
    COMPLETED = auto()


@dataclass(frozen=True)
class ProgressEvent:
    """Event delivered to the caller while a job runs."""

    kind: ProgressKind
    job_id: str
    step: Optional[str] = None
    ticks: int = 0
    elapsed: float = 0.0
    exit_code: Optional[int] = None
    job: Optional[BuildJob] = None

    @property
    def indicator(self) -> str:
        return "Building" + "." * (self.ticks % 4)
