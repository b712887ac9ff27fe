#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fixed command sequences, one planner function per toolchain kind.
"""

from __future__ import annotations

import os
import shlex
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Protocol, Tuple

from loguru import logger

from ..core.models import FlagCategory, ToolchainKind

BUILD_SUBDIR = "build"


class FlagSource(Protocol):
    def flags_for(self, category: FlagCategory) -> str: ...


@dataclass(frozen=True)
class BuildStep:
    """One child process of a build sequence."""

    name: str
    argv: Tuple[str, ...]
    cwd: Path
    create_cwd: bool = False

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


def split_flags(flags: str) -> List[str]:
    """Split a persisted flag string; no validation, malformed flags fail in the toolchain."""
    if not flags:
        return []
    try:
        return shlex.split(flags)
    except ValueError:
        logger.warning(f"Unbalanced quoting in flags, splitting on whitespace: {flags!r}")
        return flags.split()


def _script(working_dir: Path, name: str) -> Tuple[str, ...]:
    """Run ``./name`` when executable, else through ``sh``."""
    if os.access(working_dir / name, os.X_OK):
        return (f"./{name}",)
    return ("sh", name)


def _configure_and_make(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [
        BuildStep(
            "configure",
            (*_script(working_dir, "configure"), *split_flags(config.flags_for(FlagCategory.CONFIGURE))),
            working_dir,
        ),
        BuildStep(
            "make",
            ("make", *split_flags(config.flags_for(FlagCategory.MAKE))),
            working_dir,
        ),
    ]


def cmake_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    build_dir = working_dir / BUILD_SUBDIR
    return [
        BuildStep(
            "cmake",
            ("cmake", *split_flags(config.flags_for(FlagCategory.CMAKE)), ".."),
            build_dir,
            create_cwd=True,
        ),
        BuildStep(
            "make",
            ("make", *split_flags(config.flags_for(FlagCategory.MAKE))),
            build_dir,
        ),
    ]


def autogen_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [
        BuildStep("autogen", _script(working_dir, "autogen.sh"), working_dir),
        *_configure_and_make(working_dir, config),
    ]


def configure_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return _configure_and_make(working_dir, config)


def make_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [
        BuildStep(
            "make",
            ("make", *split_flags(config.flags_for(FlagCategory.MAKE))),
            working_dir,
        )
    ]


def gradle_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    wrapper = working_dir / "gradlew"
    if wrapper.is_file() and os.access(wrapper, os.X_OK):
        logger.debug("Using Gradle wrapper")
        return [BuildStep("gradle", ("./gradlew", "build"), working_dir)]
    if shutil.which("gradle") is None:
        logger.warning("Neither a Gradle wrapper nor a system Gradle was found")
    return [BuildStep("gradle", ("gradle", "build"), working_dir)]


def maven_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [BuildStep("maven", ("mvn", "clean", "install"), working_dir)]


def python_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [BuildStep("setup.py", (sys.executable, "setup.py", "build"), working_dir)]


def node_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [
        BuildStep("npm install", ("npm", "install"), working_dir),
        BuildStep("npm build", ("npm", "run", "build"), working_dir),
    ]


def meson_steps(working_dir: Path, config: FlagSource) -> List[BuildStep]:
    return [
        BuildStep("meson", ("meson", "setup", BUILD_SUBDIR), working_dir),
        BuildStep("ninja", ("ninja",), working_dir / BUILD_SUBDIR),
    ]


StepPlanner = Callable[[Path, FlagSource], List[BuildStep]]

STEP_PLANNERS: Dict[ToolchainKind, StepPlanner] = {
    ToolchainKind.CMAKE: cmake_steps,
    ToolchainKind.AUTOGEN: autogen_steps,
    ToolchainKind.AUTOTOOLS: configure_steps,
    ToolchainKind.CUSTOM_CONFIGURE: configure_steps,
    ToolchainKind.MAKE: make_steps,
    ToolchainKind.GRADLE: gradle_steps,
    ToolchainKind.MAVEN: maven_steps,
    ToolchainKind.PYTHON: python_steps,
    ToolchainKind.NODE: node_steps,
    ToolchainKind.MESON: meson_steps,
}


def plan_steps(
    kind: ToolchainKind, working_dir: Path, config: FlagSource
) -> List[BuildStep]:
    """Ordered steps for ``kind`` run from ``working_dir``."""
    steps = STEP_PLANNERS[kind](Path(working_dir), config)
    logger.bind(steps=[step.command_line for step in steps]).debug(
        f"Planned {len(steps)} step(s) for {kind.value}"
    )
    return steps
