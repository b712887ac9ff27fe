#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Build-system detection for an arbitrary source tree.

The classifier never raises for an unrecognized tree: it returns an empty
list and leaves the reporting to the caller.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from loguru import logger

from ..core.models import BuildDescriptor, ToolchainKind

DEFAULT_MAX_DEPTH = 2
FALLBACK_DEPTH = 3

AUTOGEN_SCRIPT = "autogen.sh"
AUTOCONF_INPUTS = ("configure.ac", "configure.in")
CONFIGURE_SCRIPT = "configure"
CMAKE_LISTS = "CMakeLists.txt"
MAKEFILES = ("Makefile", "makefile")

# Files that do not compete with anything else in their directory.
SINGLE_PURPOSE: Tuple[Tuple[str, ToolchainKind], ...] = (
    ("setup.py", ToolchainKind.PYTHON),
    ("package.json", ToolchainKind.NODE),
    ("meson.build", ToolchainKind.MESON),
    ("build.gradle", ToolchainKind.GRADLE),
    ("build.gradle.kts", ToolchainKind.GRADLE),
    ("pom.xml", ToolchainKind.MAVEN),
)

SIGNATURE_FILES: Set[str] = {
    AUTOGEN_SCRIPT,
    CONFIGURE_SCRIPT,
    CMAKE_LISTS,
    *MAKEFILES,
    *(name for name, _ in SINGLE_PURPOSE),
}

IGNORED_DIRS = {".git", ".hg", ".svn"}


@dataclass(frozen=True)
class RootSignature:
    """A root-level file whose content identifies a specific project layout."""

    name: str
    build_file: str
    marker: str
    kind: ToolchainKind
    description: str

    def matches(self, root: Path) -> bool:
        return _file_contains(root / self.build_file, self.marker)


DEFAULT_ROOT_SIGNATURES: Tuple[RootSignature, ...] = (
    RootSignature(
        name="mame",
        build_file="makefile",
        marker="MAMEMESS",
        kind=ToolchainKind.MAKE,
        description="MAME build system",
    ),
)


def _file_contains(path: Path, marker: str) -> bool:
    if not path.is_file():
        return False
    try:
        with path.open("r", encoding="utf-8", errors="ignore") as handle:
            return any(marker in line for line in handle)
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return False


def _is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def has_autogen_pair(directory: Path) -> bool:
    """``autogen.sh`` next to ``configure.ac`` or ``configure.in``."""
    return (directory / AUTOGEN_SCRIPT).is_file() and any(
        (directory / name).is_file() for name in AUTOCONF_INPUTS
    )


def _configure_kind(script: Path) -> ToolchainKind:
    try:
        with script.open("r", encoding="utf-8", errors="ignore") as handle:
            first_line = handle.readline()
    except OSError:
        return ToolchainKind.AUTOTOOLS
    if first_line.startswith("#!") and "bash" in first_line:
        return ToolchainKind.CUSTOM_CONFIGURE
    return ToolchainKind.AUTOTOOLS


class Classifier:
    """
    Turn a directory tree into an ordered list of BuildDescriptor candidates.

    Detection is deterministic for a given file-system snapshot: directory
    entries are visited in sorted order and every directory applies the same
    priority rules.
    """

    def __init__(
        self,
        *,
        root_signatures: Tuple[RootSignature, ...] = DEFAULT_ROOT_SIGNATURES,
        fallback_depth: int = FALLBACK_DEPTH,
    ) -> None:
        self.root_signatures = root_signatures
        self.fallback_depth = fallback_depth
        self.last_depth: Optional[int] = None

    def classify(
        self, root_dir: Union[str, Path], max_depth: int = DEFAULT_MAX_DEPTH
    ) -> List[BuildDescriptor]:
        root = Path(root_dir).resolve()
        self.last_depth = max_depth
        if not root.is_dir():
            logger.warning(f"Not a directory, nothing to classify: {root}")
            return []

        special = self._match_root(root)
        if special is not None:
            logger.info(f"Detected {special.description} at {root}")
            return [special]

        descriptors = self._scan(root, max_depth)
        if not descriptors and max_depth < self.fallback_depth:
            logger.debug(
                f"No build files found at depth {max_depth}, "
                f"retrying at depth {self.fallback_depth}"
            )
            self.last_depth = self.fallback_depth
            descriptors = self._scan(root, self.fallback_depth)

        if descriptors:
            logger.bind(kinds=[d.kind.value for d in descriptors]).info(
                f"Found {len(descriptors)} build candidate(s) in {root}"
            )
        else:
            logger.info(f"No build files found in {root} (depth {self.last_depth})")
        return descriptors

    def describe_build_file(self, path: Union[str, Path]) -> Optional[BuildDescriptor]:
        """Descriptor for one explicitly chosen build file, without demotion rules."""
        build_file = Path(path).resolve()
        if not build_file.is_file():
            return None
        directory = build_file.parent
        name = build_file.name

        for signature in self.root_signatures:
            if name == signature.build_file and _file_contains(build_file, signature.marker):
                return BuildDescriptor(
                    signature.kind, directory, build_file, signature.description
                )

        if name == AUTOGEN_SCRIPT:
            kind = ToolchainKind.AUTOGEN
        elif name == CONFIGURE_SCRIPT:
            kind = _configure_kind(build_file)
        elif name == CMAKE_LISTS:
            kind = ToolchainKind.CMAKE
        elif name in MAKEFILES:
            kind = ToolchainKind.MAKE
        else:
            kind = dict(SINGLE_PURPOSE).get(name)
            if kind is None:
                return None
        return BuildDescriptor(kind, directory, build_file, kind.description)

    def _match_root(self, root: Path) -> Optional[BuildDescriptor]:
        for signature in self.root_signatures:
            if signature.matches(root):
                return BuildDescriptor(
                    kind=signature.kind,
                    working_dir=root,
                    source_file=root / signature.build_file,
                    description=signature.description,
                )
        if has_autogen_pair(root):
            return BuildDescriptor(
                kind=ToolchainKind.AUTOGEN,
                working_dir=root,
                source_file=root / AUTOGEN_SCRIPT,
                description=ToolchainKind.AUTOGEN.description,
            )
        return None

    def _scan(self, root: Path, max_depth: int) -> List[BuildDescriptor]:
        descriptors: List[BuildDescriptor] = []
        for directory, names in self._walk(root, max_depth):
            descriptors.extend(self._classify_directory(directory, names))
        return descriptors

    def _walk(self, root: Path, max_depth: int) -> Iterator[Tuple[Path, Set[str]]]:
        """Yield (directory, signature file names) in sorted top-down order."""
        for current, dirs, files in os.walk(root):
            directory = Path(current)
            depth = len(directory.relative_to(root).parts)
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
            # Files in a directory at depth d sit at depth d + 1.
            if depth + 1 >= max_depth:
                dirs[:] = []
            if depth + 1 > max_depth:
                continue
            found = {name for name in files if name in SIGNATURE_FILES}
            if found:
                yield directory, found

    def _classify_directory(
        self, directory: Path, names: Set[str]
    ) -> List[BuildDescriptor]:
        results: List[BuildDescriptor] = []

        def add(kind: ToolchainKind, filename: str) -> None:
            results.append(
                BuildDescriptor(kind, directory, directory / filename, kind.description)
            )

        autogen = AUTOGEN_SCRIPT in names and has_autogen_pair(directory)
        if autogen:
            add(ToolchainKind.AUTOGEN, AUTOGEN_SCRIPT)

        usable_configure = CONFIGURE_SCRIPT in names and _is_executable_file(
            directory / CONFIGURE_SCRIPT
        )
        if usable_configure and not autogen:
            add(_configure_kind(directory / CONFIGURE_SCRIPT), CONFIGURE_SCRIPT)

        has_cmake = CMAKE_LISTS in names
        if has_cmake:
            add(ToolchainKind.CMAKE, CMAKE_LISTS)

        makefile = next((m for m in MAKEFILES if m in names), None)
        if makefile and not (autogen or usable_configure or has_cmake):
            add(ToolchainKind.MAKE, makefile)

        for filename, kind in SINGLE_PURPOSE:
            if filename in names:
                add(kind, filename)

        for descriptor in results:
            logger.debug(f"Candidate {descriptor.kind.value}: {descriptor.source_file}")
        return results
