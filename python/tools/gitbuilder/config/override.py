#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Parser for the ``gitbuildfile`` override document found at a tree's root.

The format is deliberately forgiving: anything that is not a recognized
``KEY=VALUE`` assignment is skipped so that newer documents keep working
with older parsers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Union

from loguru import logger

OVERRIDE_FILENAME = "gitbuildfile"

_ASSIGNMENT = re.compile(r"^([A-Za-z_]+)=(.*)$")

RECOGNIZED_KEYS = (
    "REPO_NAME",
    "REPO_URL",
    "BUILD_METHOD",
    "DEPENDENCIES",
    "BUILD_FILE",
    "CONFIGURE_FLAGS",
    "MAKE_FLAGS",
    "CMAKE_FLAGS",
    "BINARY_PATH",
    "NOTES",
)


@dataclass(frozen=True)
class OverrideDocument:
    """Values parsed from an override document; empty values count as absent."""

    repo_name: Optional[str] = None
    repo_url: Optional[str] = None
    build_method: Optional[str] = None
    dependencies: Optional[str] = None
    build_file: Optional[Path] = None
    configure_flags: Optional[str] = None
    make_flags: Optional[str] = None
    cmake_flags: Optional[str] = None
    binary_path: Optional[Path] = None
    notes: Optional[str] = None
    source: Optional[Path] = None
    extras: Dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def dependency_set(self) -> FrozenSet[str]:
        return parse_dependencies(self.dependencies)

    def is_empty(self) -> bool:
        return not any(
            getattr(self, key.lower()) for key in RECOGNIZED_KEYS
        )


def parse_dependencies(text: Optional[str]) -> FrozenSet[str]:
    """Split a dependency list on whitespace and commas."""
    if not text:
        return frozenset()
    return frozenset(item for item in re.split(r"[\s,]+", text) if item)


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _resolve(value: Optional[str], base_dir: Optional[Path]) -> Optional[Path]:
    if not value:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def parse_override_text(
    text: str, *, base_dir: Optional[Union[str, Path]] = None, source: Optional[Path] = None
) -> OverrideDocument:
    """
    Parse override document text.

    Args:
        text: Document contents.
        base_dir: Directory that relative BUILD_FILE and BINARY_PATH values
            are resolved against.
        source: Path of the document, kept for reporting.

    Returns:
        OverrideDocument with every recognized, non-empty key set.
    """
    values: Dict[str, str] = {}
    extras: Dict[str, str] = {}

    for line_no, raw_line in enumerate(text.splitlines(), 1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        match = _ASSIGNMENT.match(line)
        if not match:
            logger.debug(f"Ignoring override line {line_no}: {raw_line!r}")
            continue
        key, value = match.group(1), _strip_quotes(match.group(2))
        if key in RECOGNIZED_KEYS:
            values[key] = value
        else:
            extras[key] = value

    if extras:
        logger.debug(f"Ignoring unrecognized override keys: {sorted(extras)}")

    def get(key: str) -> Optional[str]:
        return values.get(key) or None

    base = Path(base_dir) if base_dir is not None else None
    return OverrideDocument(
        repo_name=get("REPO_NAME"),
        repo_url=get("REPO_URL"),
        build_method=get("BUILD_METHOD"),
        dependencies=get("DEPENDENCIES"),
        build_file=_resolve(get("BUILD_FILE"), base),
        configure_flags=get("CONFIGURE_FLAGS"),
        make_flags=get("MAKE_FLAGS"),
        cmake_flags=get("CMAKE_FLAGS"),
        binary_path=_resolve(get("BINARY_PATH"), base),
        notes=get("NOTES"),
        source=source,
        extras=extras,
    )


def find_override_document(
    root_dir: Union[str, Path], filename: str = OVERRIDE_FILENAME
) -> Optional[Path]:
    candidate = Path(root_dir) / filename
    return candidate if candidate.is_file() else None


def load_override_document(
    root_dir: Union[str, Path], filename: str = OVERRIDE_FILENAME
) -> Optional[OverrideDocument]:
    """Load the override document at a tree's root, or None when there is none."""
    path = find_override_document(root_dir, filename)
    if path is None:
        return None
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Cannot read override document {path}: {e}")
        return None
    logger.info(f"Found override document: {path}")
    return parse_override_text(text, base_dir=path.parent, source=path)
