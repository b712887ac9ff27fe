#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Per-project exceptions to the generic step sequences.

Kept as a small closed table of declarative records: each record says how
to recognize the project and which toolchain's full sequence to run
instead of the detected one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ..core.models import BuildDescriptor, ToolchainKind


@dataclass(frozen=True)
class SequenceOverride:
    """Replace the detected sequence for one recognizable project."""

    name: str
    sequence: ToolchainKind
    target_name: Optional[str] = None
    marker_file: Optional[str] = None
    marker: Optional[str] = None
    description: str = ""

    def matches(self, target_name: Optional[str], descriptor: BuildDescriptor) -> bool:
        if self.target_name is not None:
            if not target_name or target_name.casefold() != self.target_name.casefold():
                return False
        if self.marker_file is not None:
            if not _contains(descriptor.working_dir / self.marker_file, self.marker or ""):
                return False
        return self.target_name is not None or self.marker_file is not None


def _contains(path: Path, marker: str) -> bool:
    if not path.is_file():
        return False
    try:
        return marker in path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return False


DEFAULT_OVERRIDES = (
    SequenceOverride(
        name="atari800",
        target_name="Atari800",
        sequence=ToolchainKind.AUTOGEN,
        description="Atari800 needs autogen.sh before configure",
    ),
    SequenceOverride(
        name="mame",
        marker_file="makefile",
        marker="MAMEMESS",
        sequence=ToolchainKind.MAKE,
        description="MAME builds from its top-level makefile",
    ),
)


def find_override(
    overrides: Iterable[SequenceOverride],
    target_name: Optional[str],
    descriptor: BuildDescriptor,
) -> Optional[SequenceOverride]:
    return next((o for o in overrides if o.matches(target_name, descriptor)), None)
