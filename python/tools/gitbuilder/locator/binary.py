#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Search a finished build tree for the executable it produced.

Name affinity is a case-insensitive substring test in both directions, so
very short target names can match unrelated binaries; exact matches are
always listed first.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Sequence, Tuple, Union

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from loguru import logger

from ..core.models import BinaryCandidate

DEFAULT_AFFINITY_DEPTH = 3

CONVENTIONAL_DIRS: Tuple[str, ...] = (
    ".",
    "build",
    "bin",
    "src",
    "build/bin",
    "build/Release",
    "build/Debug",
    "target/release",
    "target/debug",
    "dist",
    "out",
)

SKIPPED_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__"}

_ELF_MAGIC = b"\x7fELF"
_MACHO_MAGIC = (
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
    b"\xca\xfe\xba\xbe",
)
_DOS_MAGIC = b"MZ"
_PE_SIGNATURE = b"PE\x00\x00"
_PE_OFFSET_FIELD = 0x3C  # e_lfanew in the DOS header
_ELF_EXECUTABLE_TYPES = ("ET_EXEC", "ET_DYN")  # ET_DYN covers PIE
_SHARED_LIBRARY = re.compile(r"\.so(\.\d+)*$")


def is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def _is_elf_executable(handle: BinaryIO, path: Path) -> bool:
    if _SHARED_LIBRARY.search(path.name):
        return False
    try:
        elf = ELFFile(handle)
    except ELFError as e:
        logger.debug(f"Not a valid ELF file {path}: {e}")
        return False
    return elf.header["e_type"] in _ELF_EXECUTABLE_TYPES


def _is_pe_executable(handle: BinaryIO, header: bytes) -> bool:
    if len(header) < _PE_OFFSET_FIELD + 4:
        return False
    offset = int.from_bytes(header[_PE_OFFSET_FIELD:_PE_OFFSET_FIELD + 4], "little")
    handle.seek(offset)
    return handle.read(len(_PE_SIGNATURE)) == _PE_SIGNATURE


def is_native_executable(path: Union[str, Path]) -> bool:
    """True when the file is an ELF, Mach-O or PE executable."""
    path = Path(path)
    try:
        with path.open("rb") as handle:
            header = handle.read(64)
            if header.startswith(_ELF_MAGIC):
                handle.seek(0)
                return _is_elf_executable(handle, path)
            if header.startswith(_DOS_MAGIC):
                return _is_pe_executable(handle, header)
    except OSError:
        return False
    return header[:4] in _MACHO_MAGIC


def name_affinity(file_name: str, target_name: str) -> Tuple[bool, bool]:
    """(matches, exact) for a file name against the target name."""
    name, target = file_name.lower(), target_name.lower()
    if not target:
        return False, False
    if name == target:
        return True, True
    return (target in name or name in target), False


def _walk_files(root: Path, max_depth: Optional[int]) -> Iterator[Path]:
    """Files under root in sorted top-down order, at most max_depth levels deep."""
    for current, dirs, files in os.walk(root):
        directory = Path(current)
        depth = len(directory.relative_to(root).parts)
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS)
        if max_depth is not None and depth + 1 >= max_depth:
            dirs[:] = []
        for name in sorted(files):
            yield directory / name


class BinaryLocator:
    """
    Tiered artifact search.

    Tier 1 looks for native executables named like the target close to the
    root. Tier 2 scans conventional output directories one level deep for any
    executable, and the root itself for native executables. Tier 3 scans the
    whole tree for native executables. A tier only runs when the previous one
    found nothing.
    """

    def __init__(
        self,
        *,
        affinity_depth: int = DEFAULT_AFFINITY_DEPTH,
        conventional_dirs: Sequence[str] = CONVENTIONAL_DIRS,
    ) -> None:
        self.affinity_depth = affinity_depth
        self.conventional_dirs = tuple(conventional_dirs)
        self.last_tier: Optional[int] = None

    def locate(
        self, search_root: Union[str, Path], target_name: str
    ) -> List[BinaryCandidate]:
        root = Path(search_root).resolve()
        self.last_tier = None
        if not root.is_dir():
            logger.warning(f"Binary search root does not exist: {root}")
            return []

        tiers: Tuple[Tuple[int, Callable[[Path, str], List[Path]]], ...] = (
            (1, self._by_name),
            (2, self._conventional_dirs),
            (3, self._full_scan),
        )
        for tier, search in tiers:
            found = search(root, target_name)
            if found:
                self.last_tier = tier
                candidates = self._rank(found, target_name, tier)
                logger.info(
                    f"Found {len(candidates)} binary candidate(s) for "
                    f"'{target_name}' in tier {tier}"
                )
                return candidates
            logger.debug(f"Binary search tier {tier} found nothing in {root}")

        logger.info(f"No binaries found under {root}")
        return []

    def _by_name(self, root: Path, target_name: str) -> List[Path]:
        if not target_name:
            return []
        return [
            path
            for path in _walk_files(root, self.affinity_depth)
            if name_affinity(path.name, target_name)[0]
            and is_executable_file(path)
            and is_native_executable(path)
        ]

    def _conventional_dirs(self, root: Path, target_name: str) -> List[Path]:
        found: List[Path] = []
        for relative in self.conventional_dirs:
            directory = root / relative
            if not directory.is_dir():
                continue
            # The root also holds configure scripts and wrappers.
            native_only = directory == root
            for path in sorted(directory.iterdir()):
                if not is_executable_file(path):
                    continue
                if native_only and not is_native_executable(path):
                    continue
                found.append(path)
        return found

    def _full_scan(self, root: Path, target_name: str) -> List[Path]:
        return [
            path
            for path in _walk_files(root, None)
            if is_executable_file(path) and is_native_executable(path)
        ]

    def _rank(self, paths: List[Path], target_name: str, tier: int) -> List[BinaryCandidate]:
        seen = set()
        candidates: List[BinaryCandidate] = []
        for path in paths:
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            matches, exact = name_affinity(path.name, target_name)
            candidates.append(
                BinaryCandidate(
                    path=path,
                    is_executable=os.access(path, os.X_OK),
                    matches_target_name=matches,
                    exact_match=exact,
                    tier=tier,
                )
            )
        # Stable: discovery order is kept inside each group.
        candidates.sort(key=lambda candidate: not candidate.exact_match)
        return candidates
