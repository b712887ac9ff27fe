#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Interactive directory browser used when automatic binary search is not enough.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from loguru import logger

QUIT = "q"
PARENT = "0"

PromptFn = Callable[[str], str]
EchoFn = Callable[[str], None]


@dataclass(frozen=True)
class BrowseResult:
    """Outcome of a browsing session; ``aborted`` is distinct from no selection."""

    path: Optional[Path] = None
    aborted: bool = False

    @property
    def selected(self) -> bool:
        return self.path is not None and not self.aborted


@dataclass(frozen=True)
class BrowserEntry:
    number: int
    path: Path
    is_dir: bool

    @property
    def label(self) -> str:
        if self.is_dir:
            return f"{self.number}) [DIR] {self.path.name}/"
        return f"{self.number}) [BIN] {self.path.name}"


def list_entries(directory: Path) -> List[BrowserEntry]:
    """Numbered subdirectories, then executable files, both sorted by name."""
    try:
        children = sorted(
            (child for child in directory.iterdir() if not child.name.startswith(".")),
            key=lambda child: child.name,
        )
    except OSError as e:
        logger.warning(f"Cannot list {directory}: {e}")
        children = []

    dirs = [child for child in children if child.is_dir()]
    files = [
        child for child in children
        if child.is_file() and os.access(child, os.X_OK)
    ]
    entries = [BrowserEntry(i, path, True) for i, path in enumerate(dirs, 1)]
    entries += [
        BrowserEntry(i, path, False) for i, path in enumerate(files, len(dirs) + 1)
    ]
    return entries


class DirectoryBrowser:
    """Numbered-menu file browser; input and output are injected."""

    def __init__(self, prompt: PromptFn = input, echo: EchoFn = print) -> None:
        self.prompt = prompt
        self.echo = echo

    def render(self, directory: Path, entries: List[BrowserEntry]) -> List[str]:
        lines = [
            "=" * 42,
            "FILE BROWSER - Select a binary",
            f"Current directory: {directory}",
            "=" * 42,
            f"{PARENT}) .. (Go to parent directory)",
            "",
            "DIRECTORIES:",
        ]
        lines += [entry.label for entry in entries if entry.is_dir]
        lines += ["", "EXECUTABLE FILES:"]
        lines += [entry.label for entry in entries if not entry.is_dir]
        lines += ["", f"{QUIT}) Quit browser"]
        return lines

    def browse(self, start_dir: Union[str, Path]) -> BrowseResult:
        current = Path(start_dir).resolve()
        while not current.is_dir() and current != current.parent:
            current = current.parent

        while True:
            entries = list_entries(current)
            for line in self.render(current, entries):
                self.echo(line)

            try:
                choice = self.prompt(
                    f"Select option (0-{len(entries)}, {QUIT} to quit): "
                ).strip()
            except EOFError:
                return BrowseResult(aborted=True)

            if choice.lower() == QUIT:
                logger.debug("Binary browsing aborted")
                return BrowseResult(aborted=True)
            if choice == PARENT:
                current = current.parent
                continue
            if choice.isdigit() and 1 <= int(choice) <= len(entries):
                entry = entries[int(choice) - 1]
                if entry.is_dir:
                    current = entry.path
                    continue
                logger.debug(f"Selected binary via browser: {entry.path}")
                return BrowseResult(path=entry.path)
            self.echo("Invalid selection.")
