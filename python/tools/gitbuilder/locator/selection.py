#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Let the user pick one of the located binaries, or browse for another one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from loguru import logger

from ..core.models import BinaryCandidate
from .browser import DirectoryBrowser, EchoFn, PromptFn

BROWSE = "b"
SKIP = "q"


@dataclass(frozen=True)
class SelectionResult:
    path: Optional[Path] = None
    aborted: bool = False
    browsed: bool = False

    @property
    def selected(self) -> bool:
        return self.path is not None and not self.aborted


class ArtifactSelector:
    """Numbered candidate menu with a fall-through to the directory browser."""

    def __init__(
        self,
        prompt: PromptFn = input,
        echo: EchoFn = print,
        browser: Optional[DirectoryBrowser] = None,
    ) -> None:
        self.prompt = prompt
        self.echo = echo
        self.browser = browser or DirectoryBrowser(prompt=prompt, echo=echo)

    def select(
        self,
        candidates: Sequence[BinaryCandidate],
        browse_root: Union[str, Path],
    ) -> SelectionResult:
        if not candidates:
            self.echo("No binaries found automatically, opening the file browser.")
            return self._browse(browse_root)

        self.echo("Found the following binaries:")
        for number, candidate in enumerate(candidates, 1):
            marker = " (exact match)" if candidate.exact_match else ""
            self.echo(f"{number}) {candidate.path}{marker}")
        self.echo(f"{BROWSE}) Browse for binary")
        self.echo(f"{SKIP}) Skip")

        while True:
            try:
                choice = self.prompt(
                    f"Select binary (1-{len(candidates)}, {BROWSE}, {SKIP}): "
                ).strip().lower()
            except EOFError:
                return SelectionResult(aborted=True)

            if choice == SKIP:
                return SelectionResult(aborted=True)
            if choice == BROWSE:
                return self._browse(browse_root)
            if choice.isdigit() and 1 <= int(choice) <= len(candidates):
                path = candidates[int(choice) - 1].path
                logger.debug(f"Selected binary: {path}")
                return SelectionResult(path=path)
            self.echo("Invalid selection.")

    def _browse(self, browse_root: Union[str, Path]) -> SelectionResult:
        result = self.browser.browse(browse_root)
        return SelectionResult(path=result.path, aborted=result.aborted, browsed=True)
