#!/usr/bin/env python3
"""
Tests for the interactive directory browser and candidate selection.
"""

from pathlib import Path
from typing import Iterable, List

import pytest

from gitbuilder.core.models import BinaryCandidate
from gitbuilder.locator.browser import DirectoryBrowser, list_entries
from gitbuilder.locator.selection import ArtifactSelector


class ScriptedInput:
    """Feeds canned answers to a prompt and records what was shown."""

    def __init__(self, answers: Iterable[str]) -> None:
        self.answers = list(answers)
        self.prompts: List[str] = []
        self.output: List[str] = []

    def prompt(self, text: str) -> str:
        self.prompts.append(text)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    def echo(self, line: str) -> None:
        self.output.append(line)


@pytest.fixture
def tree(make_tree) -> Path:
    return make_tree(
        {
            "build/zesarux*": "#!/bin/sh\n",
            "build/notes.txt": "",
            "docs/readme": "",
            "run.sh*": "#!/bin/sh\n",
            ".hidden/secret*": "",
        }
    )


def test_entries_list_directories_then_executables(tree):
    entries = list_entries(tree)

    assert [(e.number, e.path.name, e.is_dir) for e in entries] == [
        (1, "build", True),
        (2, "docs", True),
        (3, "run.sh", False),
    ]


def test_descend_and_select(tree):
    io = ScriptedInput(["1", "1"])

    result = DirectoryBrowser(io.prompt, io.echo).browse(tree)

    assert result.selected
    assert result.path == (tree / "build" / "zesarux").resolve()
    assert any("[BIN] zesarux" in line for line in io.output)


def test_parent_navigation(tree):
    io = ScriptedInput(["0", "q"])

    result = DirectoryBrowser(io.prompt, io.echo).browse(tree / "build")

    assert result.aborted
    assert f"Current directory: {tree.resolve()}" in io.output


def test_quit_is_an_abort(tree):
    io = ScriptedInput(["Q"])

    result = DirectoryBrowser(io.prompt, io.echo).browse(tree)

    assert result.aborted
    assert result.path is None
    assert not result.selected


def test_invalid_input_reprompts(tree):
    io = ScriptedInput(["abc", "99", "3"])

    result = DirectoryBrowser(io.prompt, io.echo).browse(tree)

    assert io.output.count("Invalid selection.") == 2
    assert result.path == (tree / "run.sh").resolve()


def test_end_of_input_aborts(tree):
    io = ScriptedInput([])

    assert DirectoryBrowser(io.prompt, io.echo).browse(tree).aborted


def test_missing_start_dir_uses_existing_parent(tree):
    io = ScriptedInput(["q"])

    DirectoryBrowser(io.prompt, io.echo).browse(tree / "not" / "there")

    assert f"Current directory: {tree.resolve()}" in io.output


def candidate(path: Path, exact: bool = False) -> BinaryCandidate:
    return BinaryCandidate(path, True, True, exact_match=exact, tier=1)


def test_selector_picks_candidate(tree):
    io = ScriptedInput(["2"])
    candidates = [candidate(tree / "build" / "zesarux", True), candidate(tree / "run.sh")]

    result = ArtifactSelector(io.prompt, io.echo).select(candidates, tree)

    assert result.path == tree / "run.sh"
    assert not result.browsed
    assert "1) " + str(tree / "build" / "zesarux") + " (exact match)" in io.output


def test_selector_browse_option(tree):
    io = ScriptedInput(["b", "3"])

    result = ArtifactSelector(io.prompt, io.echo).select(
        [candidate(tree / "build" / "zesarux")], tree
    )

    assert result.browsed
    assert result.path == (tree / "run.sh").resolve()


def test_selector_empty_list_falls_through_to_browser(tree):
    io = ScriptedInput(["1", "1"])

    result = ArtifactSelector(io.prompt, io.echo).select([], tree)

    assert result.browsed
    assert result.path == (tree / "build" / "zesarux").resolve()


def test_selector_skip_is_abort(tree):
    io = ScriptedInput(["x", "q"])

    result = ArtifactSelector(io.prompt, io.echo).select(
        [candidate(tree / "run.sh")], tree
    )

    assert result.aborted
    assert not result.selected
    assert "Invalid selection." in io.output


def test_selector_abort_in_browser(tree):
    io = ScriptedInput(["q"])

    result = ArtifactSelector(io.prompt, io.echo).select([], tree)

    assert result.aborted
    assert result.path is None
