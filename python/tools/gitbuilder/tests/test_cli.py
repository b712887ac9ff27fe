#!/usr/bin/env python3
"""
Tests for the non-interactive command-line paths.
"""

import json
import pydoc
from pathlib import Path

import pytest
from rich.prompt import Confirm

from gitbuilder.cli import create_parser, main

pytestmark = pytest.mark.usefixtures("isolated_env")


def run(tmp_path: Path, *argv: str) -> int:
    return main(["--quiet", "--no-color", "--data-dir", str(tmp_path / "data"), *argv])


def test_parser_requires_source():
    with pytest.raises(SystemExit):
        create_parser().parse_args(["build"])


def test_no_command_prints_help(tmp_path: Path, capsys):
    assert run(tmp_path) == 1
    assert "usage:" in capsys.readouterr().out


def test_detect(tmp_path: Path, make_tree, capsys):
    root = make_tree({"CMakeLists.txt": "", "tools/setup.py": ""})

    assert run(tmp_path, "detect", str(root)) == 0
    out = capsys.readouterr().out
    assert "cmake" in out
    assert "python" in out


def test_detect_nothing_found(tmp_path: Path, make_tree):
    root = make_tree({"README": "hello"})

    assert run(tmp_path, "detect", str(root)) == 1


def test_override_show(tmp_path: Path, make_tree, capsys):
    root = make_tree({"gitbuildfile": "REPO_NAME=zesarux\nMAKE_FLAGS=-j2\n"})

    assert run(tmp_path, "override", str(root)) == 0
    out = capsys.readouterr().out
    assert "REPO_NAME" in out
    assert "zesarux" in out


def test_override_missing(tmp_path: Path, make_tree):
    root = make_tree({"Makefile": ""})

    assert run(tmp_path, "override", str(root)) == 1


def test_config_updates_store(tmp_path: Path):
    assert run(tmp_path, "config", "zesarux", "--make-flags=-j3", "--dependencies", "sdl2,zlib") == 0

    data = json.loads((tmp_path / "data" / "targets.json").read_text())
    config = data["targets"]["zesarux"]["config"]
    assert config["make_flags"] == "-j3"
    assert config["dependencies"] == ["sdl2", "zlib"]


def test_config_without_changes_shows_record(tmp_path: Path, capsys):
    assert run(tmp_path, "config", "unknown-target") == 0
    assert "unknown-target" in capsys.readouterr().out


FAILING_SETUP = """import sys
for unit in range(60):
    print(f"compile unit {unit}")
sys.exit(3)
"""


def test_failed_build_prints_tail_and_pages_full_log(tmp_path: Path, make_tree, monkeypatch, capsys):
    root = make_tree({"setup.py": FAILING_SETUP})
    paged = []
    monkeypatch.setattr(Confirm, "ask", lambda *args, **kwargs: True)
    monkeypatch.setattr(pydoc, "pager", paged.append)

    assert run(tmp_path, "build", str(root), "--tail", "5") == 1

    out = capsys.readouterr().out
    assert "compile unit 59" in out
    assert "compile unit 1\n" not in out
    assert len(paged) == 1
    assert "compile unit 0" in paged[0]
    assert "compile unit 59" in paged[0]


def test_failed_build_log_can_be_skipped(tmp_path: Path, make_tree, monkeypatch, capsys):
    root = make_tree({"setup.py": FAILING_SETUP})
    paged = []
    monkeypatch.setattr(Confirm, "ask", lambda *args, **kwargs: False)
    monkeypatch.setattr(pydoc, "pager", paged.append)

    assert run(tmp_path, "build", str(root), "--tail", "0") == 1

    assert "compile unit" not in capsys.readouterr().out
    assert paged == []


def test_yes_saves_override_document(tmp_path: Path, make_tree):
    root = make_tree({"setup.py": "print('built')\n", "gitbuildfile": "MAKE_FLAGS=-j2\n"})

    assert run(tmp_path, "build", str(root), "-y", "--no-locate") == 0

    data = json.loads((tmp_path / "data" / "targets.json").read_text())
    record = data["targets"]["src"]
    assert record["config"]["make_flags"] == "-j2"
    assert record["build_success"] is True
