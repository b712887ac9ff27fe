#!/usr/bin/env python3
"""
Shared fixtures: throw-away source trees and fake native executables.
"""

import os
import stat
import sys
from pathlib import Path
from typing import Callable, Dict, Union

import pytest

from gitbuilder.core.store import MemoryBuildStore
from gitbuilder.execution import preflight

# Minimal little-endian 64-bit ELF header with e_type = ET_EXEC.
ELF_EXECUTABLE = b"\x7fELF\x02\x01\x01" + b"\x00" * 9 + b"\x02\x00\x3e\x00" + b"\x00" * 44

TreeLayout = Dict[str, Union[str, bytes]]


def make_executable(path: Path) -> Path:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[..., Path]:
    """
    Build a tree under tmp_path.

    Keys are relative paths; a trailing ``*`` marks the file executable.
    Values are text or bytes contents.
    """

    def _make(layout: TreeLayout, root: str = "src") -> Path:
        base = tmp_path / root
        base.mkdir(parents=True, exist_ok=True)
        for name, content in layout.items():
            executable = name.endswith("*")
            path = base / name.rstrip("*")
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
            if executable:
                make_executable(path)
        return base

    return _make


@pytest.fixture
def native_binary() -> Callable[[Path], Path]:
    """Write an executable file with an ELF header at the given path."""

    def _write(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(ELF_EXECUTABLE)
        return make_executable(path)

    return _write


@pytest.fixture
def store() -> MemoryBuildStore:
    return MemoryBuildStore()


@pytest.fixture
def python_exe() -> str:
    return sys.executable


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove GITBUILDER_* variables inherited from the developer's shell."""
    for key in list(os.environ):
        if key.startswith("GITBUILDER_"):
            monkeypatch.delenv(key)


FAKE_PACKAGE_MANAGER = """#!/bin/sh
echo "{name} $*" >> "{bin_dir}/calls.log"
if [ {exit_code} -ne 0 ]; then
    exit {exit_code}
fi
for arg in "$@"; do
    case "$arg" in
        -*|install|update) ;;
        *) printf '#!/bin/sh\\n' > "{bin_dir}/$arg"; chmod +x "{bin_dir}/$arg" ;;
    esac
done
"""


@pytest.fixture
def fake_package_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[..., Path]:
    """
    Put a fake package manager first on PATH.

    It appends each invocation to ``calls.log`` next to itself and "installs"
    a package by creating an executable of that name, so a later PATH lookup
    finds it. Returns the directory holding the fake.
    """
    bin_dir = tmp_path / "fakebin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setattr(preflight, "_privilege_prefix", lambda: ())

    def _install(name: str = "apt-get", exit_code: int = 0) -> Path:
        script = bin_dir / name
        script.write_text(
            FAKE_PACKAGE_MANAGER.format(name=name, bin_dir=bin_dir, exit_code=exit_code)
        )
        make_executable(script)
        return bin_dir

    return _install
