#!/usr/bin/env python3
"""
Tests for the single-target pipeline, with builds replaced by small
interpreter scripts.
"""

import sys
from pathlib import Path
from typing import List

import pytest

from gitbuilder.core.errors import ClassificationError, DependencyError
from gitbuilder.core.models import ToolchainKind
from gitbuilder.execution.engine import ExecutionEngine
from gitbuilder.execution.steps import BuildStep
from gitbuilder.locator.selection import SelectionResult
from gitbuilder.pipeline import GitBuilder
from gitbuilder.utils.config import GitBuilderSettings

ELF_HEADER = b"\x7fELF\x02\x01\x01" + bytes(9) + b"\x02\x00" + bytes(46)

PRODUCE_BINARY = (
    "import os, pathlib; p = pathlib.Path('zesarux'); "
    f"p.write_bytes({ELF_HEADER!r}); os.chmod(p, 0o755)"
)


class RecordingPlanner:
    def __init__(self, code: str = PRODUCE_BINARY) -> None:
        self.code = code
        self.calls: List[tuple] = []

    def __call__(self, kind, working_dir, config) -> List[BuildStep]:
        self.calls.append((kind, Path(working_dir), config))
        return [BuildStep("build", (sys.executable, "-c", self.code), Path(working_dir))]


@pytest.fixture
def planner() -> RecordingPlanner:
    return RecordingPlanner()


@pytest.fixture
def builder(store, tmp_path: Path, planner) -> GitBuilder:
    settings = GitBuilderSettings(data_dir=tmp_path / "data", poll_interval=0.05)
    engine = ExecutionEngine(poll_interval=0.05, planner=planner)
    return GitBuilder(store, settings, engine=engine)


def test_detect_reports_searched_depth(builder, make_tree):
    root = make_tree({"a/b/c/Makefile": ""})

    with pytest.raises(ClassificationError) as excinfo:
        builder.detect(root)

    assert excinfo.value.depth_searched == 3


def test_prepare_asks_to_choose_between_descriptors(builder, make_tree):
    root = make_tree({"cmake/CMakeLists.txt": "", "make/Makefile": ""})
    offered = []

    def choose(descriptors):
        offered.extend(descriptors)
        return descriptors[1]

    resolved = builder.prepare("repo", root, choose=choose)

    assert [d.kind for d in offered] == [ToolchainKind.CMAKE, ToolchainKind.MAKE]
    assert resolved.descriptor.kind is ToolchainKind.MAKE


def test_prepare_without_choice_raises(builder, make_tree):
    root = make_tree({"cmake/CMakeLists.txt": "", "make/Makefile": ""})

    with pytest.raises(ClassificationError):
        builder.prepare("repo", root, choose=lambda descriptors: None)


def test_confirmed_override_is_persisted(builder, store, make_tree):
    root = make_tree({"Makefile": "", "gitbuildfile": "MAKE_FLAGS=-j8\n"})
    confirmations = []

    def confirm(document, proposal):
        confirmations.append(dict(proposal.updates))
        return True

    resolved = builder.prepare("repo", root, confirm_override=confirm)

    assert confirmations == [{"make_flags": "-j8"}]
    assert resolved.make_flags == "-j8"
    assert store.get_config("repo").make_flags == "-j8"


def test_declined_override_is_ignored(builder, store, make_tree):
    root = make_tree({"Makefile": "", "gitbuildfile": "MAKE_FLAGS=-j8\n"})

    resolved = builder.prepare("repo", root, confirm_override=lambda d, p: False)

    assert resolved.make_flags == ""
    assert store.get_config("repo").make_flags == ""


def test_unconfirmed_override_applies_once(builder, store, make_tree):
    root = make_tree({"Makefile": "", "gitbuildfile": "MAKE_FLAGS=-j8\n"})

    resolved = builder.prepare("repo", root)

    assert resolved.make_flags == "-j8"
    assert store.get_config("repo").make_flags == ""


def test_persisted_build_file_skips_classification(builder, store, make_tree):
    root = make_tree({"CMakeLists.txt": "", "legacy/Makefile": ""})
    store.set_build_file("repo", root / "legacy" / "Makefile")

    def choose(descriptors):
        raise AssertionError("classification should not run")

    resolved = builder.prepare("repo", root, choose=choose)

    assert resolved.descriptor.kind is ToolchainKind.MAKE


def test_build_success_locates_binary(builder, store, make_tree, planner):
    root = make_tree({"Makefile": "all:\n"}, root="zesarux")
    events = []

    outcome = builder.build("zesarux", root, on_progress=events.append)

    assert outcome.succeeded
    assert planner.calls[0][0] is ToolchainKind.MAKE
    assert outcome.candidates[0].path.name == "zesarux"
    assert outcome.candidates[0].exact_match
    record = store.get_target("zesarux")
    assert record.build_success is True
    assert record.build_type == "make"
    assert record.last_log_path == outcome.job.log_path
    assert events[-1].job is outcome.job


def test_build_failure_is_recorded(store, make_tree, tmp_path: Path):
    engine = ExecutionEngine(planner=RecordingPlanner("raise SystemExit(4)"))
    builder = GitBuilder(store, GitBuilderSettings(data_dir=tmp_path), engine=engine)
    root = make_tree({"Makefile": "all:\n"})

    outcome = builder.build("repo", root)

    assert not outcome.succeeded
    assert outcome.job.exit_code == 4
    assert outcome.candidates == []
    assert store.get_target("repo").build_success is False


def test_declined_missing_dependencies_abort(builder, make_tree, planner):
    root = make_tree({"Makefile": "", "gitbuildfile": "DEPENDENCIES=no-such-tool-xyz\n"})
    asked = []

    def confirm_missing(missing):
        asked.append(missing)
        return False

    with pytest.raises(DependencyError):
        builder.build("repo", root, confirm_missing=confirm_missing)

    assert asked == [["no-such-tool-xyz"]]
    assert planner.calls == []


def test_accepted_missing_dependencies_build(builder, make_tree):
    root = make_tree({"Makefile": "", "gitbuildfile": "DEPENDENCIES=no-such-tool-xyz python3\n"})

    outcome = builder.build("repo", root, confirm_missing=lambda missing: True)

    assert outcome.succeeded
    assert "no-such-tool-xyz" in outcome.missing_dependencies


def test_accepted_install_builds_without_asking_to_continue(
    builder, make_tree, fake_package_manager
):
    bin_dir = fake_package_manager("apt-get")
    root = make_tree({"Makefile": "", "gitbuildfile": "DEPENDENCIES=no-such-tool-xyz\n"})
    offered = []

    def confirm_missing(missing):
        raise AssertionError("dependencies were installed")

    outcome = builder.build(
        "repo",
        root,
        install_missing=lambda missing: offered.append(missing) or True,
        confirm_missing=confirm_missing,
    )

    assert offered == [["no-such-tool-xyz"]]
    assert outcome.succeeded
    assert outcome.missing_dependencies == []
    assert "apt-get install -y no-such-tool-xyz" in (bin_dir / "calls.log").read_text()


def test_declined_install_falls_back_to_confirmation(builder, make_tree, fake_package_manager):
    bin_dir = fake_package_manager("apt-get")
    root = make_tree({"Makefile": "", "gitbuildfile": "DEPENDENCIES=no-such-tool-xyz\n"})
    asked = []

    with pytest.raises(DependencyError):
        builder.build(
            "repo",
            root,
            install_missing=lambda missing: False,
            confirm_missing=lambda missing: asked.append(missing) or False,
        )

    assert asked == [["no-such-tool-xyz"]]
    assert not (bin_dir / "calls.log").exists()


def test_known_binary_is_listed_first(builder, make_tree):
    root = make_tree(
        {
            "Makefile": "",
            "gitbuildfile": "BINARY_PATH=dist/launcher\n",
            "dist/launcher*": "#!/bin/sh\n",
        },
        root="zesarux",
    )

    outcome = builder.build("zesarux", root)

    assert [c.path.name for c in outcome.candidates][:2] == ["launcher", "zesarux"]
    assert outcome.candidates[0].tier == 0


def test_register_binary(builder, store, tmp_path: Path):
    path = tmp_path / "bin" / "app"

    assert builder.register_binary("repo", SelectionResult(path=path)) == path
    assert store.get_target("repo").binary_path == path


def test_aborted_selection_registers_nothing(builder, store):
    assert builder.register_binary("repo", SelectionResult(aborted=True)) is None
    assert builder.register_binary("repo", "") is None
    assert store.get_target("repo").binary_path is None
