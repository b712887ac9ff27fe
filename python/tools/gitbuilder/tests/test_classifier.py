#!/usr/bin/env python3
"""
Tests for build-system detection.
"""

from pathlib import Path

import pytest

from gitbuilder.core.models import ToolchainKind
from gitbuilder.detection.classifier import Classifier, RootSignature


@pytest.fixture
def classifier() -> Classifier:
    return Classifier()


def kinds(descriptors):
    return [d.kind for d in descriptors]


def test_single_cmake_project(make_tree, classifier):
    root = make_tree({"CMakeLists.txt": "project(x)\n"})

    result = classifier.classify(root)

    assert kinds(result) == [ToolchainKind.CMAKE]
    assert result[0].working_dir == root.resolve()
    assert result[0].source_file == root.resolve() / "CMakeLists.txt"


def test_cmake_demotes_makefile(make_tree, classifier):
    root = make_tree({"CMakeLists.txt": "", "Makefile": "all:\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.CMAKE]


def test_autogen_pair_at_root_short_circuits(make_tree, classifier):
    root = make_tree(
        {
            "autogen.sh*": "#!/bin/sh\n",
            "configure.ac": "AC_INIT\n",
            "configure*": "#!/bin/sh\n",
            "Makefile": "all:\n",
            "sub/CMakeLists.txt": "",
        }
    )

    result = classifier.classify(root)

    assert kinds(result) == [ToolchainKind.AUTOGEN]
    assert result[0].source_file.name == "autogen.sh"


def test_autogen_accepts_configure_in(make_tree, classifier):
    root = make_tree({"autogen.sh": "", "configure.in": ""})

    assert kinds(classifier.classify(root)) == [ToolchainKind.AUTOGEN]


def test_autogen_without_autoconf_input_is_ignored(make_tree, classifier):
    root = make_tree({"autogen.sh*": "#!/bin/sh\n", "Makefile": "all:\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.MAKE]


def test_executable_configure_demotes_makefile(make_tree, classifier):
    root = make_tree({"configure*": "#!/bin/sh\n", "Makefile": "all:\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.AUTOTOOLS]


def test_bash_configure_is_custom(make_tree, classifier):
    root = make_tree({"configure*": "#!/usr/bin/env bash\necho hi\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.CUSTOM_CONFIGURE]


def test_non_executable_configure_is_not_usable(make_tree, classifier):
    root = make_tree({"configure": "#!/bin/sh\n", "Makefile": "all:\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.MAKE]


def test_lowercase_makefile(make_tree, classifier):
    root = make_tree({"makefile": "all:\n"})

    assert kinds(classifier.classify(root)) == [ToolchainKind.MAKE]


def test_single_purpose_files_are_all_reported(make_tree, classifier):
    root = make_tree(
        {
            "setup.py": "",
            "package.json": "{}",
            "meson.build": "",
            "pom.xml": "",
            "build.gradle.kts": "",
        }
    )

    assert set(kinds(classifier.classify(root))) == {
        ToolchainKind.PYTHON,
        ToolchainKind.NODE,
        ToolchainKind.MESON,
        ToolchainKind.MAVEN,
        ToolchainKind.GRADLE,
    }


def test_multiple_directories_in_walk_order(make_tree, classifier):
    root = make_tree(
        {
            "b/Makefile": "all:\n",
            "a/CMakeLists.txt": "",
            "setup.py": "",
        }
    )

    result = classifier.classify(root)

    assert [(d.kind, d.working_dir.name) for d in result] == [
        (ToolchainKind.PYTHON, root.name),
        (ToolchainKind.CMAKE, "a"),
        (ToolchainKind.MAKE, "b"),
    ]


def test_classification_is_deterministic(make_tree, classifier):
    root = make_tree(
        {"z/Makefile": "", "m/CMakeLists.txt": "", "a/package.json": "{}"}
    )

    assert classifier.classify(root) == classifier.classify(root)


def test_deeper_files_found_by_fallback(make_tree, classifier):
    root = make_tree({"a/b/CMakeLists.txt": ""})

    result = classifier.classify(root)

    assert kinds(result) == [ToolchainKind.CMAKE]
    assert classifier.last_depth == 3


def test_too_deep_returns_empty(make_tree, classifier):
    root = make_tree({"a/b/c/CMakeLists.txt": "", "README": "hello"})

    assert classifier.classify(root) == []
    assert classifier.last_depth == 3


def test_empty_tree_returns_empty(tmp_path, classifier):
    assert classifier.classify(tmp_path) == []


def test_missing_directory_returns_empty(tmp_path, classifier):
    assert classifier.classify(tmp_path / "nope") == []


def test_vcs_directories_are_skipped(make_tree, classifier):
    root = make_tree({".git/Makefile": "", "src/CMakeLists.txt": ""})

    assert kinds(classifier.classify(root)) == [ToolchainKind.CMAKE]


def test_mame_root_signature(make_tree, classifier):
    root = make_tree(
        {
            "makefile": "# MAMEMESS build\nall:\n",
            "CMakeLists.txt": "",
            "src/setup.py": "",
        }
    )

    result = classifier.classify(root)

    assert kinds(result) == [ToolchainKind.MAKE]
    assert result[0].description == "MAME build system"


def test_custom_root_signature(make_tree):
    signature = RootSignature(
        name="custom",
        build_file="build.sh",
        marker="CUSTOM-TREE",
        kind=ToolchainKind.CUSTOM_CONFIGURE,
        description="Custom tree",
    )
    root = make_tree({"build.sh": "echo CUSTOM-TREE\n", "Makefile": ""})

    result = Classifier(root_signatures=(signature,)).classify(root)

    assert kinds(result) == [ToolchainKind.CUSTOM_CONFIGURE]


def test_describe_build_file_skips_demotion(make_tree, classifier):
    root = make_tree({"CMakeLists.txt": "", "Makefile": "all:\n"})

    descriptor = classifier.describe_build_file(root / "Makefile")

    assert descriptor.kind is ToolchainKind.MAKE
    assert descriptor.working_dir == root.resolve()


def test_describe_unknown_build_file(make_tree, classifier):
    root = make_tree({"README": ""})

    assert classifier.describe_build_file(root / "README") is None
    assert classifier.describe_build_file(root / "missing.txt") is None
