#!/usr/bin/env python3
"""
Tests for settings loading.
"""

import json
from pathlib import Path

import pytest

from gitbuilder.core.errors import ConfigurationError
from gitbuilder.utils.config import GitBuilderSettings, SettingsLoader

pytestmark = pytest.mark.usefixtures("isolated_env")


def test_defaults(tmp_path: Path):
    settings = SettingsLoader(environ={}).load(data_dir=tmp_path)

    assert settings.data_dir == tmp_path
    assert settings.store_path == tmp_path / "targets.json"
    assert settings.max_depth == 2
    assert settings.fallback_depth == 3
    assert settings.poll_interval == 1.0
    assert settings.override_filename == "gitbuildfile"


def test_json_file(tmp_path: Path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"max_depth": 4, "env_vars": {"CC": "clang"}}))

    settings = SettingsLoader(environ={}).load(path, data_dir=tmp_path)

    assert settings.max_depth == 4
    assert settings.env_vars == {"CC": "clang"}


def test_toml_file_with_section(tmp_path: Path):
    path = tmp_path / "settings.toml"
    path.write_text(
        '[gitbuilder]\npoll_interval = 0.5\nstore_file = "db.json"\n'
        '[gitbuilder.env_vars]\nMAKEFLAGS = "-j4"\n'
    )

    settings = SettingsLoader(environ={}).load(path, data_dir=tmp_path)

    assert settings.poll_interval == 0.5
    assert settings.store_path == tmp_path / "db.json"
    assert settings.env_vars == {"MAKEFLAGS": "-j4"}


def test_ini_file(tmp_path: Path):
    path = tmp_path / "settings.ini"
    path.write_text(
        "[gitbuilder]\naffinity_depth = 5\nlog_dir_name = buildlogs\n"
        "[env]\nCFLAGS = -O2\n"
    )

    settings = SettingsLoader(environ={}).load(path, data_dir=tmp_path)

    assert settings.affinity_depth == 5
    assert settings.log_dir_name == "buildlogs"
    assert settings.env_vars == {"CFLAGS": "-O2"}


def test_ini_without_section_is_rejected(tmp_path: Path):
    path = tmp_path / "settings.ini"
    path.write_text("[other]\nx = 1\n")

    with pytest.raises(ConfigurationError):
        SettingsLoader(environ={}).load(path)


def test_auto_discovery_in_data_dir(tmp_path: Path):
    (tmp_path / "gitbuilder.toml").write_text("max_depth = 1\n")

    settings = SettingsLoader(environ={}).load(data_dir=tmp_path)

    assert settings.max_depth == 1


def test_environment_overrides_file(tmp_path: Path):
    (tmp_path / "gitbuilder.json").write_text(json.dumps({"max_depth": 4}))
    environ = {"GITBUILDER_MAX_DEPTH": "6", "GITBUILDER_POLL_INTERVAL": "0.25"}

    settings = SettingsLoader(environ=environ).load(data_dir=tmp_path)

    assert settings.max_depth == 6
    assert settings.poll_interval == 0.25


def test_environment_data_dir(tmp_path: Path):
    settings = SettingsLoader(environ={"GITBUILDER_DATA_DIR": str(tmp_path)}).load()

    assert settings.data_dir == tmp_path


def test_invalid_value_names_the_option(tmp_path: Path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"max_depth": "deep"}))

    with pytest.raises(ConfigurationError) as excinfo:
        SettingsLoader(environ={}).load(path, data_dir=tmp_path)

    assert excinfo.value.context.additional_info["invalid_option"] == "max_depth"


@pytest.mark.parametrize(
    "name, content",
    [
        ("bad.json", "{oops"),
        ("bad.toml", "max_depth = = 2"),
        ("bad.yaml", "max_depth: 2"),
        ("missing.json", None),
    ],
)
def test_broken_files_raise(tmp_path: Path, name, content):
    path = tmp_path / name
    if content is not None:
        path.write_text(content)

    with pytest.raises(ConfigurationError):
        SettingsLoader(environ={}).load(path, data_dir=tmp_path)


def test_validate_warns_about_unreachable_fallback():
    settings = GitBuilderSettings(max_depth=4, fallback_depth=3)

    assert any("fallback_depth" in warning for warning in settings.validate())
