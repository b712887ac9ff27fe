#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tool settings: defaults, optional settings file and environment overrides.
"""

from __future__ import annotations

import configparser
import json
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from loguru import logger

from ..core.errors import ConfigurationError, ErrorContext

ENV_PREFIX = "GITBUILDER_"
INI_SECTION = "gitbuilder"
SETTINGS_BASENAME = "gitbuilder"


def _default_data_dir() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")) / "gitbuilder"


@dataclass
class GitBuilderSettings:
    """Knobs of a gitbuilder run."""

    data_dir: Path = field(default_factory=_default_data_dir)
    store_file: Optional[Path] = None
    max_depth: int = 2
    fallback_depth: int = 3
    affinity_depth: int = 3
    poll_interval: float = 1.0
    log_dir_name: str = "logs"
    override_filename: str = "gitbuildfile"
    env_vars: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir).expanduser()
        if self.store_file is not None:
            self.store_file = Path(self.store_file).expanduser()

    @property
    def store_path(self) -> Path:
        """Store document location; relative store files live in the data dir."""
        if self.store_file is None:
            return self.data_dir / "targets.json"
        if self.store_file.is_absolute():
            return self.store_file
        return self.data_dir / self.store_file

    def validate(self) -> List[str]:
        """Return warnings for suspicious values."""
        warnings = []
        if self.max_depth < 1:
            warnings.append(f"max_depth should be at least 1, got {self.max_depth}")
        if self.fallback_depth < self.max_depth:
            warnings.append(
                f"fallback_depth ({self.fallback_depth}) is below max_depth "
                f"({self.max_depth}); the fallback search will never run"
            )
        if self.poll_interval <= 0:
            warnings.append(f"poll_interval must be positive, got {self.poll_interval}")
        return warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "store_file": str(self.store_path),
            "max_depth": self.max_depth,
            "fallback_depth": self.fallback_depth,
            "affinity_depth": self.affinity_depth,
            "poll_interval": self.poll_interval,
            "log_dir_name": self.log_dir_name,
            "override_filename": self.override_filename,
            "env_vars": dict(self.env_vars),
        }


_FIELD_TYPES: Dict[str, type] = {
    "data_dir": Path,
    "store_file": Path,
    "max_depth": int,
    "fallback_depth": int,
    "affinity_depth": int,
    "poll_interval": float,
    "log_dir_name": str,
    "override_filename": str,
    "env_vars": dict,
}


class SettingsLoader:
    """
    Load GitBuilderSettings from JSON, TOML or INI files.

    Values are layered: defaults, then the settings file, then
    ``GITBUILDER_*`` environment variables.
    """

    _SUPPORTED_EXTENSIONS = {
        ".json": "json",
        ".toml": "toml",
        ".ini": "ini",
        ".conf": "ini",
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self.environ = os.environ if environ is None else environ

    def load(
        self,
        config_file: Optional[Union[str, Path]] = None,
        *,
        data_dir: Optional[Union[str, Path]] = None,
    ) -> GitBuilderSettings:
        """
        Build settings for a run.

        Args:
            config_file: Explicit settings file; when omitted a
                ``gitbuilder.{json,toml,ini}`` in the data directory is used if present.
            data_dir: Data directory taking precedence over the default and
                the environment.

        Raises:
            ConfigurationError: If the settings file cannot be read or holds invalid values.
        """
        settings = GitBuilderSettings()
        env_data_dir = self.environ.get(f"{ENV_PREFIX}DATA_DIR")
        if data_dir is not None or env_data_dir:
            settings = replace(settings, data_dir=Path(data_dir or env_data_dir))

        path = Path(config_file) if config_file else self.discover(settings.data_dir)
        if path is not None:
            settings = self._apply(settings, self.load_file(path), path)

        env_values = {
            f.name: self.environ[f"{ENV_PREFIX}{f.name.upper()}"]
            for f in fields(GitBuilderSettings)
            if f.name != "env_vars" and f"{ENV_PREFIX}{f.name.upper()}" in self.environ
        }
        if env_values:
            logger.debug(f"Applying environment overrides: {sorted(env_values)}")
            settings = self._apply(settings, env_values, None)
        if data_dir is not None:
            settings = replace(settings, data_dir=Path(data_dir))

        for warning in settings.validate():
            logger.warning(warning)
        return settings

    def discover(self, directory: Path) -> Optional[Path]:
        for ext in (".json", ".toml", ".ini"):
            candidate = directory / f"{SETTINGS_BASENAME}{ext}"
            if candidate.is_file():
                logger.info(f"Auto-discovered settings file: {candidate}")
                return candidate
        return None

    def load_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """Read a settings file into a plain dictionary."""
        config_path = Path(file_path)
        if not config_path.is_file():
            raise ConfigurationError(
                f"Settings file not found: {config_path}",
                config_file=config_path,
                context=ErrorContext(working_directory=config_path.parent),
            )

        suffix = config_path.suffix.lower()
        if suffix not in self._SUPPORTED_EXTENSIONS:
            supported = ", ".join(self._SUPPORTED_EXTENSIONS)
            raise ConfigurationError(
                f"Unsupported settings file format: {suffix}. Supported formats: {supported}",
                config_file=config_path,
            )

        try:
            content = config_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(
                f"Failed to read settings file: {e}", config_file=config_path, cause=e
            )

        logger.debug(f"Loading settings from {config_path}")
        match self._SUPPORTED_EXTENSIONS[suffix]:
            case "json":
                return self._parse_json(content, config_path)
            case "toml":
                return self._parse_toml(content, config_path)
            case _:
                return self._parse_ini(content, config_path)

    def _parse_json(self, content: str, source: Path) -> Dict[str, Any]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON settings: {e}",
                config_file=source,
                context=ErrorContext(additional_info={"line": e.lineno, "column": e.colno}),
            )
        if not isinstance(data, dict):
            raise ConfigurationError("JSON settings must be an object", config_file=source)
        return data.get(INI_SECTION, data)

    def _parse_toml(self, content: str, source: Path) -> Dict[str, Any]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML settings: {e}", config_file=source)
        return data.get(INI_SECTION, data)

    def _parse_ini(self, content: str, source: Path) -> Dict[str, Any]:
        parser = configparser.ConfigParser()
        parser.optionxform = str
        try:
            parser.read_string(content)
        except configparser.Error as e:
            raise ConfigurationError(f"Invalid INI settings: {e}", config_file=source)
        if INI_SECTION not in parser:
            raise ConfigurationError(
                f"INI settings must contain a [{INI_SECTION}] section", config_file=source
            )
        data: Dict[str, Any] = {
            key.lower(): value for key, value in parser[INI_SECTION].items()
        }
        if parser.has_section("env"):
            data["env_vars"] = dict(parser["env"])
        return data

    def _apply(
        self,
        settings: GitBuilderSettings,
        values: Mapping[str, Any],
        source: Optional[Path],
    ) -> GitBuilderSettings:
        updates: Dict[str, Any] = {}
        for key, raw in values.items():
            expected = _FIELD_TYPES.get(key)
            if expected is None:
                logger.warning(f"Ignoring unknown setting '{key}'")
                continue
            try:
                updates[key] = self._convert(raw, expected)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for {key}: {raw!r} ({e})",
                    config_file=source,
                    invalid_option=key,
                )
        return replace(settings, **updates)

    @staticmethod
    def _convert(value: Any, expected: type) -> Any:
        if expected is dict:
            if not isinstance(value, dict):
                raise TypeError("expected a table of NAME = value pairs")
            return {str(k): str(v) for k, v in value.items()}
        if expected is int and isinstance(value, bool):
            raise TypeError("expected an integer")
        if expected is Path:
            return Path(str(value)).expanduser()
        return expected(value)
