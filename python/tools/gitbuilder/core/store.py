#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Persistent per-target state the core reads from and reports back to.

The core never keeps process-wide state of its own; everything that must
outlive a build attempt goes through a BuildStore.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from .errors import ConfigurationError
from .models import BuildConfig, BuildJob, JobState


@dataclass
class TargetRecord:
    """Everything persisted about one target."""

    repo_id: str
    name: str = ""
    url: str = ""
    build_type: str = ""
    build_file_path: Optional[Path] = None
    binary_path: Optional[Path] = None
    last_built: Optional[str] = None
    build_success: Optional[bool] = None
    last_log_path: Optional[Path] = None
    config: BuildConfig = field(default_factory=BuildConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_id": self.repo_id,
            "name": self.name,
            "url": self.url,
            "build_type": self.build_type,
            "build_file_path": str(self.build_file_path) if self.build_file_path else None,
            "binary_path": str(self.binary_path) if self.binary_path else None,
            "last_built": self.last_built,
            "build_success": self.build_success,
            "last_log_path": str(self.last_log_path) if self.last_log_path else None,
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TargetRecord:
        def _path(key: str) -> Optional[Path]:
            value = data.get(key)
            return Path(value) if value else None

        return cls(
            repo_id=str(data["repo_id"]),
            name=data.get("name") or "",
            url=data.get("url") or "",
            build_type=data.get("build_type") or "",
            build_file_path=_path("build_file_path"),
            binary_path=_path("binary_path"),
            last_built=data.get("last_built"),
            build_success=data.get("build_success"),
            last_log_path=_path("last_log_path"),
            config=BuildConfig.from_dict(data.get("config") or {}),
        )


_CONFIG_FIELDS = ("configure_flags", "make_flags", "cmake_flags", "dependencies")


class BuildStore(ABC):
    """Narrow data-store interface: read config, write binary path, write job outcome."""

    @abstractmethod
    def load_target(self, repo_id: str) -> Optional[TargetRecord]:
        """Return the stored record or None."""

    @abstractmethod
    def save_target(self, record: TargetRecord) -> None:
        """Persist a record, replacing any previous one with the same id."""

    def get_target(self, repo_id: str) -> TargetRecord:
        """Return the stored record, or a fresh empty one (not yet saved)."""
        return self.load_target(str(repo_id)) or TargetRecord(repo_id=str(repo_id))

    def get_config(self, repo_id: str) -> BuildConfig:
        return self.get_target(repo_id).config

    def update_config(self, repo_id: str, **fields: Any) -> BuildConfig:
        unknown = set(fields) - set(_CONFIG_FIELDS)
        if unknown:
            raise ConfigurationError(
                f"Unknown build config field(s): {', '.join(sorted(unknown))}",
                invalid_option=sorted(unknown)[0],
            )
        record = self.get_target(repo_id)
        for key, value in fields.items():
            if key == "dependencies":
                value = set(value)
            setattr(record.config, key, value)
        self.save_target(record)
        logger.debug(f"Updated build config for {repo_id}: {sorted(fields)}")
        return record.config

    def set_build_type(self, repo_id: str, build_type: str) -> None:
        record = self.get_target(repo_id)
        record.build_type = build_type
        self.save_target(record)

    def set_build_file(self, repo_id: str, path: Optional[Union[str, Path]]) -> None:
        record = self.get_target(repo_id)
        record.build_file_path = Path(path) if path else None
        self.save_target(record)

    def set_binary_path(self, repo_id: str, path: Union[str, Path]) -> None:
        if not str(path):
            raise ConfigurationError(
                f"Refusing to register an empty binary path for {repo_id}"
            )
        record = self.get_target(repo_id)
        record.binary_path = Path(path)
        self.save_target(record)
        logger.info(f"Registered binary for {repo_id}: {path}")

    def record_job_outcome(self, repo_id: str, job: BuildJob) -> None:
        record = self.get_target(repo_id)
        record.build_type = job.descriptor.kind.value
        record.build_success = job.state is JobState.SUCCEEDED
        record.last_built = datetime.now().isoformat(timespec="seconds")
        record.last_log_path = job.log_path
        self.save_target(record)


class MemoryBuildStore(BuildStore):
    """Store kept in a dict; used by tests and one-shot CLI runs."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}

    def load_target(self, repo_id: str) -> Optional[TargetRecord]:
        data = self._records.get(str(repo_id))
        return TargetRecord.from_dict(data) if data else None

    def save_target(self, record: TargetRecord) -> None:
        self._records[record.repo_id] = record.to_dict()


class JsonBuildStore(BuildStore):
    """Store persisted as a single JSON document on disk."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._records: Dict[str, Dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._records = {}
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load build store: {e}", config_file=self.path, cause=e
            )
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Build store must be a JSON object", config_file=self.path
            )
        self._records = data.get("targets", {})
        logger.debug(f"Loaded {len(self._records)} target(s) from {self.path}")

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(
                {"targets": self._records}, indent=2, ensure_ascii=False
            )
            self.path.write_text(payload, encoding="utf-8")
        except (OSError, UnicodeEncodeError) as e:
            raise ConfigurationError(
                f"Failed to save build store: {e}", config_file=self.path, cause=e
            )

    def load_target(self, repo_id: str) -> Optional[TargetRecord]:
        data = self._records.get(str(repo_id))
        return TargetRecord.from_dict(data) if data else None

    def save_target(self, record: TargetRecord) -> None:
        self._records[record.repo_id] = record.to_dict()
        self._save()
