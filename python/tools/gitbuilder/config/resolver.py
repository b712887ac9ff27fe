#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Merge detected, persisted and document-supplied build configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

from loguru import logger

from ..core.models import (
    BuildDescriptor,
    OverrideProposal,
    ResolvedConfig,
    ToolchainKind,
)
from ..core.store import BuildStore, TargetRecord
from ..detection.classifier import Classifier
from .override import OverrideDocument, parse_dependencies

FLAG_FIELDS = ("configure_flags", "make_flags", "cmake_flags")

SOURCE_FORCED = "build-file"
SOURCE_DOCUMENT = "document"
SOURCE_STORE = "store"
SOURCE_DETECTED = "detected"


class ConfigResolver:
    """
    Resolve the effective configuration of one build attempt.

    Priority, highest first: a build file persisted for the target, the
    override document, previously persisted values, detected defaults. Each
    field is merged on its own so a document that only names MAKE_FLAGS
    leaves persisted CMAKE_FLAGS untouched. Resolution never writes to the
    store; document values are surfaced as an OverrideProposal that the
    caller commits after confirmation.
    """

    def __init__(self, store: BuildStore, classifier: Optional[Classifier] = None) -> None:
        self.store = store
        self.classifier = classifier or Classifier()

    def forced_descriptor(
        self, repo_id: str, override: Optional[OverrideDocument] = None
    ) -> Optional[BuildDescriptor]:
        """Descriptor forced by a persisted or document build file, if any."""
        descriptor, _ = self._forced(self.store.get_target(repo_id), override)
        return descriptor

    def _forced(
        self, record: TargetRecord, override: Optional[OverrideDocument]
    ) -> Tuple[Optional[BuildDescriptor], Optional[str]]:
        candidates = (
            (record.build_file_path, SOURCE_FORCED),
            (override.build_file if override else None, SOURCE_DOCUMENT),
        )
        for path, source in candidates:
            if path is None:
                continue
            descriptor = self.classifier.describe_build_file(path)
            if descriptor is not None:
                return descriptor, source
            logger.warning(f"Ignoring unusable build file override: {path}")
        return None, None

    def resolve(
        self,
        repo_id: str,
        descriptor: BuildDescriptor,
        override: Optional[OverrideDocument] = None,
    ) -> ResolvedConfig:
        record = self.store.get_target(repo_id)
        persisted = record.config
        sources: Dict[str, str] = {}

        effective, forced_source = self._forced(record, override)
        if effective is not None:
            sources["descriptor"] = forced_source
        else:
            effective = descriptor
            sources["descriptor"] = SOURCE_DETECTED
            method = ToolchainKind.parse(override.build_method) if override else None
            if override and override.build_method and method is None:
                logger.warning(f"Unknown BUILD_METHOD in override document: {override.build_method}")
            if method is not None and method is not descriptor.kind:
                effective = descriptor.with_kind(method)
                sources["descriptor"] = SOURCE_DOCUMENT

        flags: Dict[str, str] = {}
        for name in FLAG_FIELDS:
            document_value = getattr(override, name) if override else None
            persisted_value = getattr(persisted, name)
            if document_value:
                flags[name], sources[name] = document_value, SOURCE_DOCUMENT
            elif persisted_value:
                flags[name], sources[name] = persisted_value, SOURCE_STORE
            else:
                flags[name], sources[name] = "", SOURCE_DETECTED

        dependencies: FrozenSet[str]
        if override and override.dependencies:
            dependencies = parse_dependencies(override.dependencies)
            sources["dependencies"] = SOURCE_DOCUMENT
        elif persisted.dependencies:
            dependencies = frozenset(persisted.dependencies)
            sources["dependencies"] = SOURCE_STORE
        else:
            dependencies = frozenset()
            sources["dependencies"] = SOURCE_DETECTED

        binary_path: Optional[Path] = None
        if override and override.binary_path:
            binary_path = override.binary_path
            sources["binary_path"] = SOURCE_DOCUMENT
        elif record.binary_path:
            binary_path = record.binary_path
            sources["binary_path"] = SOURCE_STORE

        proposal = self._proposal(record, override) if override else None

        resolved = ResolvedConfig(
            descriptor=effective,
            configure_flags=flags["configure_flags"],
            make_flags=flags["make_flags"],
            cmake_flags=flags["cmake_flags"],
            dependencies=dependencies,
            binary_path=binary_path,
            sources=sources,
            proposal=proposal,
        )
        logger.bind(kind=effective.kind.value, sources=sources).debug(
            f"Resolved configuration for {repo_id}"
        )
        return resolved

    def propose(self, repo_id: str, override: OverrideDocument) -> OverrideProposal:
        """Store updates the document implies, without resolving a descriptor."""
        return self._proposal(self.store.get_target(repo_id), override)

    def _proposal(
        self, record: TargetRecord, override: OverrideDocument
    ) -> OverrideProposal:
        """Fields the document would change in the store."""
        updates: Dict[str, str] = {}
        method = ToolchainKind.parse(override.build_method)
        if method is not None and method.value != record.build_type:
            updates["build_type"] = method.value
        if override.build_file and override.build_file != record.build_file_path:
            updates["build_file_path"] = str(override.build_file)
        if override.binary_path and override.binary_path != record.binary_path:
            updates["binary_path"] = str(override.binary_path)
        for name in FLAG_FIELDS:
            value = getattr(override, name)
            if value and value != getattr(record.config, name):
                updates[name] = value
        if override.dependencies:
            dependencies = parse_dependencies(override.dependencies)
            if dependencies != frozenset(record.config.dependencies):
                updates["dependencies"] = " ".join(sorted(dependencies))
        return OverrideProposal(source=override.source or Path(), updates=updates)

    def commit(self, repo_id: str, proposal: OverrideProposal) -> None:
        """Persist a confirmed proposal."""
        if not proposal:
            return
        updates = dict(proposal.updates)
        config_fields = {
            key: updates.pop(key) for key in (*FLAG_FIELDS, "dependencies") if key in updates
        }
        if "dependencies" in config_fields:
            config_fields["dependencies"] = parse_dependencies(config_fields["dependencies"])
        if config_fields:
            self.store.update_config(repo_id, **config_fields)
        if "build_type" in updates:
            self.store.set_build_type(repo_id, updates.pop("build_type"))
        if "build_file_path" in updates:
            self.store.set_build_file(repo_id, updates.pop("build_file_path"))
        if "binary_path" in updates:
            self.store.set_binary_path(repo_id, updates.pop("binary_path"))
        logger.info(f"Applied override document for {repo_id} from {proposal.source}")
