#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Single-target build pipeline: classify, resolve, execute, locate.

All interaction with the user happens through callbacks so the same
pipeline serves the command line and unattended callers.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from loguru import logger

from .config.override import OverrideDocument, load_override_document
from .config.resolver import ConfigResolver
from .core.errors import ClassificationError, DependencyError, ErrorContext
from .core.models import (
    BinaryCandidate,
    BuildDescriptor,
    BuildJob,
    OverrideProposal,
    PathRelocation,
    ProgressEvent,
    ResolvedConfig,
)
from .core.store import BuildStore, JsonBuildStore
from .detection.classifier import Classifier
from .execution.engine import ExecutionEngine
from .execution.preflight import find_missing_dependencies, install_dependencies
from .locator.binary import BinaryLocator, name_affinity
from .locator.selection import SelectionResult
from .utils.config import GitBuilderSettings

ChooseDescriptor = Callable[[Sequence[BuildDescriptor]], Optional[BuildDescriptor]]
ConfirmOverride = Callable[[OverrideDocument, OverrideProposal], bool]
ConfirmMissing = Callable[[List[str]], bool]
InstallMissing = Callable[[List[str]], bool]
ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class BuildOutcome:
    """Result of one pipeline run."""

    job: BuildJob
    resolved: ResolvedConfig
    candidates: List[BinaryCandidate] = field(default_factory=list)
    missing_dependencies: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.job.succeeded


class GitBuilder:
    """
    Drive one source tree from detection to a registered binary.

    Args:
        store: Persistent target state; defaults to the JSON store named by the settings.
        settings: Tool settings.
        engine: Execution engine; built from the settings when omitted.
        locator: Binary locator; built from the settings when omitted.
    """

    def __init__(
        self,
        store: Optional[BuildStore] = None,
        settings: Optional[GitBuilderSettings] = None,
        *,
        engine: Optional[ExecutionEngine] = None,
        locator: Optional[BinaryLocator] = None,
    ) -> None:
        self.settings = settings or GitBuilderSettings()
        self.store = store or JsonBuildStore(self.settings.store_path)
        self.classifier = Classifier(fallback_depth=self.settings.fallback_depth)
        self.resolver = ConfigResolver(self.store, self.classifier)
        self.engine = engine or ExecutionEngine(
            poll_interval=self.settings.poll_interval,
            log_dir_name=self.settings.log_dir_name,
            env_vars=self.settings.env_vars,
        )
        self.locator = locator or BinaryLocator(
            affinity_depth=self.settings.affinity_depth
        )

    def detect(self, source_dir: Union[str, Path]) -> List[BuildDescriptor]:
        """Classify a tree; raise ClassificationError naming the depth searched when empty."""
        root = Path(source_dir)
        descriptors = self.classifier.classify(root, self.settings.max_depth)
        if not descriptors:
            depth = self.classifier.last_depth
            raise ClassificationError(
                f"Could not detect a build method in {root} "
                f"(searched to depth {depth})",
                root_dir=root,
                depth_searched=depth,
            )
        return descriptors

    def load_override(self, source_dir: Union[str, Path]) -> Optional[OverrideDocument]:
        document = load_override_document(source_dir, self.settings.override_filename)
        if document is not None and document.is_empty():
            logger.debug(f"Override document {document.source} sets nothing")
            return None
        return document

    def prepare(
        self,
        repo_id: str,
        source_dir: Union[str, Path],
        *,
        choose: Optional[ChooseDescriptor] = None,
        confirm_override: Optional[ConfirmOverride] = None,
    ) -> ResolvedConfig:
        """
        Resolve the configuration of the next build attempt.

        A confirmed override document is committed to the store before
        resolution; a declined one is ignored for this attempt. Without a
        ``confirm_override`` callback the document applies to this attempt
        only. Without ``choose`` the first detected descriptor is used.
        """
        override = self.load_override(source_dir)
        if override is not None and confirm_override is not None:
            proposal = self.resolver.propose(repo_id, override)
            if proposal:
                if confirm_override(override, proposal):
                    self.resolver.commit(repo_id, proposal)
                else:
                    logger.info(f"Ignoring override document {override.source}")
                    override = None

        descriptor = self.resolver.forced_descriptor(repo_id, override)
        if descriptor is None:
            descriptors = self.detect(source_dir)
            if len(descriptors) == 1 or choose is None:
                descriptor = descriptors[0]
            else:
                descriptor = choose(descriptors)
            if descriptor is None:
                raise ClassificationError(
                    f"No build method selected for {source_dir}",
                    root_dir=source_dir,
                    depth_searched=self.classifier.last_depth,
                )
        else:
            logger.info(f"Using build file override: {descriptor.source_file}")

        return self.resolver.resolve(repo_id, descriptor, override)

    async def build_async(
        self,
        repo_id: str,
        source_dir: Union[str, Path],
        *,
        target_name: Optional[str] = None,
        choose: Optional[ChooseDescriptor] = None,
        confirm_override: Optional[ConfirmOverride] = None,
        install_missing: Optional[InstallMissing] = None,
        confirm_missing: Optional[ConfirmMissing] = None,
        on_progress: Optional[ProgressCallback] = None,
        relocation: Optional[PathRelocation] = None,
    ) -> BuildOutcome:
        """
        Run a full build attempt and return its outcome.

        Missing dependencies are first offered to ``install_missing``; when it
        accepts they are installed with the system package manager and checked
        again. Whatever is still missing goes to ``confirm_missing``.

        Raises:
            ClassificationError: Nothing buildable was detected.
            DependencyError: Installing dependencies failed, or they are missing
                and ``confirm_missing`` declined.
            DispatchError: The working directory is unusable or a build is already running.
        """
        source = Path(source_dir)
        resolved = self.prepare(
            repo_id, source, choose=choose, confirm_override=confirm_override
        )

        missing = await find_missing_dependencies(resolved.dependencies)
        if missing and install_missing is not None and install_missing(missing):
            await install_dependencies(missing)
            missing = await find_missing_dependencies(resolved.dependencies)
        if missing:
            if confirm_missing is not None and not confirm_missing(missing):
                raise DependencyError(
                    f"Missing dependencies for {repo_id}: {', '.join(missing)}",
                    missing_dependency=missing[0],
                    context=ErrorContext(
                        working_directory=resolved.descriptor.working_dir,
                        additional_info={"missing": missing},
                    ),
                )
            logger.warning(f"Building {repo_id} despite missing dependencies: {missing}")

        name = target_name or self.store.get_target(repo_id).name or source.resolve().name
        job = await self.engine.execute_async(
            resolved.descriptor,
            resolved,
            repo_id,
            target_name=name,
            on_progress=on_progress,
            relocation=relocation,
        )
        self.store.record_job_outcome(repo_id, job)

        candidates: List[BinaryCandidate] = []
        if job.succeeded:
            search_root = relocation.apply(source) if relocation else source
            candidates = self.candidates(search_root, name, resolved.binary_path)

        return BuildOutcome(
            job=job,
            resolved=resolved,
            candidates=candidates,
            missing_dependencies=missing,
        )

    def build(self, repo_id: str, source_dir: Union[str, Path], **kwargs) -> BuildOutcome:
        """Blocking wrapper around build_async."""
        return asyncio.run(self.build_async(repo_id, source_dir, **kwargs))

    def candidates(
        self,
        search_root: Union[str, Path],
        target_name: str,
        known_binary: Optional[Path] = None,
    ) -> List[BinaryCandidate]:
        """Located binaries, with an already known binary path listed first."""
        located = self.locator.locate(search_root, target_name)
        if known_binary is None or not known_binary.is_file():
            return located
        matches, exact = name_affinity(known_binary.name, target_name)
        known = BinaryCandidate(
            path=known_binary,
            is_executable=os.access(known_binary, os.X_OK),
            matches_target_name=matches,
            exact_match=exact,
            tier=0,
        )
        return [known] + [c for c in located if c.path.resolve() != known_binary.resolve()]

    def register_binary(
        self, repo_id: str, selection: Union[SelectionResult, str, Path]
    ) -> Optional[Path]:
        """Persist the chosen artifact; an aborted or empty selection registers nothing."""
        if isinstance(selection, SelectionResult):
            path = selection.path if selection.selected else None
        else:
            path = Path(selection) if str(selection).strip() else None
        if path is None or path == Path("."):
            logger.info(f"No binary registered for {repo_id}")
            return None
        self.store.set_binary_path(repo_id, path)
        return path
