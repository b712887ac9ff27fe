#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exception hierarchy for the build orchestration core with structured error context.
"""

from __future__ import annotations

import traceback
from pathlib import Path
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field

from loguru import logger


@dataclass(frozen=True)
class ErrorContext:
    """Context information attached to every gitbuilder error."""

    command: Optional[str] = None
    exit_code: Optional[int] = None
    working_directory: Optional[Path] = None
    log_path: Optional[Path] = None
    step: Optional[str] = None
    toolchain: Optional[str] = None
    environment_vars: Dict[str, str] = field(default_factory=dict)
    execution_time: Optional[float] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for structured logging."""
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "working_directory": (
                str(self.working_directory) if self.working_directory else None
            ),
            "log_path": str(self.log_path) if self.log_path else None,
            "step": self.step,
            "toolchain": self.toolchain,
            "environment_vars": self.environment_vars,
            "execution_time": self.execution_time,
            "additional_info": self.additional_info,
        }


class GitBuilderError(Exception):
    """
    Base exception for gitbuilder errors.

    Carries an ErrorContext so that the immediate caller knows which step,
    which toolchain and which log file the failure relates to.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.cause = cause
        self.recoverable = recoverable
        self.traceback_str = traceback.format_exc() if cause else None

        logger.bind(
            error_context=self.context.to_dict(),
            recoverable=self.recoverable,
            original_cause=str(cause) if cause else None,
        ).error(f"{self.__class__.__name__}: {message}")

    def __str__(self) -> str:
        base_msg = super().__str__()

        if self.context.toolchain:
            base_msg += f"\nToolchain: {self.context.toolchain}"

        if self.context.step:
            base_msg += f"\nStep: {self.context.step}"

        if self.context.command:
            base_msg += f"\nCommand: {self.context.command}"

        if self.context.exit_code is not None:
            base_msg += f"\nExit Code: {self.context.exit_code}"

        if self.context.log_path:
            base_msg += f"\nLog: {self.context.log_path}"

        if self.cause:
            base_msg += f"\nCaused by: {self.cause}"

        return base_msg


def _merge_info(kwargs: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    """Fold subclass-specific details into the context's additional_info."""
    additional_info = kwargs.pop("additional_info", {})
    additional_info.update({k: v for k, v in extra.items() if v is not None})
    context = kwargs.get("context") or ErrorContext()
    context.additional_info.update(additional_info)
    kwargs["context"] = context
    return kwargs


class ClassificationError(GitBuilderError):
    """No recognizable build signature was found in a tree."""

    def __init__(
        self,
        message: str,
        *,
        root_dir: Optional[Union[str, Path]] = None,
        depth_searched: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.root_dir = Path(root_dir) if root_dir else None
        self.depth_searched = depth_searched
        kwargs = _merge_info(
            kwargs,
            {
                "root_dir": str(root_dir) if root_dir else None,
                "depth_searched": depth_searched,
            },
        )
        super().__init__(message, **kwargs)


class ConfigurationError(GitBuilderError):
    """Settings or persisted configuration could not be used."""

    def __init__(
        self,
        message: str,
        *,
        config_file: Optional[Union[str, Path]] = None,
        invalid_option: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        kwargs = _merge_info(
            kwargs,
            {
                "config_file": str(config_file) if config_file else None,
                "invalid_option": invalid_option,
            },
        )
        super().__init__(message, **kwargs)


class DispatchError(GitBuilderError):
    """A job could not be started (missing or unreadable working directory)."""


class JobConflictError(DispatchError):
    """A job for the same target is already running."""

    def __init__(self, message: str, *, repo_id: str, **kwargs: Any) -> None:
        self.repo_id = repo_id
        super().__init__(message, **_merge_info(kwargs, {"repo_id": repo_id}))


class JobStateError(GitBuilderError):
    """An illegal BuildJob state transition was attempted."""

    def __init__(self, message: str, *, job_id: Optional[str] = None, **kwargs: Any) -> None:
        self.job_id = job_id
        super().__init__(message, **_merge_info(kwargs, {"job_id": job_id}))


class BuildError(GitBuilderError):
    """A toolchain step exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        toolchain: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context") or ErrorContext()
        kwargs["context"] = ErrorContext(
            command=context.command,
            exit_code=context.exit_code,
            working_directory=context.working_directory,
            log_path=context.log_path,
            step=step or context.step,
            toolchain=toolchain or context.toolchain,
            environment_vars=context.environment_vars,
            execution_time=context.execution_time,
            additional_info=dict(context.additional_info),
        )
        self.step = kwargs["context"].step
        self.toolchain = kwargs["context"].toolchain
        super().__init__(message, **kwargs)


class DependencyError(GitBuilderError):
    """Declared build dependencies are missing or could not be installed."""

    def __init__(
        self,
        message: str,
        *,
        missing_dependency: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.missing_dependency = missing_dependency
        super().__init__(
            message, **_merge_info(kwargs, {"missing_dependency": missing_dependency})
        )


def handle_build_error(
    func_name: str,
    error: Exception,
    *,
    context: Optional[ErrorContext] = None,
    recoverable: bool = False,
) -> GitBuilderError:
    """
    Convert generic exceptions to GitBuilderError with context.

    Args:
        func_name: Name of the function where error occurred
        error: The original exception
        context: Error context information
        recoverable: Whether the error is recoverable

    Returns:
        GitBuilderError with enhanced context
    """
    if isinstance(error, GitBuilderError):
        return error

    message = f"Error in {func_name}: {error}"

    if isinstance(error, FileNotFoundError):
        return DependencyError(
            message,
            context=context,
            cause=error,
            recoverable=recoverable,
            missing_dependency=str(error.filename) if error.filename else None,
        )
    if isinstance(error, PermissionError):
        return DispatchError(
            message, context=context, cause=error, recoverable=recoverable
        )
    return GitBuilderError(
        message, context=context, cause=error, recoverable=recoverable
    )
