#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Supervised execution of a resolved build descriptor.

A job runs its toolchain's steps one after another as child processes,
all output appended to the job's log file. While a step runs the engine
wakes up every ``poll_interval`` seconds to emit a heartbeat event.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from datetime import datetime
from pathlib import Path
from typing import (
    AsyncIterator,
    BinaryIO,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import aiofiles
from loguru import logger

from ..core.errors import (
    DispatchError,
    ErrorContext,
    JobConflictError,
    handle_build_error,
)
from ..core.models import (
    BuildDescriptor,
    BuildJob,
    PathRelocation,
    ProgressEvent,
    ProgressKind,
    ToolchainKind,
)
from .overrides import DEFAULT_OVERRIDES, SequenceOverride, find_override
from .steps import BuildStep, FlagSource, plan_steps

DEFAULT_POLL_INTERVAL = 1.0
LOG_DIR_NAME = "logs"

EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126

ProgressCallback = Callable[[ProgressEvent], None]
Planner = Callable[[ToolchainKind, Path, FlagSource], List[BuildStep]]


class ExecutionEngine:
    """
    Run one build job at a time per target and report on it.

    Attributes:
        poll_interval: Seconds between heartbeat events.
        log_dir: Fixed directory for job logs; defaults to ``<working_dir>/logs``.
        env_vars: Extra environment variables for every step.
        planner: Maps a toolchain kind to its ordered steps.
        overrides: Per-project sequence exceptions.
    """

    def __init__(
        self,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        log_dir: Optional[Union[str, Path]] = None,
        log_dir_name: str = LOG_DIR_NAME,
        env_vars: Optional[Dict[str, str]] = None,
        planner: Planner = plan_steps,
        overrides: Sequence[SequenceOverride] = DEFAULT_OVERRIDES,
    ) -> None:
        self.poll_interval = poll_interval
        self.log_dir = Path(log_dir) if log_dir else None
        self.log_dir_name = log_dir_name
        self.env_vars = env_vars or {}
        self.planner = planner
        self.overrides = tuple(overrides)
        self._active: Set[str] = set()

    def plan(
        self,
        descriptor: BuildDescriptor,
        config: FlagSource,
        target_name: Optional[str] = None,
    ) -> Tuple[ToolchainKind, List[BuildStep]]:
        """Toolchain kind actually used and its steps, after per-project exceptions."""
        kind = descriptor.kind
        special = find_override(self.overrides, target_name, descriptor)
        if special is not None:
            logger.info(f"Using special build sequence '{special.name}': {special.description}")
            kind = special.sequence
        return kind, self.planner(kind, descriptor.working_dir, config)

    def execute(
        self,
        descriptor: BuildDescriptor,
        config: FlagSource,
        repo_id: str,
        *,
        target_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        relocation: Optional[PathRelocation] = None,
    ) -> BuildJob:
        """Blocking entry point; returns the job in a terminal state."""
        return asyncio.run(
            self.execute_async(
                descriptor,
                config,
                repo_id,
                target_name=target_name,
                on_progress=on_progress,
                relocation=relocation,
            )
        )

    async def execute_async(
        self,
        descriptor: BuildDescriptor,
        config: FlagSource,
        repo_id: str,
        *,
        target_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        relocation: Optional[PathRelocation] = None,
    ) -> BuildJob:
        descriptor = descriptor.relocated(relocation)
        self._validate_working_dir(descriptor)
        if repo_id in self._active:
            raise JobConflictError(
                f"A build for {repo_id} is already running",
                repo_id=repo_id,
                context=ErrorContext(working_directory=descriptor.working_dir),
            )

        kind, steps = self.plan(descriptor, config, target_name)
        job = BuildJob(
            repo_id=repo_id,
            descriptor=descriptor,
            log_path=self._create_log(descriptor),
        )

        self._active.add(repo_id)
        try:
            job.start()
            logger.bind(job_id=job.job_id, log_path=str(job.log_path)).info(
                f"Building {repo_id} with {kind.value}"
            )
            await self._supervise(job, kind, steps, on_progress or (lambda event: None))
        finally:
            self._active.discard(repo_id)

        if job.succeeded:
            logger.success(f"Build of {repo_id} completed in {job.duration:.1f}s")
        else:
            logger.error(
                f"Build of {repo_id} failed at step '{job.failed_step}' "
                f"(exit code {job.exit_code}), log: {job.log_path}"
            )
        return job

    async def stream(
        self,
        descriptor: BuildDescriptor,
        config: FlagSource,
        repo_id: str,
        **kwargs,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Run a job and yield its progress events, ending with COMPLETED.

        An ``on_progress`` callback passed here still receives every event.
        """
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        callback: Optional[ProgressCallback] = kwargs.pop("on_progress", None)

        def forward(event: ProgressEvent) -> None:
            queue.put_nowait(event)
            if callback is not None:
                callback(event)

        task = asyncio.create_task(
            self.execute_async(descriptor, config, repo_id, on_progress=forward, **kwargs)
        )
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if not getter.done():
                    getter.cancel()
                    while not queue.empty():
                        yield queue.get_nowait()
                    task.result()
                    return
                event = getter.result()
                yield event
                if event.kind is ProgressKind.COMPLETED:
                    await task
                    return
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _validate_working_dir(self, descriptor: BuildDescriptor) -> None:
        working_dir = descriptor.working_dir
        if not working_dir.is_dir():
            raise DispatchError(
                f"Working directory does not exist: {working_dir}",
                context=ErrorContext(
                    working_directory=working_dir, toolchain=descriptor.kind.value
                ),
            )
        if not os.access(working_dir, os.R_OK | os.X_OK):
            raise DispatchError(
                f"Working directory is not readable: {working_dir}",
                context=ErrorContext(
                    working_directory=working_dir, toolchain=descriptor.kind.value
                ),
            )

    def _create_log(self, descriptor: BuildDescriptor) -> Path:
        log_dir = self.log_dir or descriptor.working_dir / self.log_dir_name
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = log_dir / f"build_{stamp}.log"
        counter = 1
        while path.exists():
            path = log_dir / f"build_{stamp}_{counter}.log"
            counter += 1
        path.touch()
        return path

    async def _supervise(
        self,
        job: BuildJob,
        kind: ToolchainKind,
        steps: List[BuildStep],
        emit: ProgressCallback,
    ) -> None:
        current: Dict[str, Optional[str]] = {"step": None}

        with open(job.log_path, "ab", buffering=0) as log:
            runner = asyncio.create_task(self._run_steps(job, steps, log, emit, current))
            ticks = 0
            try:
                while True:
                    done, _ = await asyncio.wait({runner}, timeout=self.poll_interval)
                    if done:
                        break
                    ticks += 1
                    emit(
                        ProgressEvent(
                            ProgressKind.HEARTBEAT,
                            job.job_id,
                            step=current["step"],
                            ticks=ticks,
                            elapsed=job.duration or 0.0,
                        )
                    )
            except asyncio.CancelledError:
                runner.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await runner
                logger.warning(
                    f"Build of {job.repo_id} interrupted during '{current['step']}', "
                    f"log is incomplete: {job.log_path}"
                )
                raise

            try:
                failed_step, exit_code = runner.result()
            except Exception as e:
                job.fail(current["step"], None)
                raise handle_build_error(
                    "execute",
                    e,
                    context=ErrorContext(
                        working_directory=job.descriptor.working_dir,
                        log_path=job.log_path,
                        step=current["step"],
                        toolchain=kind.value,
                    ),
                )

        if failed_step is None:
            job.succeed()
        else:
            job.fail(failed_step, exit_code)
        emit(
            ProgressEvent(
                ProgressKind.COMPLETED,
                job.job_id,
                step=failed_step,
                ticks=ticks,
                elapsed=job.duration or 0.0,
                exit_code=job.exit_code,
                job=job,
            )
        )

    async def _run_steps(
        self,
        job: BuildJob,
        steps: List[BuildStep],
        log: BinaryIO,
        emit: ProgressCallback,
        current: Dict[str, Optional[str]],
    ) -> Tuple[Optional[str], int]:
        """Run steps in order; return (failed step, exit code) or (None, 0)."""
        env = os.environ.copy()
        env.update(self.env_vars)

        for step in steps:
            current["step"] = step.name
            emit(ProgressEvent(ProgressKind.STEP_STARTED, job.job_id, step=step.name))
            log.write(f"Running {step.name}...\n".encode())
            logger.debug(f"[{job.repo_id}] {step.command_line} (cwd={step.cwd})")

            exit_code = await self._run_step(step, log, env)

            emit(
                ProgressEvent(
                    ProgressKind.STEP_FINISHED,
                    job.job_id,
                    step=step.name,
                    exit_code=exit_code,
                    elapsed=job.duration or 0.0,
                )
            )
            if exit_code != 0:
                log.write(f"Step {step.name} failed with exit code {exit_code}\n".encode())
                return step.name, exit_code
            job.completed_steps.append(step.name)

        return None, 0

    async def _run_step(self, step: BuildStep, log: BinaryIO, env: Dict[str, str]) -> int:
        try:
            if step.create_cwd:
                step.cwd.mkdir(parents=True, exist_ok=True)
            process = await asyncio.create_subprocess_exec(
                *step.argv,
                cwd=step.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=log,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
            )
        except FileNotFoundError as e:
            log.write(f"{step.argv[0]}: command not found ({e})\n".encode())
            return EXIT_NOT_FOUND
        except PermissionError as e:
            log.write(f"{step.argv[0]}: permission denied ({e})\n".encode())
            return EXIT_NOT_EXECUTABLE
        except OSError as e:
            log.write(f"{step.name}: {e}\n".encode())
            return 1

        try:
            return await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            raise


async def read_log(path: Union[str, Path]) -> str:
    """Whole content of a job log."""
    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as handle:
        return await handle.read()


async def read_log_tail(path: Union[str, Path], lines: int = 40) -> List[str]:
    """Last ``lines`` lines of a job log."""
    if lines <= 0:
        return []
    return (await read_log(path)).splitlines()[-lines:]
