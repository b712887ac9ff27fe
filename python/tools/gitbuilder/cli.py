#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line interface for gitbuilder.

Detects how a source tree builds, runs the build with live progress and
registers the resulting binary.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from . import __version__
from .config.override import OverrideDocument, parse_dependencies
from .core.errors import GitBuilderError
from .core.models import (
    BinaryCandidate,
    BuildDescriptor,
    OverrideProposal,
    ProgressEvent,
    ProgressKind,
)
from .core.store import JsonBuildStore
from .execution.engine import read_log, read_log_tail
from .locator.selection import ArtifactSelector
from .pipeline import BuildOutcome, GitBuilder
from .utils.config import SettingsLoader

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def accept_override(document: OverrideDocument, proposal: OverrideProposal) -> bool:
    """Non-interactive override confirmation: always save the document."""
    return True


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[Path] = None
) -> None:
    """Replace the default sink with one at the requested level, plus an optional file."""
    logger.remove()
    level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} | {message} | {extra}"
            ),
            rotation="10 MB",
            retention="1 week",
        )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitbuilder",
        description="Detect, build and locate the binary of a source tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gitbuilder detect ~/src/zesarux
  gitbuilder build ~/src/zesarux --name zesarux
  gitbuilder config zesarux --make-flags "-j8"
  gitbuilder override ~/src/atari800
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    global_group = parser.add_argument_group("Global Options")
    global_group.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    global_group.add_argument("-q", "--quiet", action="store_true", help="Only show warnings and errors")
    global_group.add_argument("--log-file", type=Path, help="Also write logs to this file")
    global_group.add_argument("--settings", type=Path, help="Settings file (JSON, TOML or INI)")
    global_group.add_argument("--data-dir", type=Path, help="Directory holding the target store")
    global_group.add_argument("--no-color", action="store_true", help="Disable colored output")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", metavar="COMMAND")

    detect = subparsers.add_parser("detect", help="Show detected build methods")
    detect.add_argument("source", type=Path, help="Source tree root")
    detect.add_argument("--max-depth", type=int, help="Search depth (default from settings)")

    build = subparsers.add_parser("build", help="Build a source tree")
    build.add_argument("source", type=Path, help="Source tree root")
    target_group = build.add_argument_group("Target")
    target_group.add_argument("--repo-id", help="Target id in the store (default: directory name)")
    target_group.add_argument("--name", help="Target name used to recognize its binary")
    behaviour_group = build.add_argument_group("Behaviour")
    behaviour_group.add_argument(
        "-y", "--yes", action="store_true",
        help=(
            "Save override documents and build despite missing dependencies "
            "without asking"
        ),
    )
    behaviour_group.add_argument(
        "--no-locate", action="store_true", help="Do not search for the built binary"
    )
    behaviour_group.add_argument(
        "--tail", type=int, default=20,
        help="Log lines printed after a failure before offering the full log (0 for none)",
    )

    locate = subparsers.add_parser("locate", help="Search a built tree for its binary")
    locate.add_argument("source", type=Path, help="Source tree root")
    locate.add_argument("--repo-id", help="Target id in the store (default: directory name)")
    locate.add_argument("--name", help="Target name (default: directory name)")
    locate.add_argument("--register", action="store_true", help="Pick and register a binary")

    override = subparsers.add_parser("override", help="Show the override document of a tree")
    override.add_argument("source", type=Path, help="Source tree root")

    config = subparsers.add_parser("config", help="Show or change persisted target settings")
    config.add_argument("repo_id", help="Target id in the store")
    config.add_argument("--configure-flags", help="Flags passed to configure")
    config.add_argument("--make-flags", help="Flags passed to make")
    config.add_argument("--cmake-flags", help="Flags passed to cmake")
    config.add_argument("--dependencies", help="Dependencies, separated by spaces or commas")
    config.add_argument("--build-file", type=Path, help="Force this build file")
    config.add_argument("--clear-build-file", action="store_true", help="Forget a forced build file")
    config.add_argument("--binary", type=Path, help="Register this binary path")

    return parser


class GitBuilderCLI:
    """Command dispatcher; every interactive decision goes through rich prompts."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self.parser = create_parser()

    async def run(self, argv: Optional[Sequence[str]] = None) -> int:
        args = self.parser.parse_args(argv)
        setup_logging(args.verbose, args.quiet, args.log_file)
        if args.no_color:
            self.console = Console(color_system=None)

        handlers = {
            "detect": self.handle_detect,
            "build": self.handle_build,
            "locate": self.handle_locate,
            "override": self.handle_override,
            "config": self.handle_config,
        }
        if args.command not in handlers:
            self.parser.print_help()
            return EXIT_FAILURE

        try:
            settings = SettingsLoader().load(args.settings, data_dir=args.data_dir)
            builder = GitBuilder(JsonBuildStore(settings.store_path), settings)
            logger.debug(f"Executing command: {args.command}")
            return await handlers[args.command](builder, args)
        except GitBuilderError as e:
            self.console.print(Panel(str(e), title="Error", border_style="red"))
            return EXIT_FAILURE

    # Commands

    async def handle_detect(self, builder: GitBuilder, args: argparse.Namespace) -> int:
        if args.max_depth is not None:
            builder.settings.max_depth = args.max_depth
        descriptors = builder.detect(args.source)
        self.print_descriptors(descriptors, title=f"Build methods in {args.source}")
        return EXIT_OK

    async def handle_build(self, builder: GitBuilder, args: argparse.Namespace) -> int:
        repo_id = args.repo_id or args.source.resolve().name
        status = self.console.status("Preparing build...")
        started = False

        def on_progress(event: ProgressEvent) -> None:
            nonlocal started
            if not started:
                status.start()
                started = True
            match event.kind:
                case ProgressKind.STEP_STARTED:
                    status.update(f"Running {event.step}...")
                case ProgressKind.HEARTBEAT:
                    status.update(f"{event.indicator} [{event.step}] {event.elapsed:.0f}s")
                case ProgressKind.STEP_FINISHED if event.exit_code == 0:
                    self.console.print(f"[green]✓[/green] {event.step}")
                case ProgressKind.STEP_FINISHED:
                    self.console.print(f"[red]✗[/red] {event.step} (exit code {event.exit_code})")
                case ProgressKind.COMPLETED:
                    status.stop()

        try:
            outcome = await builder.build_async(
                repo_id,
                args.source,
                target_name=args.name,
                choose=self.choose_descriptor,
                confirm_override=accept_override if args.yes else self.confirm_override,
                install_missing=None if args.yes else self.install_missing,
                confirm_missing=None if args.yes else self.confirm_missing,
                on_progress=on_progress,
            )
        finally:
            if started:
                status.stop()

        self.print_outcome(outcome)
        if not outcome.succeeded:
            log_path = outcome.job.log_path
            if args.tail > 0:
                await self.print_log_tail(log_path, args.tail)
            if Confirm.ask("Open the full build log?", default=True, console=self.console):
                await self.show_log(log_path)
            return EXIT_FAILURE

        if not args.no_locate:
            self.select_and_register(builder, repo_id, outcome.candidates, args.source)
        return EXIT_OK

    async def handle_locate(self, builder: GitBuilder, args: argparse.Namespace) -> int:
        repo_id = args.repo_id or args.source.resolve().name
        name = args.name or args.source.resolve().name
        candidates = builder.candidates(args.source, name)

        table = Table(title=f"Binaries for {name}", show_header=True)
        table.add_column("#", style="cyan")
        table.add_column("Path", style="green")
        table.add_column("Exact", style="yellow")
        table.add_column("Tier", style="blue")
        for number, candidate in enumerate(candidates, 1):
            table.add_row(
                str(number),
                str(candidate.path),
                "yes" if candidate.exact_match else "",
                str(candidate.tier),
            )
        self.console.print(table)

        if args.register:
            self.select_and_register(builder, repo_id, candidates, args.source)
        return EXIT_OK if candidates or args.register else EXIT_FAILURE

    async def handle_override(self, builder: GitBuilder, args: argparse.Namespace) -> int:
        document = builder.load_override(args.source)
        if document is None:
            self.console.print(f"[yellow]No override document in {args.source}[/yellow]")
            return EXIT_FAILURE
        self.print_override(document)
        return EXIT_OK

    async def handle_config(self, builder: GitBuilder, args: argparse.Namespace) -> int:
        store = builder.store
        updates: Dict[str, Any] = {
            key: getattr(args, key)
            for key in ("configure_flags", "make_flags", "cmake_flags")
            if getattr(args, key) is not None
        }
        if args.dependencies is not None:
            updates["dependencies"] = parse_dependencies(args.dependencies)
        if updates:
            store.update_config(args.repo_id, **updates)
        if args.clear_build_file:
            store.set_build_file(args.repo_id, None)
        elif args.build_file is not None:
            store.set_build_file(args.repo_id, args.build_file.resolve())
        if args.binary is not None:
            store.set_binary_path(args.repo_id, args.binary.resolve())

        record = store.get_target(args.repo_id)
        table = Table(title=f"Target {args.repo_id}", show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        rows = {
            "Build type": record.build_type,
            "Build file": record.build_file_path,
            "Binary": record.binary_path,
            "Configure flags": record.config.configure_flags,
            "Make flags": record.config.make_flags,
            "CMake flags": record.config.cmake_flags,
            "Dependencies": " ".join(sorted(record.config.dependencies)),
            "Last built": record.last_built,
            "Last result": {True: "success", False: "failed"}.get(record.build_success, ""),
            "Last log": record.last_log_path,
        }
        for label, value in rows.items():
            table.add_row(label, str(value) if value else "")
        self.console.print(table)
        return EXIT_OK

    # Interaction

    def choose_descriptor(self, descriptors: Sequence[BuildDescriptor]) -> Optional[BuildDescriptor]:
        self.print_descriptors(descriptors, title="Multiple build methods detected")
        choices = [str(i) for i in range(1, len(descriptors) + 1)]
        answer = Prompt.ask("Select build method", choices=choices, default="1", console=self.console)
        return descriptors[int(answer) - 1]

    def confirm_override(self, document: OverrideDocument, proposal: OverrideProposal) -> bool:
        self.print_override(document)
        table = Table(title="Changes to stored settings", show_header=True)
        table.add_column("Field", style="cyan")
        table.add_column("New value", style="green")
        for key, value in proposal.updates.items():
            table.add_row(key, value)
        self.console.print(table)
        return Confirm.ask(
            f"Use the settings from {document.source}?", default=True, console=self.console
        )

    def install_missing(self, missing: List[str]) -> bool:
        self.console.print(
            Panel("\n".join(missing), title="Missing dependencies", border_style="yellow")
        )
        return Confirm.ask("Install them now?", default=False, console=self.console)

    def confirm_missing(self, missing: List[str]) -> bool:
        self.console.print(
            f"[yellow]Missing dependencies may cause the build to fail:[/yellow] "
            f"{' '.join(missing)}"
        )
        return Confirm.ask("Continue anyway?", default=False, console=self.console)

    def select_and_register(
        self, builder: GitBuilder, repo_id: str, candidates: Sequence[BinaryCandidate], browse_root: Path
    ) -> Optional[Path]:
        selector = ArtifactSelector(
            prompt=lambda text: Prompt.ask(text.rstrip(": "), console=self.console),
            echo=lambda line: self.console.print(line, markup=False, highlight=False),
        )
        selection = selector.select(candidates, browse_root)
        path = builder.register_binary(repo_id, selection)
        if path is not None:
            self.console.print(f"[green]Binary registered:[/green] {path}")
        else:
            self.console.print("[yellow]No binary registered[/yellow]")
        return path

    # Output

    def print_descriptors(self, descriptors: Sequence[BuildDescriptor], title: str) -> None:
        table = Table(title=title, show_header=True)
        table.add_column("#", style="cyan")
        table.add_column("Kind", style="green")
        table.add_column("Build file", style="blue")
        table.add_column("Description")
        for number, descriptor in enumerate(descriptors, 1):
            table.add_row(
                str(number),
                descriptor.kind.value,
                str(descriptor.source_file),
                descriptor.description,
            )
        self.console.print(table)

    def print_override(self, document: OverrideDocument) -> None:
        table = Table(title=f"Override document {document.source}", show_header=True)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key in (
            "repo_name", "repo_url", "build_method", "dependencies", "build_file",
            "configure_flags", "make_flags", "cmake_flags", "binary_path", "notes",
        ):
            value = getattr(document, key)
            if value:
                table.add_row(key.upper(), str(value))
        self.console.print(table)

    def print_outcome(self, outcome: BuildOutcome) -> None:
        job = outcome.job
        if job.succeeded:
            self.console.print(
                Panel(
                    f"Build completed in {job.duration:.1f}s\nLog: {job.log_path}",
                    title=f"{job.repo_id}: success",
                    border_style="green",
                )
            )
        else:
            self.console.print(
                Panel(
                    f"Failed step: {job.failed_step}\nExit code: {job.exit_code}\n"
                    f"Log: {job.log_path}",
                    title=f"{job.repo_id}: failed",
                    border_style="red",
                )
            )

    async def print_log_tail(self, log_path: Path, lines: int) -> None:
        for line in await read_log_tail(log_path, lines):
            self.console.print(line, markup=False, highlight=False)

    async def show_log(self, log_path: Path) -> None:
        content = await read_log(log_path)
        with self.console.pager():
            self.console.print(content, markup=False, highlight=False)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the gitbuilder console script."""
    cli = GitBuilderCLI()
    try:
        return asyncio.run(cli.run(argv))
    except KeyboardInterrupt:
        logger.warning("Operation cancelled by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
