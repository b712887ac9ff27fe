#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Check a target's declared build dependencies before dispatch, and install
missing ones through the system package manager on request.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from ..core.errors import DependencyError, ErrorContext

# Commands run in order; the packages are appended to the last one.
PACKAGE_MANAGERS: Dict[str, Tuple[Tuple[str, ...], ...]] = {
    "apt-get": (("apt-get", "update"), ("apt-get", "install", "-y")),
    "dnf": (("dnf", "install", "-y"),),
    "pacman": (("pacman", "-S", "--noconfirm"),),
}


async def _dpkg_installed(package: str) -> bool:
    try:
        process = await asyncio.create_subprocess_exec(
            "dpkg-query",
            "-W",
            "-f=${Status}",
            package,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"dpkg-query unavailable: {e}")
        return False
    stdout, _ = await process.communicate()
    return process.returncode == 0 and b"install ok installed" in stdout


async def find_missing_dependencies(dependencies: Iterable[str]) -> List[str]:
    """
    Return the dependencies that are neither an executable on PATH nor an
    installed dpkg package, in sorted order.
    """
    use_dpkg = shutil.which("dpkg-query") is not None
    missing: List[str] = []
    for dependency in sorted(set(dependencies)):
        if shutil.which(dependency):
            logger.debug(f"Dependency found on PATH: {dependency}")
            continue
        if use_dpkg and await _dpkg_installed(dependency):
            logger.debug(f"Dependency installed as package: {dependency}")
            continue
        logger.warning(f"Missing dependency: {dependency}")
        missing.append(dependency)
    return missing


def find_package_manager() -> Optional[str]:
    """First supported package manager on PATH."""
    for name in PACKAGE_MANAGERS:
        if shutil.which(name):
            return name
    return None


def _privilege_prefix() -> Tuple[str, ...]:
    if os.geteuid() != 0 and shutil.which("sudo"):
        return ("sudo",)
    return ()


async def install_dependencies(packages: Sequence[str]) -> str:
    """
    Install packages with the first supported package manager.

    Installer output goes to the terminal so password prompts stay visible.

    Returns:
        Name of the package manager used.

    Raises:
        DependencyError: No package manager was found or an install command failed.
    """
    packages = list(packages)
    if not packages:
        raise ValueError("No packages to install")

    manager = find_package_manager()
    if manager is None:
        raise DependencyError(
            "Unsupported package manager, install the packages manually: "
            f"{' '.join(packages)}",
            missing_dependency=packages[0],
            additional_info={"supported": list(PACKAGE_MANAGERS)},
        )

    *setup, install = PACKAGE_MANAGERS[manager]
    prefix = _privilege_prefix()
    for argv in (*setup, (*install, *packages)):
        command = [*prefix, *argv]
        command_line = " ".join(command)
        logger.info(f"Running {command_line}")
        try:
            process = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            raise DependencyError(
                f"Could not run {manager}",
                missing_dependency=packages[0],
                context=ErrorContext(command=command_line),
                cause=e,
            ) from e
        exit_code = await process.wait()
        if exit_code != 0:
            raise DependencyError(
                f"Installing {' '.join(packages)} with {manager} failed",
                missing_dependency=packages[0],
                context=ErrorContext(command=command_line, exit_code=exit_code),
            )

    logger.success(f"Installed {' '.join(packages)} with {manager}")
    return manager
