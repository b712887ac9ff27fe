#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Step planning and supervised execution of build jobs.
"""

from .engine import ExecutionEngine, read_log, read_log_tail
from .overrides import DEFAULT_OVERRIDES, SequenceOverride, find_override
from .preflight import (
    PACKAGE_MANAGERS,
    find_missing_dependencies,
    find_package_manager,
    install_dependencies,
)
from .steps import STEP_PLANNERS, BuildStep, plan_steps, split_flags

__all__ = [
    "ExecutionEngine",
    "read_log",
    "read_log_tail",
    "DEFAULT_OVERRIDES",
    "SequenceOverride",
    "find_override",
    "PACKAGE_MANAGERS",
    "find_missing_dependencies",
    "find_package_manager",
    "install_dependencies",
    "STEP_PLANNERS",
    "BuildStep",
    "plan_steps",
    "split_flags",
]
