#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Build-system detection.
"""

from .classifier import (
    Classifier,
    RootSignature,
    DEFAULT_ROOT_SIGNATURES,
    DEFAULT_MAX_DEPTH,
    FALLBACK_DEPTH,
    has_autogen_pair,
)

__all__ = [
    "Classifier",
    "RootSignature",
    "DEFAULT_ROOT_SIGNATURES",
    "DEFAULT_MAX_DEPTH",
    "FALLBACK_DEPTH",
    "has_autogen_pair",
]
