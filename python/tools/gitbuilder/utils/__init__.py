#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Settings loading for gitbuilder.
"""

from __future__ import annotations

from .config import ENV_PREFIX, GitBuilderSettings, SettingsLoader

__all__ = ["ENV_PREFIX", "GitBuilderSettings", "SettingsLoader"]
