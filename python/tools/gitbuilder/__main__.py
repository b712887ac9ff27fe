#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Allows ``python -m gitbuilder``.
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
