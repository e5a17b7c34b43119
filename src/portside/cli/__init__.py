#!/usr/bin/env python3
"""
CLI Package for portside

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .app import app, cli_main
from .constants import ExitCode, DEFAULT_CONFIG_FILE
from .utils import setup_logging, parse_key_values, exit_code_for

__all__ = [
    "app",
    "cli_main",
    "ExitCode",
    "DEFAULT_CONFIG_FILE",
    "setup_logging",
    "parse_key_values",
    "exit_code_for",
]
