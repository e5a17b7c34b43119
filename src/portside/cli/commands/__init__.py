#!/usr/bin/env python3
"""
CLI Commands Package for portside

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .build import build
from .delete import delete
from .filter import filter_manifests
from .profiles import profiles
from .render import render
from .run import run

__all__ = ["build", "run", "render", "delete", "filter_manifests", "profiles"]
