#!/usr/bin/env python3
"""
Options shared by several portside commands.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from typing import Annotated, List, Optional

import typer

from .constants import DEFAULT_CONFIG_FILE

Filename = Annotated[
    str,
    typer.Option("--filename", "-f", help="Path to the portside configuration file"),
]
Setters = Annotated[
    List[str],
    typer.Option("--set", help="Setter override NAME=VALUE for '# kpt-set' fields (repeatable)"),
]
Labels = Annotated[
    List[str],
    typer.Option("--label", "-l", help="Custom label KEY=VALUE added to deployed resources (repeatable)"),
]
InsecureRegistries = Annotated[
    List[str],
    typer.Option("--insecure-registry", help="Registry to access over plain HTTP (repeatable)"),
]
Concurrency = Annotated[
    Optional[int],
    typer.Option("--concurrency", min=0, help="Number of parallel builds, 0 for unbounded"),
]
Platforms = Annotated[
    List[str],
    typer.Option("--platform", "-p", help="Target platforms os/arch[/variant] (repeatable or comma-separated)"),
]
BuildArtifacts = Annotated[
    Optional[str],
    typer.Option(
        "--build-artifacts", "-a", help="File containing build results from 'portside build --file-output'"
    ),
]
Verbose = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose logging")
]

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "Filename",
    "Setters",
    "Labels",
    "InsecureRegistries",
    "Concurrency",
    "Platforms",
    "BuildArtifacts",
    "Verbose",
]
