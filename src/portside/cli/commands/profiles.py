#!/usr/bin/env python3
"""
Profiles command for portside CLI

Prints the profiles declared by each configuration as JSON.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
from typing import Annotated, Any, Dict, List, Optional, Sequence

import typer

from portside.config.schema import ProjectConfig
from portside.core.errors import ValidationError

from ..constants import ExitCode
from ..options import DEFAULT_CONFIG_FILE, Filename, Verbose
from ..utils import fail, load_configs, setup_logging

BUILD_ENVS = ("local", "cloudBuild")


def list_profiles(
    configs: Sequence[ProjectConfig], build_env: Optional[str] = None
) -> Dict[str, List[Dict[str, Any]]]:
    """Profiles of every configuration, optionally only those for one build env."""
    entries = []
    for config in configs:
        for profile in config.profiles:
            if build_env and profile.build_env != build_env:
                continue
            entries.append(
                {"name": profile.name, "path": config.source_file, "module": config.name}
            )
    return {"profiles": entries}


def profiles(
    filename: Filename = DEFAULT_CONFIG_FILE,
    build_env: Annotated[
        Optional[str],
        typer.Option("--build-env", help="Only list profiles building with this backend (local or cloudBuild)"),
    ] = None,
    verbose: Verbose = False,
) -> None:
    """
    🗂️ List the profiles of every configuration.
    """
    setup_logging(verbose, to_stderr=True)
    try:
        if build_env is not None and build_env not in BUILD_ENVS:
            raise ValidationError(
                f"unknown build env {build_env!r}",
                suggestions=[f"Use one of: {', '.join(BUILD_ENVS)}"],
            )
        configs = load_configs(filename)

        typer.echo(json.dumps(list_profiles(configs, build_env), indent=2))
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "profiles", verbose=verbose)
