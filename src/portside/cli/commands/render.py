#!/usr/bin/env python3
"""
Render command for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import io
import sys
from typing import Annotated, Optional

import typer

from portside.config.loader import ConfigLoader
from portside.graph.artifact import load_build_output
from portside.runner.driver import OrchestrationDriver, RunOptions

from ..constants import ExitCode
from ..options import (
    DEFAULT_CONFIG_FILE,
    BuildArtifacts,
    Concurrency,
    Filename,
    InsecureRegistries,
    Labels,
    Platforms,
    Setters,
    Verbose,
)
from ..utils import (
    err_console,
    fail,
    load_configs,
    parse_key_values,
    setup_logging,
    split_comma_separated,
)


def render(
    filename: Filename = DEFAULT_CONFIG_FILE,
    set_values: Setters = [],
    label: Labels = [],
    insecure_registry: InsecureRegistries = [],
    platform: Platforms = [],
    concurrency: Concurrency = None,
    build_artifacts: BuildArtifacts = None,
    output: Annotated[
        Optional[str],
        typer.Option("--output", "-o", help="Write rendered manifests to this file instead of stdout"),
    ] = None,
    verbose: Verbose = False,
) -> None:
    """
    📄 Build artifacts (unless --build-artifacts is given) and print the transformed manifests.
    """
    setup_logging(verbose, to_stderr=True)
    driver = None
    try:
        configs = load_configs(filename)
        options = RunOptions(
            overrides=parse_key_values(set_values, "--set"),
            custom_labels=parse_key_values(label, "--label"),
            insecure_registries=tuple(insecure_registry),
            platforms=tuple(split_comma_separated(platform)),
            concurrency=concurrency,
        )
        builds = load_build_output(build_artifacts) if build_artifacts else None

        driver = OrchestrationDriver(
            configs, options, global_config=ConfigLoader.load_global_config()
        )
        stream = io.StringIO()
        driver.render_flow(stream, builds, build_out=sys.stderr)

        if output:
            with open(output, "w") as f:
                f.write(stream.getvalue())
            err_console.print(f"💾 Manifests saved to: [cyan]{output}[/cyan]")
        else:
            typer.echo(stream.getvalue(), nl=False)
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "render", driver, verbose)
