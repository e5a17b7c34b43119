#!/usr/bin/env python3
"""
Filter command for portside CLI

Reads a manifest stream from stdin, or from a post-renderer fed with stdin,
transforms it and writes the result to stdout. Unlike render, nothing is
built: image substitution uses results from --build-artifacts.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import io
import sys
from typing import Annotated, List

import typer

from portside.config.loader import ConfigLoader
from portside.core.cancellation import CancellationToken
from portside.graph.artifact import load_build_output
from portside.runner.driver import OrchestrationDriver, RunOptions
from portside.runner.images import DockerImageConfigRetriever

from ..constants import ExitCode
from ..options import (
    DEFAULT_CONFIG_FILE,
    BuildArtifacts,
    Filename,
    InsecureRegistries,
    Labels,
    Setters,
    Verbose,
)
from ..utils import (
    fail,
    load_configs,
    parse_key_values,
    setup_logging,
    split_comma_separated,
    validate_protocols,
)


def filter_manifests(
    filename: Filename = DEFAULT_CONFIG_FILE,
    set_values: Setters = [],
    label: Labels = [],
    insecure_registry: InsecureRegistries = [],
    build_artifacts: BuildArtifacts = None,
    debugging: Annotated[
        bool, typer.Option("--debugging", help="Instrument containers running built artifacts for debugging")
    ] = False,
    protocols: Annotated[
        List[str],
        typer.Option("--protocols", help="Priority sorted order of debugger protocols to support"),
    ] = [],
    post_renderer: Annotated[
        str,
        typer.Option(
            "--post-renderer",
            help="Executable that reads manifests on stdin and writes manifests to stdout",
        ),
    ] = "",
    verbose: Verbose = False,
) -> None:
    """
    🔀 Filter and transform a set of manifests from stdin.
    """
    setup_logging(verbose, to_stderr=True)
    driver = None
    try:
        configs = load_configs(filename, required=False)
        options = RunOptions(
            overrides=parse_key_values(set_values, "--set"),
            custom_labels=parse_key_values(label, "--label"),
            insecure_registries=tuple(insecure_registry),
            debug=debugging,
            protocols=tuple(validate_protocols(split_comma_separated(protocols))),
        )
        builds = load_build_output(build_artifacts) if build_artifacts else []
        token = CancellationToken()

        driver = OrchestrationDriver(
            configs,
            options,
            global_config=ConfigLoader.load_global_config(),
            token=token,
            retrieve_image_config=DockerImageConfigRetriever(token=token) if debugging else None,
        )
        stream = io.StringIO()
        driver.filter(sys.stdin, stream, builds, post_renderer=post_renderer)

        typer.echo(stream.getvalue(), nl=False)
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "filter", driver, verbose)
