#!/usr/bin/env python3
"""
Delete command for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import sys
from typing import Annotated

import typer

from portside.config.loader import ConfigLoader
from portside.runner.driver import OrchestrationDriver, RunOptions

from ..constants import ExitCode
from ..options import DEFAULT_CONFIG_FILE, Filename, Labels, Setters, Verbose
from ..utils import console, fail, load_configs, parse_key_values, setup_logging


def delete(
    filename: Filename = DEFAULT_CONFIG_FILE,
    set_values: Setters = [],
    label: Labels = [],
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Don't delete resources, just print them")
    ] = False,
    verbose: Verbose = False,
) -> None:
    """
    🧹 Delete any resources deployed by portside.
    """
    setup_logging(verbose)
    driver = None
    try:
        configs = load_configs(filename)
        options = RunOptions(
            overrides=parse_key_values(set_values, "--set"),
            custom_labels=parse_key_values(label, "--label"),
        )
        driver = OrchestrationDriver(
            configs, options, global_config=ConfigLoader.load_global_config()
        )
        driver.delete(sys.stdout, dry_run=dry_run)

        if not dry_run:
            console.print("🧹 [bold green]Cleanup completed[/bold green]")
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "delete", driver, verbose)
