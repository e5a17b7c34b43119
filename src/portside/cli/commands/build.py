#!/usr/bin/env python3
"""
Build command for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import sys
from typing import Annotated, List, Optional

import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from portside.config.loader import ConfigLoader
from portside.graph.artifact import dump_build_output
from portside.runner.driver import OrchestrationDriver, RunOptions

from ..constants import ExitCode
from ..options import DEFAULT_CONFIG_FILE, Concurrency, Filename, Platforms, Verbose
from ..utils import (
    console,
    display_builds_table,
    fail,
    load_configs,
    setup_logging,
    split_comma_separated,
)


def build(
    filename: Filename = DEFAULT_CONFIG_FILE,
    platform: Platforms = [],
    concurrency: Concurrency = None,
    file_output: Annotated[
        Optional[str],
        typer.Option("--file-output", "-o", help="Write build results to this JSON file"),
    ] = None,
    verbose: Verbose = False,
) -> None:
    """
    🔨 Build the artifacts of every configuration.
    """
    setup_logging(verbose)
    driver = None
    try:
        configs = load_configs(filename)
        platforms = split_comma_separated(platform)
        artifacts: List[str] = [a.image_name for c in configs for a in c.build.artifacts]

        console.print(
            Panel(
                f"🔨 [bold cyan]Building Artifacts[/bold cyan]\n"
                f"Config: [yellow]{filename}[/yellow]\n"
                f"Artifacts: [yellow]{', '.join(artifacts) if artifacts else 'none'}[/yellow]\n"
                f"Platforms: [yellow]{', '.join(platforms) if platforms else 'default'}[/yellow]",
                title="Build Configuration",
                border_style="blue",
            )
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading global configuration...", total=None)
            driver = OrchestrationDriver(
                configs,
                RunOptions(platforms=tuple(platforms), concurrency=concurrency),
                global_config=ConfigLoader.load_global_config(),
            )
            progress.update(task, description="Building artifacts...")
            builds = driver.build(sys.stdout)
            progress.update(task, description="Build completed!")

        display_builds_table(builds)
        if file_output:
            dump_build_output(file_output, builds)
            console.print(f"💾 Build results saved to: [cyan]{file_output}[/cyan]")

        console.print("🎉 [bold green]All builds completed successfully![/bold green]")
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "build", driver, verbose)
