#!/usr/bin/env python3
"""
Run command for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import sys

import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from portside.config.loader import ConfigLoader
from portside.runner.driver import DriverState, OrchestrationDriver, RunOptions

from ..constants import ExitCode
from ..options import (
    DEFAULT_CONFIG_FILE,
    Concurrency,
    Filename,
    InsecureRegistries,
    Labels,
    Platforms,
    Setters,
    Verbose,
)
from ..utils import (
    console,
    display_builds_table,
    fail,
    load_configs,
    parse_key_values,
    setup_logging,
    split_comma_separated,
)

STAGE_DESCRIPTIONS = {
    DriverState.BUILDING: "Building artifacts...",
    DriverState.TRANSFORMING: "Rendering manifests...",
    DriverState.DEPLOYING: "Deploying...",
}


def run(
    filename: Filename = DEFAULT_CONFIG_FILE,
    set_values: Setters = [],
    label: Labels = [],
    insecure_registry: InsecureRegistries = [],
    platform: Platforms = [],
    concurrency: Concurrency = None,
    verbose: Verbose = False,
) -> None:
    """
    🚀 Build artifacts, render manifests and deploy them.
    """
    setup_logging(verbose)
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

        console.print(
            Panel(
                f"🚀 [bold cyan]Running Pipeline[/bold cyan]\n"
                f"Config: [yellow]{filename}[/yellow]\n"
                f"Configurations: [yellow]{', '.join(c.name for c in configs) or 'none'}[/yellow]",
                title="Run Configuration",
                border_style="blue",
            )
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading global configuration...", total=None)

            def show_stage(state: DriverState) -> None:
                if state in STAGE_DESCRIPTIONS:
                    progress.update(task, description=STAGE_DESCRIPTIONS[state])

            driver = OrchestrationDriver(
                configs,
                options,
                global_config=ConfigLoader.load_global_config(),
                on_state=show_stage,
            )
            builds = driver.run(sys.stdout)
            progress.update(task, description="Deployment completed!")

        display_builds_table(builds, "Deployed Artifacts")
        console.print("🎉 [bold green]Deployment completed successfully![/bold green]")
        raise typer.Exit(ExitCode.SUCCESS)

    except typer.Exit:
        raise
    except (Exception, KeyboardInterrupt) as e:
        fail(e, "run", driver, verbose)
