#!/usr/bin/env python3
"""
Main CLI Application for portside

Pipeline commands (build, run, delete) drive builders and deployers.
Manifest commands (render, filter) only print transformed manifests, and
profiles lists what each configuration declares.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import sys
from typing import Annotated

import typer
from rich.traceback import install

from portside import __version__
from portside.core.errors import PortsideError, handle_error

from .commands import build, delete, filter_manifests, profiles, render, run
from .constants import ExitCode
from .utils import console, exit_code_for

PIPELINE_PANEL = "Pipeline"
MANIFEST_PANEL = "Manifests"
INSPECT_PANEL = "Inspect"

install(show_locals=False)

app = typer.Typer(
    name="portside",
    help="⚓ portside - Build artifacts, transform manifests, deploy with kubectl or terraform",
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
)

app.command(rich_help_panel=PIPELINE_PANEL)(build)
app.command(rich_help_panel=PIPELINE_PANEL)(run)
app.command(rich_help_panel=PIPELINE_PANEL)(delete)
app.command(rich_help_panel=MANIFEST_PANEL)(render)
app.command("filter", rich_help_panel=MANIFEST_PANEL)(filter_manifests)
app.command(rich_help_panel=INSPECT_PANEL)(profiles)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool, typer.Option("--version", help="Show version and exit")
    ] = False,
) -> None:
    """
    ⚓ portside

    [bold]run[/bold] builds every artifact, renders the configured manifests
    and deploys them. [bold]delete[/bold] renders with tag-only results and
    removes what was deployed. [bold]render[/bold] and [bold]filter[/bold]
    write the transformed manifest stream to stdout. [bold]profiles[/bold]
    lists declared profiles as JSON.
    """
    if version:
        console.print(
            f"⚓ [bold cyan]portside[/bold cyan] version [green]{__version__}[/green]"
        )
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        ctx.exit()


def cli_main() -> None:
    """Entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n🛑 [yellow]Cancelled; in-flight tools were stopped[/yellow]")
        sys.exit(ExitCode.FAILURE)
    except PortsideError as e:
        # Commands report their own errors; this only sees ones raised before a command ran.
        handle_error(e)
        sys.exit(exit_code_for(e))
    except Exception as e:
        console.print(f"💥 [bold red]Unexpected error: {e}[/bold red]")
        console.print_exception()
        sys.exit(ExitCode.FAILURE)


if __name__ == "__main__":
    cli_main()
