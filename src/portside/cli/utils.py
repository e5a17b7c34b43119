#!/usr/bin/env python3
"""
Utility functions for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from portside.config.loader import ConfigLoader
from portside.config.schema import ProjectConfig
from portside.core.errors import (
    BuildError,
    CancellationError,
    ConfigurationError,
    DependencyError,
    DeployError,
    ErrorHandler,
    PortsideError,
    ValidationError,
    create_error_context,
    handle_error,
    set_error_handler,
)
from portside.graph.artifact import Artifact
from portside.runner.driver import DriverState, OrchestrationDriver

from .constants import VALID_PROTOCOLS, ExitCode


# Initialize Rich console
console = Console()
# Used when stdout carries a manifest stream
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False, to_stderr: bool = False) -> None:
    """Setup Rich logging configuration and unified error handler."""
    log_level = logging.DEBUG if verbose else logging.INFO
    target = err_console if to_stderr else console

    # Setup rich logging handler
    rich_handler = RichHandler(
        console=target,
        show_time=True,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[rich_handler],
        force=True,
    )

    # Setup unified error handler
    error_handler = ErrorHandler(console=target, verbose=verbose)
    set_error_handler(error_handler)


def parse_key_values(values: Optional[List[str]], option: str) -> Dict[str, str]:
    """Parse repeated KEY=VALUE options into a dict.

    Raises:
        ValidationError: If an entry has no '='
    """
    parsed: Dict[str, str] = {}
    for value in values or []:
        key, sep, rest = value.partition("=")
        if not sep or not key:
            raise ValidationError(
                f"invalid {option} value {value!r}: expected KEY=VALUE",
                suggestions=[f"Use {option} name=value"],
            )
        parsed[key.strip()] = rest
    return parsed


def split_comma_separated(values: Optional[List[str]]) -> List[str]:
    """Split comma-separated option values.

    Handles both formats:
    - Multiple flags: --platform linux/amd64 --platform linux/arm64
    - Comma-separated: --platform linux/amd64,linux/arm64
    """
    result = []
    for value in values or []:
        result.extend(v.strip() for v in value.split(",") if v.strip())
    return result


def validate_protocols(protocols: List[str]) -> List[str]:
    """Check --protocols values against the debuggers portside can inject.

    Raises:
        ValidationError: If a protocol is unknown
    """
    unknown = [p for p in protocols if p not in VALID_PROTOCOLS]
    if unknown:
        raise ValidationError(
            f"unknown debug protocol(s): {', '.join(unknown)}",
            suggestions=[f"Use any of: {', '.join(VALID_PROTOCOLS)}"],
        )
    return protocols


def load_configs(filename: str, required: bool = True) -> List[ProjectConfig]:
    """Load project configurations, or none when optional and missing."""
    if not required and not os.path.exists(filename):
        logging.getLogger(__name__).debug("No configuration at %s", filename)
        return []
    return ConfigLoader.load_file(filename)


def exit_code_for(error: BaseException, driver: Optional[OrchestrationDriver] = None) -> int:
    """Map an error, and the stage it happened in, to an exit code."""
    if isinstance(error, (ConfigurationError, ValidationError, DependencyError)):
        return ExitCode.INVALID_ARGS
    if isinstance(error, CancellationError):
        return ExitCode.FAILURE

    stage = driver.failed_stage if driver is not None else None
    if stage == DriverState.BUILDING or isinstance(error, BuildError):
        return ExitCode.BUILD_FAILURE
    if stage in (DriverState.DEPLOYING, DriverState.CLEANUP) or isinstance(error, DeployError):
        return ExitCode.DEPLOY_FAILURE
    return ExitCode.FAILURE


def fail(
    error: BaseException,
    operation: str,
    driver: Optional[OrchestrationDriver] = None,
    verbose: bool = False,
) -> None:
    """Report an error from a command and exit with the matching code."""
    if isinstance(error, KeyboardInterrupt):
        if driver is not None:
            driver.token.cancel("interrupted")
        console.print(f"\n🛑 [yellow]{operation.capitalize()} cancelled by user[/yellow]")
        raise typer.Exit(ExitCode.FAILURE)

    if isinstance(error, FileNotFoundError):
        console.print(f"📁 [bold red]File not found: {error}[/bold red]")
        console.print("💡 Check that all required files exist")
        raise typer.Exit(ExitCode.INVALID_ARGS)

    context = getattr(error, "context", None) or create_error_context(
        operation=operation,
        phase=driver.failed_stage.value if driver is not None and driver.failed_stage else None,
        component=f"{operation}_command",
    )
    if not isinstance(error, PortsideError) and verbose:
        console.print_exception()
    handle_error(error, context=context)
    raise typer.Exit(exit_code_for(error, driver))


def display_builds_table(builds: Sequence[Artifact], title: str = "Build Results") -> None:
    """Display build results, one artifact per row."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Index", justify="right", style="dim")
    table.add_column("Image", style="cyan")
    table.add_column("Tag", style="green")

    for index, build in enumerate(builds, 1):
        table.add_row(str(index), build.image_name, build.tag)
    if not builds:
        table.add_row("1", "ℹ️ No artifacts", "")

    console.print(table)
