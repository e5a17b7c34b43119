#!/usr/bin/env python3
"""
Unified error handling for portside.

Defines the error hierarchy raised by the orchestration layers together with
a Rich based handler that renders errors for the CLI.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text


class ErrorCategory(Enum):
    """Error category enumeration."""

    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    DEPENDENCY = "dependency"
    BUILD = "build"
    DEPLOY = "deploy"
    BACKEND = "backend"
    PLATFORM = "platform"
    CANCELLATION = "cancellation"
    ORCHESTRATION = "orchestration"
    RUNTIME = "runtime"


@dataclass
class ErrorContext:
    """Where an error happened."""

    operation: str
    phase: Optional[str] = None
    component: Optional[str] = None
    artifact: Optional[str] = None
    unit: Optional[str] = None
    file_path: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class PortsideError(Exception):
    """Base class for all portside errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.RUNTIME,
        context: Optional[ErrorContext] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.cause = cause


class ValidationError(PortsideError):
    """Invalid user input."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, recoverable=True, **kwargs)


class ConfigurationError(PortsideError):
    """Invalid or inconsistent configuration.

    Raised for unknown artifact variants, malformed GroupKind strings and
    missing required fields.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message, ErrorCategory.CONFIGURATION, recoverable=True, **kwargs
        )


class DependencyError(PortsideError):
    """Self-dependency or dependency cycle between named units."""

    def __init__(self, message: str, unit: Optional[str] = None, **kwargs):
        super().__init__(message, ErrorCategory.DEPENDENCY, **kwargs)
        self.unit = unit


class BackendExecutionError(PortsideError):
    """An external build or deploy tool failed."""

    def __init__(
        self,
        message: str,
        backend: str = "",
        stage: str = "",
        returncode: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, ErrorCategory.BACKEND, **kwargs)
        self.backend = backend
        self.stage = stage
        self.returncode = returncode


class PlatformIncompatibilityError(PortsideError):
    """Requested target platforms are not supported by a builder."""

    def __init__(
        self,
        message: str,
        requested: Optional[List[str]] = None,
        supported: Optional[List[str]] = None,
        **kwargs,
    ):
        super().__init__(message, ErrorCategory.PLATFORM, **kwargs)
        self.requested = requested or []
        self.supported = supported or []


class CancellationError(PortsideError):
    """Work was cancelled. Always safe to retry by running again."""

    def __init__(self, message: str = "operation cancelled", **kwargs):
        super().__init__(
            message, ErrorCategory.CANCELLATION, recoverable=True, **kwargs
        )


class BuildError(PortsideError):
    """Building one or more artifacts failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.BUILD, **kwargs)


class DeployError(PortsideError):
    """Deploying or cleaning up failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.DEPLOY, **kwargs)


class OrchestrationError(PortsideError):
    """The driver was used out of sequence or a stage aborted."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.ORCHESTRATION, **kwargs)


_CATEGORY_STYLE = {
    ErrorCategory.VALIDATION: ("⚠️", "Validation Error", "yellow"),
    ErrorCategory.CONFIGURATION: ("⚙️", "Configuration Error", "yellow"),
    ErrorCategory.DEPENDENCY: ("🔗", "Dependency Error", "red"),
    ErrorCategory.BUILD: ("🔨", "Build Error", "red"),
    ErrorCategory.DEPLOY: ("🚀", "Deploy Error", "red"),
    ErrorCategory.BACKEND: ("🔧", "Backend Error", "red"),
    ErrorCategory.PLATFORM: ("🖥️", "Platform Error", "red"),
    ErrorCategory.CANCELLATION: ("🛑", "Cancelled", "yellow"),
    ErrorCategory.ORCHESTRATION: ("🎛️", "Orchestration Error", "red"),
    ErrorCategory.RUNTIME: ("💥", "Runtime Error", "red"),
}


class ErrorHandler:
    """Renders errors to a Rich console and logs them."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def handle_error(
        self,
        error: BaseException,
        context: Optional[ErrorContext] = None,
        show_traceback: Optional[bool] = None,
    ) -> None:
        """Display an error panel with context and suggestions."""
        if isinstance(error, PortsideError):
            emoji, title, style = _CATEGORY_STYLE[error.category]
            context = context or error.context
            suggestions = error.suggestions
            cause = error.cause
        else:
            emoji, title, style = "💥", type(error).__name__, "red"
            suggestions = []
            cause = error.__cause__

        body = Text(str(error), style="bold")
        if context is not None:
            details = [
                f"{key}: {value}"
                for key, value in vars(context).items()
                if value not in (None, {}, "")
            ]
            if details:
                body.append("\n\n" + "\n".join(details), style="dim")
        if cause is not None:
            body.append(f"\n\nCaused by: {cause}", style="dim")
        if suggestions:
            body.append("\n\n💡 Suggestions:\n", style="cyan")
            body.append("\n".join(f"  • {s}" for s in suggestions))

        self.console.print(
            Panel(body, title=f"{emoji} {title}", border_style=style, expand=False)
        )
        self.logger.debug("Handled error: %s", error, exc_info=self.verbose)

        if show_traceback is None:
            show_traceback = self.verbose
        if show_traceback:
            self.console.print("[dim]Traceback:[/dim]")
            self.console.print_exception()


_global_handler: Optional[ErrorHandler] = None


def set_error_handler(handler: Optional[ErrorHandler]) -> None:
    """Install the process wide error handler."""
    global _global_handler
    _global_handler = handler


def get_error_handler() -> Optional[ErrorHandler]:
    return _global_handler


def handle_error(
    error: BaseException,
    context: Optional[ErrorContext] = None,
    show_traceback: Optional[bool] = None,
) -> None:
    """Handle an error with the global handler, or log it if none is set."""
    if _global_handler is None:
        logging.error("%s: %s", type(error).__name__, error)
        return
    _global_handler.handle_error(error, context=context, show_traceback=show_traceback)


def create_error_context(operation: str, **kwargs) -> ErrorContext:
    """Convenience constructor for ErrorContext."""
    return ErrorContext(operation=operation, **kwargs)
