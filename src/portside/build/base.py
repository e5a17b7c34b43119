#!/usr/bin/env python3
"""
Base class for build backends.

A backend turns one artifact descriptor and its resolved tag into an image
reference: a local image for the local builder, a pushed reference for the
cloud builder.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from abc import ABC, abstractmethod
from typing import TextIO

from portside.config.schema import ArtifactDescriptor
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.platform import PlatformMatcher


class Builder(ABC):
    """Builds single artifacts. Concurrency is handled by BuildScheduler."""

    BACKEND: str = "base"

    def __init__(self, console: Console = None):
        self.console = console or Console()

    @abstractmethod
    def build(
        self,
        out: TextIO,
        artifact: ArtifactDescriptor,
        tag: str,
        platforms: PlatformMatcher,
        token: CancellationToken,
    ) -> str:
        """
        Build one artifact.

        Args:
            out: Writer receiving tool output
            artifact: What to build
            tag: Fully qualified tag to produce
            platforms: Requested target platforms
            token: Cancellation token for every process started

        Returns:
            Reference of the built image

        Raises:
            BackendExecutionError: If a build tool fails
            ConfigurationError: If this backend cannot build the artifact
            CancellationError: If cancelled while building
        """
        pass

    def concurrency(self) -> int:
        """Maximum parallel builds, 0 for unbounded."""
        return 1
