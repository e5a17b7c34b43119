#!/usr/bin/env python3
"""
Tag policies.

A tagger turns an artifact into the fully qualified reference its build
produces.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from portside.config.schema import ArtifactDescriptor
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import BackendExecutionError, ConfigurationError

logger = logging.getLogger(__name__)


class Tagger(ABC):
    @abstractmethod
    def generate_tag(self, artifact: ArtifactDescriptor, token: Optional[CancellationToken] = None) -> str:
        """Tag suffix for one artifact."""

    def tag(self, artifact: ArtifactDescriptor, token: Optional[CancellationToken] = None) -> str:
        return f"{artifact.image_name}:{self.generate_tag(artifact, token)}"


class GitCommitTagger(Tagger):
    """Short commit of the workspace, ``-dirty`` when it has local changes."""

    def __init__(self, console: Console = None):
        self.console = console or Console(shellVerbose=False)

    def generate_tag(self, artifact: ArtifactDescriptor, token: Optional[CancellationToken] = None) -> str:
        try:
            commit = self.console.run(
                ["git", "rev-parse", "--short", "HEAD"],
                backend="git",
                stage="tag",
                cwd=artifact.workspace,
                token=token,
            )
            status = self.console.run(
                ["git", "status", "--porcelain"],
                backend="git",
                stage="tag",
                cwd=artifact.workspace,
                token=token,
            )
        except BackendExecutionError as e:
            logger.warning("Unable to find git commit for %s, using latest: %s", artifact.image_name, e)
            return "latest"
        return f"{commit}-dirty" if status else commit


class DateTimeTagger(Tagger):
    FORMAT = "%Y-%m-%d_%H-%M-%S"

    def __init__(self, now=None):
        self.now = now or (lambda: datetime.now(timezone.utc))

    def generate_tag(self, artifact: ArtifactDescriptor, token: Optional[CancellationToken] = None) -> str:
        return self.now().strftime(self.FORMAT)


class LatestTagger(Tagger):
    def generate_tag(self, artifact: ArtifactDescriptor, token: Optional[CancellationToken] = None) -> str:
        return "latest"


def tagger_for(policy: str, console: Console = None) -> Tagger:
    """Tagger for a configured tag policy."""
    if policy == "gitCommit":
        return GitCommitTagger(console)
    if policy == "dateTime":
        return DateTimeTagger()
    if policy in ("sha256", "latest"):
        return LatestTagger()
    raise ConfigurationError(
        f"unknown tag policy {policy!r}",
        suggestions=["Use one of gitCommit, dateTime, sha256"],
    )
