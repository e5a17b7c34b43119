#!/usr/bin/env python3
"""
Deployer contract.

Every deploy backend implements Deployer. Optional capabilities (debugging,
log tailing, port access, file sync, status monitoring) live in a
Capabilities record whose fields default to named no-op implementations, so
callers never need to check whether a backend supports one.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, TextIO

from portside.core.cancellation import CancellationToken
from portside.graph.artifact import Artifact
from portside.manifest.document import ManifestList

ManifestsByConfig = Dict[str, ManifestList]


class StatusCode(Enum):
    """Deployment status as reported by a status monitor."""

    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


class Debugger(ABC):
    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class Logger(ABC):
    @abstractmethod
    def start(self, out: TextIO) -> None:
        pass

    @abstractmethod
    def write(self, text: str) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class Accessor(ABC):
    @abstractmethod
    def start(self, out: TextIO) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class Syncer(ABC):
    @abstractmethod
    def sync(self, files: Dict[str, List[str]]) -> None:
        pass


class StatusMonitor(ABC):
    @abstractmethod
    def check(self, out: TextIO) -> StatusCode:
        pass


class NoopDebugger(Debugger):
    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class NoopLogger(Logger):
    """Discards everything written to it."""

    def start(self, out: TextIO) -> None:
        pass

    def write(self, text: str) -> None:
        pass

    def stop(self) -> None:
        pass


class NoopAccessor(Accessor):
    def start(self, out: TextIO) -> None:
        pass

    def stop(self) -> None:
        pass


class NoopSyncer(Syncer):
    def sync(self, files: Dict[str, List[str]]) -> None:
        pass


class NoopMonitor(StatusMonitor):
    """Always reports NOT_APPLICABLE."""

    def check(self, out: TextIO) -> StatusCode:
        return StatusCode.NOT_APPLICABLE


@dataclass
class Capabilities:
    debugger: Debugger = field(default_factory=NoopDebugger)
    logger: Logger = field(default_factory=NoopLogger)
    accessor: Accessor = field(default_factory=NoopAccessor)
    syncer: Syncer = field(default_factory=NoopSyncer)
    status_monitor: StatusMonitor = field(default_factory=NoopMonitor)


class Deployer(ABC):
    """
    Base class for deploy backends.

    ``config_name`` identifies the configuration the deployer was built
    from and is unique across one invocation. A backend that manages
    several named units orders them itself; callers treat it as one unit.
    """

    BACKEND: str = "base"

    def __init__(self, config_name: str, capabilities: Optional[Capabilities] = None):
        self.config_name = config_name
        self.capabilities = capabilities or Capabilities()
        self.tracked_builds: List[Artifact] = []
        self.deployed_images: List[Artifact] = []
        self.local_images: List[Artifact] = []

    @abstractmethod
    def deploy(
        self,
        out: TextIO,
        builds: List[Artifact],
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """
        Deploy the build results. Safe to call repeatedly.

        Raises:
            BackendExecutionError: If the backend tool fails
        """
        pass

    @abstractmethod
    def cleanup(
        self,
        out: TextIO,
        dry_run: bool,
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """
        Undo deploy. With ``dry_run`` only write one plan line per unit.

        Raises:
            BackendExecutionError: If the backend tool fails
        """
        pass

    @abstractmethod
    def dependencies(self) -> List[str]:
        """Files whose changes require a redeploy."""
        pass

    def get_debugger(self) -> Debugger:
        return self.capabilities.debugger

    def get_logger(self) -> Logger:
        return self.capabilities.logger

    def get_accessor(self) -> Accessor:
        return self.capabilities.accessor

    def get_syncer(self) -> Syncer:
        return self.capabilities.syncer

    def get_status_monitor(self) -> StatusMonitor:
        return self.capabilities.status_monitor

    def track_build_artifacts(self, builds: List[Artifact], deployed: List[Artifact]) -> None:
        self.tracked_builds.extend(builds or [])
        self.deployed_images.extend(deployed or [])

    def register_local_images(self, images: List[Artifact]) -> None:
        self.local_images.extend(images or [])

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.config_name!r})"
