#!/usr/bin/env python3
"""
Deployer Factory - Creates the deployer for each loaded configuration.

The deploy backend is chosen by the concrete type of ``ProjectConfig.deploy``
and every configuration gets its own deployer, combined in a DeployerMux.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import Dict, List, Optional, Sequence, TextIO

from portside.config.schema import KubectlDeploy, ProjectConfig, TerraformDeploy
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import ConfigurationError, create_error_context
from portside.graph.artifact import Artifact

from .contract import Deployer, ManifestsByConfig
from .kubectl import KubectlDeployer
from .terraform import TerraformDeployer

logger = logging.getLogger(__name__)


class DeployerMux(Deployer):
    """Fans every call out to one deployer per configuration, in order."""

    BACKEND = "mux"

    def __init__(self, deployers: Sequence[Deployer]):
        super().__init__(config_name="")
        seen: Dict[str, Deployer] = {}
        for deployer in deployers:
            if deployer.config_name in seen:
                raise ConfigurationError(
                    f"duplicate deployer for config {deployer.config_name!r}",
                    suggestions=["Give each configuration a unique metadata.name"],
                )
            seen[deployer.config_name] = deployer
        self.deployers: List[Deployer] = list(deployers)

    def deploy(
        self,
        out: TextIO,
        builds: List[Artifact],
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        for deployer in self.deployers:
            deployer.deploy(out, builds, manifests_by_config, token)

    def cleanup(
        self,
        out: TextIO,
        dry_run: bool,
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        for deployer in self.deployers:
            deployer.cleanup(out, dry_run, manifests_by_config, token)

    def dependencies(self) -> List[str]:
        deps: List[str] = []
        for deployer in self.deployers:
            for path in deployer.dependencies():
                if path not in deps:
                    deps.append(path)
        return deps

    def track_build_artifacts(self, builds: List[Artifact], deployed: List[Artifact]) -> None:
        super().track_build_artifacts(builds, deployed)
        for deployer in self.deployers:
            deployer.track_build_artifacts(builds, deployed)

    def register_local_images(self, images: List[Artifact]) -> None:
        super().register_local_images(images)
        for deployer in self.deployers:
            deployer.register_local_images(images)


def create_deployer(config: ProjectConfig, console: Optional[Console] = None) -> Deployer:
    """
    Deployer for one configuration.

    Raises:
        ConfigurationError: If the deploy section is not a known backend
    """
    backend = config.deploy
    if isinstance(backend, KubectlDeploy):
        return KubectlDeployer(config.name, backend, list(config.manifests), console)
    if isinstance(backend, TerraformDeploy):
        return TerraformDeployer(config.name, backend, console)
    raise ConfigurationError(
        f"unexpected deploy backend {type(backend).__name__} for config {config.name!r}",
        context=create_error_context("create_deployer", file_path=config.source_file),
    )


def create_deployers(configs: Sequence[ProjectConfig], console: Optional[Console] = None) -> DeployerMux:
    return DeployerMux([create_deployer(c, console) for c in configs])
