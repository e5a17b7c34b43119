#!/usr/bin/env python3
"""
Terraform deployer.

Each configured deployment is one terraform root module. Deployments are
applied one at a time in dependency order: ``terraform init``, an optional
``terraform workspace select -or-create`` and ``terraform apply``. Cleanup
runs ``terraform destroy`` for each deployment in the same order.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import List, Optional, TextIO

from portside.config.schema import DeploymentUnit, TerraformDeploy
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import BackendExecutionError
from portside.graph.artifact import Artifact
from portside.graph.scheduler import order_for_execution

from .contract import Capabilities, Deployer, ManifestsByConfig

logger = logging.getLogger(__name__)


class TerraformDeployer(Deployer):
    """Applies terraform deployments sequentially."""

    BACKEND = "terraform"

    def __init__(
        self,
        config_name: str,
        config: TerraformDeploy,
        console: Optional[Console] = None,
        capabilities: Optional[Capabilities] = None,
    ):
        super().__init__(config_name, capabilities)
        self.config = config
        self.console = console or Console()

    def deploy(
        self,
        out: TextIO,
        builds: List[Artifact],
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        logger.info("Terraform Deployer: Starting deployment for config %s", self.config_name)
        for unit in order_for_execution(list(self.config.deployments)):
            try:
                self._deploy_unit(out, unit, token)
            except BackendExecutionError as e:
                raise BackendExecutionError(
                    f"failed to deploy {unit.name}: {e.message}",
                    backend=e.backend,
                    stage=e.stage,
                    returncode=e.returncode,
                    cause=e,
                ) from e
        logger.info("Terraform Deployer: All deployments completed for config %s", self.config_name)

    def _deploy_unit(self, out: TextIO, unit: DeploymentUnit, token: Optional[CancellationToken]) -> None:
        init_args = ["init"]
        for key in sorted(unit.backend_config):
            init_args.append(f"-backend-config={key}={unit.backend_config[key]}")
        self._terraform(out, unit, "init", init_args, token)

        if unit.workspace:
            self._terraform(
                out, unit, "workspace", ["workspace", "select", "-or-create", unit.workspace], token
            )

        apply_args = ["apply"] + _var_args(unit) + list(unit.extra_args)
        if unit.auto_approve:
            apply_args.append("-auto-approve")
        self._terraform(out, unit, "apply", apply_args, token)
        logger.info("Terraform Deployer: Deployment completed for %s", unit.name)

    def cleanup(
        self,
        out: TextIO,
        dry_run: bool,
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        logger.info("Terraform Deployer: Starting cleanup for config %s", self.config_name)
        # Destroys run in apply order, not reversed.
        for unit in order_for_execution(list(self.config.deployments)):
            if dry_run:
                out.write(
                    f"Terraform Deployer: Would run 'terraform destroy' for {unit.dir} (dry run)\n"
                )
                continue
            destroy_args = ["destroy"] + _var_args(unit) + list(unit.extra_args) + ["-auto-approve"]
            try:
                self._terraform(out, unit, "destroy", destroy_args, token)
            except BackendExecutionError as e:
                raise BackendExecutionError(
                    f"failed to destroy {unit.name}: {e.message}",
                    backend=e.backend,
                    stage=e.stage,
                    returncode=e.returncode,
                    cause=e,
                ) from e
            logger.info("Terraform Deployer: Cleanup completed for %s", unit.dir)
        logger.info("Terraform Deployer: All cleanups completed for config %s", self.config_name)

    def dependencies(self) -> List[str]:
        return []

    def _terraform(
        self,
        out: TextIO,
        unit: DeploymentUnit,
        stage: str,
        args: List[str],
        token: Optional[CancellationToken],
    ) -> str:
        return self.console.run(
            ["terraform"] + args,
            backend=self.BACKEND,
            stage=stage,
            out=out,
            cwd=unit.dir,
            token=token,
        )


def _var_args(unit: DeploymentUnit) -> List[str]:
    args = []
    for key in sorted(unit.vars):
        args += ["-var", f"{key}={unit.vars[key]}"]
    for var_file in unit.var_files:
        args += ["-var-file", var_file]
    return args
