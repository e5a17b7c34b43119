#!/usr/bin/env python3
"""
kubectl deployer.

Pipes the transformed manifests of its own configuration into
``kubectl apply -f -`` and, on cleanup, ``kubectl delete -f -``.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import List, Optional, TextIO

from portside.config.schema import KubectlDeploy
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.graph.artifact import Artifact, strip_tag
from portside.manifest.document import ManifestList
from portside.manifest.visitor import walk_fields

from .contract import Capabilities, Deployer, ManifestsByConfig

logger = logging.getLogger(__name__)


class KubectlDeployer(Deployer):
    BACKEND = "kubectl"

    def __init__(
        self,
        config_name: str,
        config: KubectlDeploy,
        manifest_paths: List[str],
        console: Optional[Console] = None,
        capabilities: Optional[Capabilities] = None,
    ):
        super().__init__(config_name, capabilities)
        self.config = config
        self.manifest_paths = list(manifest_paths)
        self.console = console or Console()

    def deploy(
        self,
        out: TextIO,
        builds: List[Artifact],
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        manifests = manifests_by_config.get(self.config_name)
        if not manifests:
            logger.info("No manifests to deploy for config %s", self.config_name)
            return

        args = ["kubectl"] + self._namespace_args() + ["apply"]
        args += list(self.config.apply_flags) + ["-f", "-"]
        self.console.run(
            args, backend=self.BACKEND, stage="apply", out=out, stdin=str(manifests), token=token
        )
        self.track_build_artifacts(builds, deployed_images(manifests, builds))

    def cleanup(
        self,
        out: TextIO,
        dry_run: bool,
        manifests_by_config: ManifestsByConfig,
        token: Optional[CancellationToken] = None,
    ) -> None:
        manifests = manifests_by_config.get(self.config_name)
        if not manifests:
            return
        if dry_run:
            for doc in manifests:
                namespace = doc.namespace or self.config.default_namespace
                suffix = f" (namespace {namespace})" if namespace else ""
                out.write(f"kubectl: Would delete {doc.kind}/{doc.name}{suffix} (dry run)\n")
            return

        args = ["kubectl"] + self._namespace_args() + ["delete", "--ignore-not-found=true", "--wait=false"]
        args += list(self.config.delete_flags) + ["-f", "-"]
        self.console.run(
            args, backend=self.BACKEND, stage="delete", out=out, stdin=str(manifests), token=token
        )

    def dependencies(self) -> List[str]:
        return list(self.manifest_paths)

    def _namespace_args(self) -> List[str]:
        if self.config.default_namespace:
            return ["--namespace", self.config.default_namespace]
        return []


def deployed_images(manifests: ManifestList, builds: List[Artifact]) -> List[Artifact]:
    """Built artifacts whose images appear in the manifests."""
    by_name = {strip_tag(b.image_name): b for b in builds}
    found = []
    for doc in manifests:
        for _, _, key, value in walk_fields(doc.obj):
            if key != "image" or not isinstance(value, str):
                continue
            artifact = by_name.get(strip_tag(value))
            if artifact is not None:
                found.append(Artifact(image_name=artifact.image_name, tag=value))
    return found
