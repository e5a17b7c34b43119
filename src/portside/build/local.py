#!/usr/bin/env python3
"""
Local build backend.

Builds Dockerfile artifacts with the docker CLI and packer artifacts with
the packer CLI, optionally pushing the result.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import TextIO

from portside.config.schema import (
    ArtifactDescriptor,
    DockerArtifact,
    LocalBuild,
    PackerArtifact,
    variant_name,
)
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import ConfigurationError, create_error_context
from portside.core.platform import ALL_PLATFORMS, PlatformMatcher

from .base import Builder
from .packer import PackerBuilder

logger = logging.getLogger(__name__)


class LocalBuilder(Builder):
    """Builds on this machine."""

    BACKEND = "docker"

    def __init__(self, config: LocalBuild, console: Console = None):
        super().__init__(console)
        self.config = config
        self.packer = PackerBuilder(self.console)

    def concurrency(self) -> int:
        return self.config.concurrency

    def build(
        self,
        out: TextIO,
        artifact: ArtifactDescriptor,
        tag: str,
        platforms: PlatformMatcher,
        token: CancellationToken,
    ) -> str:
        build = artifact.build
        if isinstance(build, DockerArtifact):
            return self._docker_build(out, artifact, build, tag, platforms, token)
        if isinstance(build, PackerArtifact):
            return self.packer.build(out, artifact, tag, token)
        raise ConfigurationError(
            f"unexpected type {variant_name(build)!r} for local artifact:\n{artifact.describe()}",
            context=create_error_context(
                "build", component="LocalBuilder", artifact=artifact.image_name
            ),
            suggestions=["Use build.cloudBuild for this artifact type"],
        )

    def _docker_build(
        self,
        out: TextIO,
        artifact: ArtifactDescriptor,
        docker: DockerArtifact,
        tag: str,
        platforms: PlatformMatcher,
        token: CancellationToken,
    ) -> str:
        args = ["docker", "build", "--tag", tag, "--file", docker.dockerfile]
        for key in sorted(docker.build_args):
            args += ["--build-arg", f"{key}={docker.build_args[key]}"]
        for image in docker.cache_from:
            args += ["--cache-from", image]
        if docker.target:
            args += ["--target", docker.target]
        if docker.network:
            args += ["--network", docker.network]
        if docker.no_cache:
            args.append("--no-cache")
        if platforms.is_not_empty() and platforms != ALL_PLATFORMS:
            args += ["--platform", str(platforms)]
        args.append(".")

        env = {"DOCKER_BUILDKIT": "1" if self.config.use_buildkit else "0"}
        self.console.run(
            args,
            backend=self.BACKEND,
            stage="build",
            out=out,
            cwd=artifact.workspace,
            env=env,
            token=token,
        )

        if not self.config.push:
            return tag

        self.console.run(
            ["docker", "push", tag], backend=self.BACKEND, stage="push", out=out, token=token
        )
        digest = self.console.run(
            ["docker", "image", "inspect", "--format", "{{index .RepoDigests 0}}", tag],
            backend=self.BACKEND,
            stage="inspect",
            token=token,
        )
        # RepoDigests is name@sha256:..., keep the tag alongside the digest.
        _, _, sha = digest.partition("@")
        return f"{tag}@{sha}" if sha else tag
