#!/usr/bin/env python3
"""
Packer builder.

Runs ``packer init`` and then ``packer build`` against the artifact's
template, passing the image name and tag as template variables.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import os
from typing import Dict, Iterable, TextIO

from portside.config.schema import ArtifactDescriptor, PackerArtifact
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class PackerBuilder:
    """Builds PackerArtifact descriptors with the packer CLI."""

    BACKEND = "packer"

    def __init__(self, console: Console):
        self.console = console

    def build(
        self, out: TextIO, artifact: ArtifactDescriptor, tag: str, token: CancellationToken
    ) -> str:
        packer = self._packer_artifact(artifact)
        self.init(out, artifact, token)

        args = ["packer", "build"]
        args += list(packer.build_args)
        args += ["-var", f"image_name={artifact.image_name}"]
        args += ["-var", f"image_tag={tag}"]
        args.append(template_arg(artifact))

        self.console.run(
            args,
            backend=self.BACKEND,
            stage="build",
            out=out,
            cwd=context_dir(artifact),
            env=_env_pairs(packer.env),
            token=token,
        )
        logger.info("Packer built %s", tag)
        return tag

    def init(self, out: TextIO, artifact: ArtifactDescriptor, token: CancellationToken) -> None:
        packer = self._packer_artifact(artifact)
        self.console.run(
            ["packer", "init", template_arg(artifact)],
            backend=self.BACKEND,
            stage="init",
            out=out,
            cwd=context_dir(artifact),
            env=_env_pairs(packer.env),
            token=token,
        )

    @staticmethod
    def _packer_artifact(artifact: ArtifactDescriptor) -> PackerArtifact:
        if not isinstance(artifact.build, PackerArtifact):
            raise ConfigurationError(
                f"artifact {artifact.image_name!r} is not a packer artifact"
            )
        return artifact.build


def context_dir(artifact: ArtifactDescriptor) -> str:
    """Workspace if set, otherwise the template's directory."""
    if artifact.workspace:
        return artifact.workspace
    return os.path.dirname(artifact.build.template_path) or "."


def template_arg(artifact: ArtifactDescriptor) -> str:
    """Template path as seen from context_dir."""
    if artifact.workspace:
        return artifact.build.template_path
    return os.path.basename(artifact.build.template_path)


def _env_pairs(pairs: Iterable[str]) -> Dict[str, str]:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ConfigurationError(f"invalid env entry {pair!r}: expected KEY=VALUE")
        env[key] = value
    return env
