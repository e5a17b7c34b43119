#!/usr/bin/env python3
"""
Cloud build backend.

Each artifact's workspace is archived, uploaded to a bucket with ``gsutil``
and built remotely from a request file submitted with ``gcloud builds
submit --no-source``.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import os
import tempfile
import uuid
from typing import List, TextIO

import yaml

from portside.config.schema import ArtifactDescriptor, CloudBuild
from portside.core.archive import create_tar_gz
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.platform import PlatformMatcher

from .base import Builder
from .dispatcher import CloudBuildSpecBuilder

logger = logging.getLogger(__name__)

# Directories never shipped to the build service.
EXCLUDED_DIRS = {".git", "__pycache__", "node_modules"}


class CloudBuilder(Builder):
    """Builds artifacts on the remote build service."""

    BACKEND = "cloudbuild"

    def __init__(self, config: CloudBuild, console: Console = None):
        super().__init__(console)
        self.config = config
        self.specs = CloudBuildSpecBuilder(config)

    def concurrency(self) -> int:
        return self.config.concurrency

    @property
    def bucket(self) -> str:
        return self.config.bucket or f"{self.config.project_id}_cloudbuild"

    def build(
        self,
        out: TextIO,
        artifact: ArtifactDescriptor,
        tag: str,
        platforms: PlatformMatcher,
        token: CancellationToken,
    ) -> str:
        # Validate before uploading anything.
        self.specs.build_spec_for(artifact, tag, platforms)

        object_name = f"source/{self.config.project_id or 'portside'}-{uuid.uuid4().hex}.tar.gz"
        with tempfile.TemporaryDirectory(prefix="portside-") as tmp:
            archive = os.path.join(tmp, "context.tar.gz")
            with open(archive, "wb") as f:
                create_tar_gz(token, f, artifact.workspace, workspace_files(artifact.workspace))
            self.console.run(
                ["gsutil", "cp", archive, f"gs://{self.bucket}/{object_name}"],
                backend=self.BACKEND,
                stage="upload",
                out=out,
                token=token,
            )

            spec = self.specs.build_spec(artifact, tag, platforms, self.bucket, object_name)
            config_file = os.path.join(tmp, "cloudbuild.yaml")
            with open(config_file, "w") as f:
                yaml.safe_dump(spec.to_dict(), f, sort_keys=False)

            args = ["gcloud", "builds", "submit", "--no-source", "--config", config_file]
            if self.config.project_id:
                args += ["--project", self.config.project_id]
            self.console.run(args, backend=self.BACKEND, stage="build", out=out, token=token)

        logger.info("Cloud build finished for %s", tag)
        return tag


def workspace_files(root: str) -> List[str]:
    """Files under root, relative to it, in a stable order."""
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        for name in sorted(filenames):
            files.append(os.path.relpath(os.path.join(dirpath, name), root))
    return files
