#!/usr/bin/env python3
"""
Image configuration lookup through the docker CLI.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
import logging
from typing import Optional

from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import BackendExecutionError
from portside.manifest.debugging import ImageConfig

logger = logging.getLogger(__name__)


class DockerImageConfigRetriever:
    """Reads entrypoint, cmd and env of an image, pulling it if needed."""

    def __init__(
        self,
        console: Optional[Console] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.console = console or Console(shellVerbose=False, live_output=False)
        self.token = token

    def __call__(self, image: str, insecure: bool) -> Optional[ImageConfig]:
        # Pulls from insecure registries depend on the daemon's own settings.
        if insecure:
            logger.debug("Image %s is in an insecure registry", image)
        try:
            raw = self._inspect(image)
        except BackendExecutionError:
            try:
                self.console.run(
                    ["docker", "pull", image], backend="docker", stage="pull", token=self.token
                )
                raw = self._inspect(image)
            except BackendExecutionError as e:
                logger.warning("Unable to retrieve image config for %s: %s", image, e)
                return None

        config = json.loads(raw or "{}") or {}
        env = {}
        for pair in config.get("Env") or []:
            key, _, value = pair.partition("=")
            env[key] = value
        return ImageConfig(
            entrypoint=tuple(config.get("Entrypoint") or ()),
            cmd=tuple(config.get("Cmd") or ()),
            env=env,
            working_dir=config.get("WorkingDir") or "",
        )

    def _inspect(self, image: str) -> str:
        return self.console.run(
            ["docker", "image", "inspect", "--format", "{{json .Config}}", image],
            backend="docker",
            stage="inspect",
            token=self.token,
        )
