#!/usr/bin/env python3
"""
Concurrent artifact builds.

Artifacts build in a thread pool bounded by the builder's concurrency. An
artifact is submitted only once every artifact it requires has been built
successfully. The first failure cancels everything still queued or running
and is re-raised unchanged.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import io
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence, TextIO

from portside.config.schema import ArtifactDescriptor
from portside.core.cancellation import CancellationToken
from portside.core.errors import OrchestrationError
from portside.core.platform import PlatformMatcher
from portside.graph.artifact import Artifact
from portside.graph.scheduler import order_for_execution

from .base import Builder
from .tagger import Tagger

logger = logging.getLogger(__name__)


class BuildScheduler:
    """Runs builds for a set of artifacts, respecting their dependencies."""

    def __init__(self, builder: Builder, tagger: Tagger, concurrency: Optional[int] = None):
        self.builder = builder
        self.tagger = tagger
        self.concurrency = builder.concurrency() if concurrency is None else concurrency
        self._out_lock = threading.Lock()

    def build_all(
        self,
        out: TextIO,
        artifacts: Sequence[ArtifactDescriptor],
        platforms: PlatformMatcher,
        token: CancellationToken,
    ) -> List[Artifact]:
        """
        Build every artifact.

        Args:
            out: Writer receiving build output
            artifacts: Artifacts to build
            platforms: Default target platforms; per artifact platforms win
            token: Parent cancellation token

        Returns:
            Build results in the order the artifacts were given

        Raises:
            DependencyError: If artifact dependencies form a cycle
            PortsideError: The first build failure, unchanged
        """
        if not artifacts:
            return []
        # Rejects cycles and self-dependencies before anything starts.
        order_for_execution(list(artifacts))

        names = {a.name for a in artifacts}
        pending = {a.name: a for a in artifacts}
        results: Dict[str, Artifact] = {}
        build_token = token.child()
        workers = self.concurrency if self.concurrency > 0 else len(artifacts)
        # Buffer output when builds run side by side so logs don't interleave.
        buffered = workers > 1 and len(artifacts) > 1

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="portside-build") as pool:
            running: Dict[Future, ArtifactDescriptor] = {}
            try:
                while pending or running:
                    for name in list(pending):
                        artifact = pending[name]
                        deps = [d for d in artifact.depends_on if d in names]
                        if all(d in results for d in deps):
                            del pending[name]
                            future = pool.submit(
                                self._build_one, out, artifact, platforms, build_token, buffered
                            )
                            running[future] = artifact
                    if not running:
                        raise OrchestrationError(
                            f"unable to schedule builds for {', '.join(sorted(pending))}"
                        )

                    done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                    for future in done:
                        artifact = running.pop(future)
                        results[artifact.name] = future.result()
            except BaseException:
                build_token.cancel("another build failed")
                for future in running:
                    future.cancel()
                raise

        return [results[a.name] for a in artifacts]

    def _build_one(
        self,
        out: TextIO,
        artifact: ArtifactDescriptor,
        platforms: PlatformMatcher,
        token: CancellationToken,
        buffered: bool,
    ) -> Artifact:
        token.raise_if_cancelled()
        tag = self.tagger.tag(artifact, token)
        if artifact.platforms:
            platforms = PlatformMatcher.parse(artifact.platforms)

        writer = io.StringIO() if buffered else out
        logger.info("Building [%s]...", artifact.image_name)
        try:
            reference = self.builder.build(writer, artifact, tag, platforms, token)
        finally:
            if buffered:
                with self._out_lock:
                    out.write(writer.getvalue())
        logger.info("Build [%s] succeeded", artifact.image_name)
        return Artifact(
            image_name=artifact.image_name, tag=reference, runtime_type=artifact.runtime_type
        )
