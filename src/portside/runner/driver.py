#!/usr/bin/env python3
"""
Orchestration driver.

Sequences one invocation through its stages::

    IDLE -> BUILDING -> TRANSFORMING -> DEPLOYING -> DONE
                    \\              \\-> CLEANUP
                     \\-> CLEANUP

Any stage failure moves the driver to FAILED and re-raises the error;
later stages never start. The run, delete, render and filter commands are
thin flows over the same stages.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import io
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

from portside.build.base import Builder
from portside.build.cloud import CloudBuilder
from portside.build.local import LocalBuilder
from portside.build.scheduler import BuildScheduler
from portside.build.tagger import Tagger, tagger_for
from portside.config.schema import (
    BuildBackend,
    CloudBuild,
    GlobalConfig,
    LocalBuild,
    ProjectConfig,
)
from portside.core.cancellation import CancellationToken
from portside.core.console import Console
from portside.core.errors import (
    BackendExecutionError,
    ConfigurationError,
    OrchestrationError,
    create_error_context,
)
from portside.core.platform import PlatformMatcher
from portside.deploy.contract import Deployer, ManifestsByConfig
from portside.deploy.factory import create_deployers
from portside.graph.artifact import Artifact
from portside.manifest.debugging import (
    DEFAULT_DEBUG_HELPERS_REGISTRY,
    ImageConfigRetriever,
    Registries,
)
from portside.manifest.document import ManifestList
from portside.manifest.pipeline import TransformPipeline

logger = logging.getLogger(__name__)


class DriverState(Enum):
    IDLE = "idle"
    BUILDING = "building"
    TRANSFORMING = "transforming"
    DEPLOYING = "deploying"
    DONE = "done"
    CLEANUP = "cleanup"
    FAILED = "failed"


_TRANSITIONS = {
    DriverState.IDLE: {DriverState.BUILDING},
    DriverState.BUILDING: {DriverState.TRANSFORMING, DriverState.CLEANUP},
    DriverState.TRANSFORMING: {DriverState.DEPLOYING, DriverState.CLEANUP, DriverState.DONE},
    DriverState.DEPLOYING: {DriverState.DONE},
}


class DigestSource(Enum):
    """Where build results come from."""

    BUILD = "build"
    # Tags only: no builder is invoked.
    TAG = "tag"
    NONE = "none"


@dataclass
class RunOptions:
    """Per invocation settings coming from the command line."""

    overrides: Dict[str, str] = field(default_factory=dict)
    custom_labels: Dict[str, str] = field(default_factory=dict)
    insecure_registries: Tuple[str, ...] = ()
    platforms: Tuple[str, ...] = ()
    concurrency: Optional[int] = None
    debug: bool = False
    protocols: Tuple[str, ...] = ()
    digest_source: DigestSource = DigestSource.BUILD


def resolve_registries(
    global_config: GlobalConfig,
    configs: Sequence[ProjectConfig],
    cli_insecure: Sequence[str] = (),
) -> Registries:
    """Merge insecure registries from CLI, configurations and global config."""
    insecure = set(cli_insecure)
    for cfg in configs:
        insecure.update(cfg.build.insecure_registries)
    insecure.update(global_config.insecure_registries)
    return Registries(
        debug_helpers_registry=global_config.debug_helpers_registry or DEFAULT_DEBUG_HELPERS_REGISTRY,
        insecure_registries=frozenset(insecure),
    )


def builder_for(backend: BuildBackend, console: Optional[Console] = None) -> Builder:
    if isinstance(backend, LocalBuild):
        return LocalBuilder(backend, console)
    if isinstance(backend, CloudBuild):
        return CloudBuilder(backend, console)
    raise ConfigurationError(f"unexpected build backend {type(backend).__name__}")


class OrchestrationDriver:
    """Runs build, transform and deploy or cleanup for loaded configurations."""

    def __init__(
        self,
        configs: Sequence[ProjectConfig],
        options: Optional[RunOptions] = None,
        global_config: Optional[GlobalConfig] = None,
        console: Optional[Console] = None,
        deployer: Optional[Deployer] = None,
        token: Optional[CancellationToken] = None,
        builder_factory=builder_for,
        tagger_factory=tagger_for,
        retrieve_image_config: Optional[ImageConfigRetriever] = None,
        on_state: Optional[Callable[[DriverState], None]] = None,
    ):
        self.configs = list(configs)
        self.options = options or RunOptions()
        self.console = console or Console()
        self.token = token or CancellationToken()
        self.run_id = uuid.uuid4().hex
        self.registries = resolve_registries(
            global_config or GlobalConfig(), self.configs, self.options.insecure_registries
        )
        self.pipeline = TransformPipeline(
            [c.resource_selector for c in self.configs],
            self.registries,
            run_id=self.run_id,
            retrieve_image_config=retrieve_image_config,
        )
        self.deployer = deployer if deployer is not None else create_deployers(self.configs, self.console)
        self._builder_factory = builder_factory
        self._tagger_factory = tagger_factory
        self.state = DriverState.IDLE
        self.failed_stage: Optional[DriverState] = None
        self.on_state = on_state

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _enter(self, state: DriverState) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if state not in allowed:
            raise OrchestrationError(
                f"cannot move from {self.state.value} to {state.value}",
                context=create_error_context("orchestrate", phase=self.state.value),
            )
        logger.debug("Driver state %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    def _fail(self) -> None:
        self.failed_stage = self.state
        self.state = DriverState.FAILED

    def build(self, out: TextIO) -> List[Artifact]:
        """Build every artifact of every configuration."""
        self._enter(DriverState.BUILDING)
        try:
            return self._build(out)
        except BaseException:
            self._fail()
            raise

    def _build(self, out: TextIO) -> List[Artifact]:
        source = self.options.digest_source
        if source == DigestSource.NONE:
            return []

        results: List[Artifact] = []
        for cfg in self.configs:
            artifacts = list(cfg.build.artifacts)
            if not artifacts:
                continue
            tagger: Tagger = self._tagger_factory(cfg.build.tag_policy, self.console)
            if source == DigestSource.TAG:
                results.extend(
                    Artifact(
                        image_name=a.image_name,
                        tag=tagger.tag(a, self.token),
                        runtime_type=a.runtime_type,
                    )
                    for a in artifacts
                )
                continue

            platforms = PlatformMatcher.parse(self.options.platforms or cfg.build.platforms)
            builder = self._builder_factory(cfg.build.backend, self.console)
            scheduler = BuildScheduler(builder, tagger, self.options.concurrency)
            results.extend(scheduler.build_all(out, artifacts, platforms, self.token))
        return results

    def use_builds(self, builds: List[Artifact]) -> List[Artifact]:
        """Take build results from elsewhere instead of building."""
        self._enter(DriverState.BUILDING)
        return list(builds)

    def render(self, builds: List[Artifact]) -> ManifestsByConfig:
        """Load and transform the manifests of every configuration."""
        self._enter(DriverState.TRANSFORMING)
        try:
            manifests_by_config: ManifestsByConfig = {}
            for cfg in self.configs:
                manifests = ManifestList.load_files(list(cfg.manifests))
                manifests_by_config[cfg.name] = self.transform(manifests, builds)
            return manifests_by_config
        except BaseException:
            self._fail()
            raise

    def transform(self, manifests: ManifestList, builds: List[Artifact]) -> ManifestList:
        return self.pipeline.apply(
            manifests,
            overrides=self.options.overrides,
            built_artifacts=builds,
            debug=self.options.debug,
            custom_labels=self.options.custom_labels,
            protocols=self.options.protocols,
        )

    def deploy(self, out: TextIO, builds: List[Artifact], manifests: ManifestsByConfig) -> None:
        self._enter(DriverState.DEPLOYING)
        try:
            self.deployer.register_local_images(builds)
            self.deployer.deploy(out, builds, manifests, self.token)
        except BaseException:
            self._fail()
            raise
        self.state = DriverState.DONE

    def cleanup(self, out: TextIO, dry_run: bool, manifests: ManifestsByConfig) -> None:
        self._enter(DriverState.CLEANUP)
        try:
            self.deployer.cleanup(out, dry_run, manifests, self.token)
        except BaseException:
            self._fail()
            raise

    def finish(self) -> None:
        self._enter(DriverState.DONE)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def run(self, out: TextIO) -> List[Artifact]:
        """Build, render and deploy."""
        builds = self.build(out)
        manifests = self.render(builds)
        self.deploy(out, builds, manifests)
        return builds

    def delete(self, out: TextIO, dry_run: bool = False) -> None:
        """Render with tag-only build results and clean up what was deployed."""
        self.options.digest_source = DigestSource.TAG
        builds = self.build(io.StringIO())
        manifests = self.render(builds)
        self.cleanup(out, dry_run, manifests)

    def render_flow(
        self,
        out: TextIO,
        builds: Optional[List[Artifact]] = None,
        build_out: Optional[TextIO] = None,
    ) -> ManifestsByConfig:
        """Build (unless results are given), render and write the manifest stream."""
        if builds is not None:
            builds = self.use_builds(builds)
        else:
            builds = self.build(build_out or io.StringIO())
        manifests = self.render(builds)
        out.write(_join(manifests.values()))
        self.finish()
        return manifests

    def filter(
        self,
        source: TextIO,
        out: TextIO,
        builds: Optional[List[Artifact]] = None,
        post_renderer: str = "",
    ) -> ManifestList:
        """Transform a manifest stream from ``source`` or a post-renderer."""
        builds = self.use_builds(builds or [])
        self._enter(DriverState.TRANSFORMING)
        try:
            if post_renderer:
                manifests = ManifestList.load(self._post_render(post_renderer, source.read()))
            else:
                manifests = ManifestList.load(source)
            manifests = self.transform(manifests, builds)
        except BaseException:
            self._fail()
            raise
        out.write(str(manifests))
        self.finish()
        return manifests

    def _post_render(self, executable: str, manifests: str) -> str:
        try:
            return self.console.run(
                [executable],
                backend="post-renderer",
                stage="render",
                stdin=manifests,
                token=self.token,
                separate_stderr=True,
            )
        except BackendExecutionError as e:
            raise BackendExecutionError(
                f"running post-renderer: {e.message}",
                backend=e.backend,
                stage=e.stage,
                returncode=e.returncode,
                cause=e,
            ) from e


def _join(lists) -> str:
    combined = ManifestList()
    for manifests in lists:
        combined.extend(manifests)
    return str(combined)
