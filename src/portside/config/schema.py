#!/usr/bin/env python3
"""
Configuration schema for portside.

Typed, immutable views of a loaded ``portside.yaml`` document. Artifact
build variants and deploy backends are closed unions: exactly one member is
chosen at load time and every dispatch site matches on the concrete type.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DockerArtifact:
    """Build with a Dockerfile."""

    dockerfile: str = "Dockerfile"
    target: str = ""
    build_args: Dict[str, str] = field(default_factory=dict)
    cache_from: Tuple[str, ...] = ()
    network: str = ""
    no_cache: bool = False


@dataclass(frozen=True)
class KanikoArtifact:
    """Build with the kaniko executor."""

    dockerfile: str = "Dockerfile"
    target: str = ""
    build_args: Dict[str, str] = field(default_factory=dict)
    image: str = ""
    cache: bool = False
    cache_repo: str = ""
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BuildpackArtifact:
    """Build with Cloud Native Buildpacks."""

    builder: str = ""
    run_image: str = ""
    env: Tuple[str, ...] = ()
    buildpacks: Tuple[str, ...] = ()
    trust_builder: bool = False


@dataclass(frozen=True)
class JibArtifact:
    """Build a Java project with Jib (maven or gradle)."""

    project: str = ""
    type: str = "maven"
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class KoArtifact:
    """Build a Go binary with ko."""

    main: str = "."
    base_image: str = ""
    env: Tuple[str, ...] = ()
    flags: Tuple[str, ...] = ()
    ldflags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PackerArtifact:
    """Build a machine or container image with packer."""

    template_path: str = ""
    build_args: Tuple[str, ...] = ()
    env: Tuple[str, ...] = ()


BuildVariant = Union[
    DockerArtifact,
    KanikoArtifact,
    BuildpackArtifact,
    JibArtifact,
    KoArtifact,
    PackerArtifact,
]

# Config key -> variant type. The order is the order in error messages.
ARTIFACT_VARIANTS = {
    "docker": DockerArtifact,
    "kaniko": KanikoArtifact,
    "buildpacks": BuildpackArtifact,
    "jib": JibArtifact,
    "ko": KoArtifact,
    "packer": PackerArtifact,
}


def variant_name(variant: Optional[BuildVariant]) -> str:
    """Config key of a build variant, or "unknown"."""
    for name, cls in ARTIFACT_VARIANTS.items():
        if type(variant) is cls:
            return name
    return "unknown"


@dataclass(frozen=True)
class ArtifactDependency:
    """Another artifact that must be built first."""

    image_name: str
    alias: str = ""


@dataclass(frozen=True)
class ArtifactDescriptor:
    """One buildable image."""

    image_name: str
    workspace: str = "."
    build: Optional[BuildVariant] = None
    dependencies: Tuple[ArtifactDependency, ...] = ()
    platforms: Tuple[str, ...] = ()
    runtime_type: str = ""

    @property
    def name(self) -> str:
        return self.image_name

    @property
    def depends_on(self) -> List[str]:
        return [d.image_name for d in self.dependencies]

    def describe(self) -> str:
        """Human readable summary used in error messages."""
        return (
            f"image: {self.image_name}\n"
            f"workspace: {self.workspace}\n"
            f"type: {variant_name(self.build)}"
        )


# ---------------------------------------------------------------------------
# Build backends
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SecretManagerSecret:
    """A Secret Manager version exposed to build steps as an env var."""

    env: str
    version_name: str


@dataclass(frozen=True)
class LocalBuild:
    """Build on the local machine with the local docker daemon."""

    push: bool = False
    concurrency: int = 1
    use_buildkit: bool = True


@dataclass(frozen=True)
class CloudBuild:
    """Submit builds to a remote container-build service."""

    project_id: str = ""
    bucket: str = ""
    disk_size_gb: int = 0
    machine_type: str = ""
    worker_pool: str = ""
    logging: str = ""
    log_streaming_option: str = ""
    timeout: str = ""
    service_account: str = ""
    docker_image: str = "gcr.io/cloud-builders/docker"
    kaniko_image: str = "gcr.io/kaniko-project/executor"
    pack_image: str = "gcr.io/k8s-skaffold/pack"
    maven_image: str = "gcr.io/cloud-builders/mvn"
    gradle_image: str = "gcr.io/cloud-builders/gradle"
    ko_image: str = "gcr.io/k8s-skaffold/skaffold"
    secrets: Tuple[SecretManagerSecret, ...] = ()
    concurrency: int = 0


BuildBackend = Union[LocalBuild, CloudBuild]


@dataclass(frozen=True)
class BuildConfig:
    artifacts: Tuple[ArtifactDescriptor, ...] = ()
    backend: BuildBackend = field(default_factory=LocalBuild)
    tag_policy: str = "gitCommit"
    platforms: Tuple[str, ...] = ()
    insecure_registries: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Deploy backends
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeploymentUnit:
    """One independently applyable infrastructure stack."""

    name: str
    dir: str = "."
    depends_on: Tuple[str, ...] = ()
    vars: Dict[str, str] = field(default_factory=dict)
    var_files: Tuple[str, ...] = ()
    extra_args: Tuple[str, ...] = ()
    auto_approve: bool = False
    workspace: str = ""
    backend_config: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TerraformDeploy:
    deployments: Tuple[DeploymentUnit, ...] = ()


@dataclass(frozen=True)
class KubectlDeploy:
    default_namespace: str = ""
    apply_flags: Tuple[str, ...] = ()
    delete_flags: Tuple[str, ...] = ()


DeployBackend = Union[KubectlDeploy, TerraformDeploy]


# ---------------------------------------------------------------------------
# Manifests and selectors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceFilter:
    """Field paths to transform for one GroupKind (``Kind.group``)."""

    group_kind: str
    image: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResourceSelectorConfig:
    allow: Tuple[ResourceFilter, ...] = ()
    deny: Tuple[ResourceFilter, ...] = ()


@dataclass(frozen=True)
class Profile:
    """A named variant of a configuration; only listed, never applied."""

    name: str
    # "local" or "cloudBuild"
    build_env: str = "local"


@dataclass(frozen=True)
class ProjectConfig:
    """One configuration document."""

    name: str
    source_file: str = ""
    build: BuildConfig = field(default_factory=BuildConfig)
    deploy: Optional[DeployBackend] = None
    manifests: Tuple[str, ...] = ()
    resource_selector: ResourceSelectorConfig = field(
        default_factory=ResourceSelectorConfig
    )
    profiles: Tuple[Profile, ...] = ()


@dataclass(frozen=True)
class GlobalConfig:
    """User level settings from ~/.portside/config.yaml."""

    insecure_registries: Tuple[str, ...] = ()
    debug_helpers_registry: str = ""
