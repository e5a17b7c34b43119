#!/usr/bin/env python3
"""
Cloud build specification dispatcher.

Maps an artifact descriptor to a BuildSpec. Each artifact type has its own
constructor that only sets what is unique to that builder; storage source,
machine sizing, logging, timeout, service account and secrets are layered on
afterwards by ``build_spec`` for every type alike.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import Dict, List, Optional

from portside.config.schema import (
    ArtifactDescriptor,
    BuildpackArtifact,
    CloudBuild,
    DockerArtifact,
    JibArtifact,
    KanikoArtifact,
    KoArtifact,
    PackerArtifact,
    variant_name,
)
from portside.core.errors import (
    ConfigurationError,
    PlatformIncompatibilityError,
    create_error_context,
)
from portside.core.platform import ALL_PLATFORMS, Platform, PlatformMatcher
from portside.graph.artifact import strip_tag

from .spec import BuildOptions, BuildSpec, BuildStep, SecretReference, StorageSource

logger = logging.getLogger(__name__)

DEFAULT_BUILDPACKS_BUILDER = "gcr.io/buildpacks/builder:v1"
SECRETS_STEP_IMAGE = "gcr.io/cloud-builders/gsutil"

# Builders that can only target some platforms.
RESTRICTED_PLATFORMS: Dict[type, PlatformMatcher] = {
    BuildpackArtifact: PlatformMatcher(platforms=(Platform("linux", "amd64"),)),
}


class CloudBuildSpecBuilder:
    """Builds cloud build requests from artifact descriptors."""

    def __init__(self, config: CloudBuild):
        self.config = config

    def build_spec(
        self,
        artifact: ArtifactDescriptor,
        tag: str,
        platforms: PlatformMatcher,
        bucket: str,
        object_name: str,
    ) -> BuildSpec:
        """
        Complete build request: artifact specific steps plus common settings.

        Args:
            artifact: The artifact to build
            tag: Fully qualified tag to produce
            platforms: Requested target platforms
            bucket: Bucket holding the uploaded source archive
            object_name: Object name of the source archive

        Returns:
            BuildSpec ready to submit
        """
        spec = self.build_spec_for(artifact, tag, platforms)
        cfg = self.config

        spec.logs_bucket = bucket
        spec.source = StorageSource(bucket=bucket, object=object_name)
        spec.options.disk_size_gb = cfg.disk_size_gb
        spec.options.machine_type = cfg.machine_type
        spec.options.pool = cfg.worker_pool
        spec.options.logging = cfg.logging
        spec.options.log_streaming_option = cfg.log_streaming_option
        spec.timeout = cfg.timeout
        spec.service_account = cfg.service_account

        if cfg.secrets:
            spec.available_secrets = [
                SecretReference(env=s.env, version_name=s.version_name)
                for s in cfg.secrets
            ]
            # Materialise secrets into the workspace before the build steps run.
            script = " && ".join(
                f'echo "$${s.env}" > /workspace/.secrets/{s.env}' for s in cfg.secrets
            )
            spec.steps.insert(
                0,
                BuildStep(
                    name=SECRETS_STEP_IMAGE,
                    id="secrets",
                    entrypoint="bash",
                    args=["-c", "mkdir -p /workspace/.secrets && " + script],
                    secret_env=[s.env for s in cfg.secrets],
                ),
            )
        return spec

    def build_spec_for(
        self, artifact: ArtifactDescriptor, tag: str, platforms: Optional[PlatformMatcher] = None
    ) -> BuildSpec:
        """
        Artifact specific part of a build request.

        Raises:
            ConfigurationError: If the artifact type cannot be built remotely
            PlatformIncompatibilityError: If the builder cannot target any
                of the requested platforms
        """
        platforms = platforms or PlatformMatcher()
        build = artifact.build

        supported = RESTRICTED_PLATFORMS.get(type(build))
        if supported is not None and platforms.is_not_empty():
            if platforms.intersect(supported).is_empty():
                raise PlatformIncompatibilityError(
                    f"{variant_name(build)} builder doesn't support building for platforms "
                    f"{platforms}. Cannot build cloud build artifact:\n{artifact.describe()}",
                    requested=platforms.names(),
                    supported=supported.names(),
                    context=create_error_context(
                        "build_spec", component="CloudBuildSpecBuilder", artifact=artifact.image_name
                    ),
                )

        if isinstance(build, DockerArtifact):
            return self._docker_spec(build, tag, platforms)
        if isinstance(build, KanikoArtifact):
            return self._kaniko_spec(build, tag)
        if isinstance(build, BuildpackArtifact):
            return self._buildpack_spec(build, tag)
        if isinstance(build, JibArtifact):
            return self._jib_spec(build, tag, platforms)
        if isinstance(build, KoArtifact):
            return self._ko_spec(build, tag, platforms)
        suggestions = []
        if isinstance(build, PackerArtifact):
            suggestions.append("Packer artifacts can only be built with the local builder")
        raise ConfigurationError(
            f"unexpected type {variant_name(build)!r} for cloud build artifact:\n"
            f"{artifact.describe()}",
            context=create_error_context(
                "build_spec", component="CloudBuildSpecBuilder", artifact=artifact.image_name
            ),
            suggestions=suggestions,
        )

    def _docker_spec(self, a: DockerArtifact, tag: str, platforms: PlatformMatcher) -> BuildSpec:
        args = ["build", "--tag", tag, "-f", a.dockerfile]
        args += _build_arg_flags(a.build_args)
        for image in a.cache_from:
            args += ["--cache-from", image]
        if a.target:
            args += ["--target", a.target]
        if a.network:
            args += ["--network", a.network]
        if a.no_cache:
            args.append("--no-cache")
        if platforms.is_not_empty() and platforms != ALL_PLATFORMS:
            args += ["--platform", str(platforms)]
        args.append(".")

        steps = [BuildStep(name=self.config.docker_image, args=args)]
        # Warm the layer cache with the images we were told to reuse.
        for image in a.cache_from:
            steps.insert(
                0,
                BuildStep(
                    name=self.config.docker_image,
                    entrypoint="sh",
                    args=["-c", f"docker pull {image} || true"],
                ),
            )
        return BuildSpec(steps=steps, images=[tag])

    def _kaniko_spec(self, a: KanikoArtifact, tag: str) -> BuildSpec:
        args = [
            "--destination", tag,
            "--dockerfile", a.dockerfile,
            "--context", "dir:///workspace",
        ]
        args += _build_arg_flags(a.build_args)
        if a.target:
            args += ["--target", a.target]
        if a.cache:
            args.append("--cache=true")
            if a.cache_repo:
                args += ["--cache-repo", a.cache_repo]
        args += list(a.flags)
        image = a.image or self.config.kaniko_image
        return BuildSpec(steps=[BuildStep(name=image, args=args)])

    def _buildpack_spec(self, a: BuildpackArtifact, tag: str) -> BuildSpec:
        args = ["pack", "build", tag, "--builder", a.builder or DEFAULT_BUILDPACKS_BUILDER]
        if a.run_image:
            args += ["--run-image", a.run_image]
        for env in a.env:
            args += ["--env", env]
        for buildpack in a.buildpacks:
            args += ["--buildpack", buildpack]
        if a.trust_builder:
            args.append("--trust-builder")
        return BuildSpec(steps=[BuildStep(name=self.config.pack_image, args=args)], images=[tag])

    def _jib_spec(self, a: JibArtifact, tag: str, platforms: PlatformMatcher) -> BuildSpec:
        platform_flag: List[str] = []
        if platforms.is_not_empty() and platforms != ALL_PLATFORMS:
            platform_flag = [f"-Djib.from.platforms={platforms}"]

        if a.type == "maven":
            args = list(a.flags) + platform_flag
            if a.project:
                args += ["--projects", a.project, "--also-make"]
            args += ["-Dimage=" + tag, "--non-recursive", "prepare-package", "jib:build"]
            return BuildSpec(steps=[BuildStep(name=self.config.maven_image, args=args)])
        if a.type == "gradle":
            task = f":{a.project}:jib" if a.project else ":jib"
            args = list(a.flags) + platform_flag + [task, "--image=" + tag]
            return BuildSpec(steps=[BuildStep(name=self.config.gradle_image, args=args)])
        raise ConfigurationError(
            f"unsupported jib project type {a.type!r}",
            suggestions=["Set jib.type to maven or gradle"],
        )

    def _ko_spec(self, a: KoArtifact, tag: str, platforms: PlatformMatcher) -> BuildSpec:
        env = ["KO_DOCKER_REPO=" + strip_tag(tag)] + list(a.env)
        if a.base_image:
            env.append("KO_DEFAULTBASEIMAGE=" + a.base_image)
        if a.ldflags:
            env.append("GOFLAGS=-ldflags=" + " ".join(a.ldflags))

        args = ["build", "--bare", "--tags", _tag_of(tag)]
        if platforms.is_not_empty():
            args += ["--platform", str(platforms)]
        args += list(a.flags)
        args.append(a.main)
        return BuildSpec(steps=[BuildStep(name=self.config.ko_image, entrypoint="ko", args=args, env=env)])


def _build_arg_flags(build_args: Dict[str, str]) -> List[str]:
    flags = []
    for key in sorted(build_args):
        flags += ["--build-arg", f"{key}={build_args[key]}"]
    return flags


def _tag_of(image: str) -> str:
    """Tag part of a reference, ``latest`` when there is none."""
    base = strip_tag(image)
    rest = image[len(base):].split("@", 1)[0]
    return rest[1:] if rest.startswith(":") else "latest"
