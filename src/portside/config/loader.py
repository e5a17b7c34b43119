#!/usr/bin/env python3
"""
Configuration loader with multi-layer merging.

Layers (low to high priority):
1. Built-in defaults
2. Project file (portside.yaml, one or more YAML documents)
3. CLI overrides

Backends are inferred from which sub-configuration is present, and
conflicting or missing backends are rejected at load time.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import os
from copy import deepcopy
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from portside.core.errors import ConfigurationError, create_error_context
from portside.manifest.selector import parse_group_kind

from .schema import (
    ARTIFACT_VARIANTS,
    ArtifactDependency,
    ArtifactDescriptor,
    BuildConfig,
    CloudBuild,
    DeploymentUnit,
    GlobalConfig,
    KubectlDeploy,
    LocalBuild,
    Profile,
    ProjectConfig,
    ResourceFilter,
    ResourceSelectorConfig,
    SecretManagerSecret,
    TerraformDeploy,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "portside.yaml"
GLOBAL_CONFIG_ENV = "PORTSIDE_GLOBAL_CONFIG"
DEFAULT_GLOBAL_CONFIG = Path.home() / ".portside" / "config.yaml"

DEFAULTS: Dict[str, Any] = {
    "build": {
        "tagPolicy": "gitCommit",
    },
    "manifests": {"rawYaml": []},
}


class ConfigLoader:
    """Loads portside.yaml documents into ProjectConfig objects."""

    @classmethod
    def deep_merge(cls, base: Dict, override: Dict) -> Dict:
        """
        Deep merge two dictionaries. Override wins conflicts.
        Nested dicts are merged, lists/primitives are replaced.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = deepcopy(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls.deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)
        return result

    @classmethod
    def load_file(
        cls, path: str, overrides: Optional[Dict[str, Any]] = None
    ) -> List[ProjectConfig]:
        """
        Load every configuration document in a file.

        Args:
            path: Path to portside.yaml
            overrides: Values merged over every document (highest priority)

        Returns:
            One ProjectConfig per document, in file order

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigurationError: If a document is invalid or names collide
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration not found: {path}")

        with open(config_path) as f:
            try:
                documents = [d for d in yaml.safe_load_all(f) if d is not None]
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"parsing {path}: {e}",
                    context=create_error_context("load_config", file_path=path),
                    cause=e,
                ) from e

        configs = []
        seen = set()
        for index, document in enumerate(documents):
            if not isinstance(document, dict):
                raise ConfigurationError(
                    f"{path}: document {index} is not a mapping",
                    context=create_error_context("load_config", file_path=path),
                )
            merged = cls.deep_merge(DEFAULTS, document)
            if overrides:
                merged = cls.deep_merge(merged, overrides)
            config = cls.parse_config(merged, str(config_path), index)
            if config.name in seen:
                raise ConfigurationError(
                    f"duplicate config name {config.name!r} in {path}",
                    suggestions=["Give each document a unique metadata.name"],
                )
            seen.add(config.name)
            configs.append(config)

        logger.debug("Loaded %d config(s) from %s", len(configs), path)
        return configs

    @classmethod
    def parse_config(cls, raw: Dict[str, Any], source_file: str = "", index: int = 0) -> ProjectConfig:
        """Turn one merged document into a ProjectConfig."""
        base_dir = os.path.dirname(source_file) if source_file else ""
        metadata = raw.get("metadata") or {}
        name = metadata.get("name") or f"{source_file or 'config'}:{index}"

        build_raw = raw.get("build") or {}
        manifests_raw = raw.get("manifests") or {}
        selector_raw = raw.get("resourceSelector") or {}

        return ProjectConfig(
            name=name,
            source_file=source_file,
            build=cls._parse_build(build_raw, base_dir, name),
            deploy=cls._parse_deploy(raw.get("deploy"), base_dir, name),
            manifests=tuple(
                _resolve(base_dir, p) for p in manifests_raw.get("rawYaml") or []
            ),
            resource_selector=ResourceSelectorConfig(
                allow=tuple(_parse_filter(f) for f in selector_raw.get("allow") or []),
                deny=tuple(_parse_filter(f) for f in selector_raw.get("deny") or []),
            ),
            profiles=_parse_profiles(raw.get("profiles") or [], name),
        )

    @classmethod
    def parse_artifact(cls, raw: Dict[str, Any], base_dir: str = "") -> ArtifactDescriptor:
        """
        Parse one artifact entry.

        Exactly one of the build variant keys must be present.
        """
        image = raw.get("image")
        if not image:
            raise ConfigurationError(
                "artifact is missing required field 'image'",
                suggestions=["Every entry under build.artifacts needs an image name"],
            )

        present = [key for key in ARTIFACT_VARIANTS if raw.get(key) is not None]
        if len(present) != 1:
            found = ", ".join(present) if present else "none"
            raise ConfigurationError(
                f"unexpected artifact type for {image!r}: expected exactly one of "
                f"{', '.join(ARTIFACT_VARIANTS)}, found {found}",
                context=create_error_context("parse_artifact", artifact=image),
            )
        key = present[0]
        variant = _build_variant(key, raw[key] or {})

        workspace = _resolve(base_dir, raw.get("context", "."))
        if key == "packer" and raw.get("context") is None:
            # packer runs from the template's directory unless a context is set
            workspace = ""
            variant = replace(variant, template_path=_resolve(base_dir, variant.template_path))

        return ArtifactDescriptor(
            image_name=image,
            workspace=workspace,
            build=variant,
            dependencies=tuple(
                _parse_dependency(image, d)
                for d in raw.get("requires") or []
            ),
            platforms=tuple(raw.get("platforms") or ()),
            runtime_type=raw.get("runtimeType", ""),
        )

    @classmethod
    def _parse_build(cls, raw: Dict[str, Any], base_dir: str, config_name: str) -> BuildConfig:
        backends = [key for key in ("local", "cloudBuild") if key in raw]
        if len(backends) > 1:
            raise ConfigurationError(
                f"config {config_name!r}: conflicting build configuration, "
                "both 'local' and 'cloudBuild' present",
                suggestions=["Specify only one build backend"],
            )

        if backends == ["cloudBuild"]:
            backend = _parse_cloud_build(raw["cloudBuild"] or {}, config_name)
        else:
            local = raw.get("local") or {}
            backend = LocalBuild(
                push=bool(local.get("push", False)),
                concurrency=int(local.get("concurrency", 1)),
                use_buildkit=bool(local.get("useBuildkit", True)),
            )

        return BuildConfig(
            artifacts=tuple(
                cls.parse_artifact(a, base_dir) for a in raw.get("artifacts") or []
            ),
            backend=backend,
            tag_policy=raw.get("tagPolicy", "gitCommit"),
            platforms=tuple(raw.get("platforms") or ()),
            insecure_registries=tuple(raw.get("insecureRegistries") or ()),
        )

    @classmethod
    def _parse_deploy(cls, raw: Optional[Dict[str, Any]], base_dir: str, config_name: str):
        if raw is None:
            return KubectlDeploy()

        present = [key for key in ("kubectl", "terraform") if key in raw]
        if len(present) != 1:
            raise ConfigurationError(
                f"config {config_name!r}: expected exactly one deploy backend "
                f"(kubectl or terraform), found {len(present)}",
                suggestions=["Specify one of deploy.kubectl or deploy.terraform"],
            )

        if present[0] == "kubectl":
            kubectl = raw["kubectl"] or {}
            return KubectlDeploy(
                default_namespace=kubectl.get("defaultNamespace", ""),
                apply_flags=tuple(kubectl.get("applyFlags") or ()),
                delete_flags=tuple(kubectl.get("deleteFlags") or ()),
            )

        terraform = raw["terraform"] or {}
        units = []
        for entry in terraform.get("deployments") or []:
            if not entry.get("name"):
                raise ConfigurationError(
                    f"config {config_name!r}: terraform deployment is missing 'name'"
                )
            units.append(
                DeploymentUnit(
                    name=entry["name"],
                    dir=_resolve(base_dir, entry.get("dir", ".")),
                    depends_on=tuple(entry.get("dependsOn") or ()),
                    vars={k: str(v) for k, v in (entry.get("vars") or {}).items()},
                    var_files=tuple(entry.get("varFiles") or ()),
                    extra_args=tuple(entry.get("extraArgs") or ()),
                    auto_approve=bool(entry.get("autoApprove", False)),
                    workspace=entry.get("workspace", ""),
                    backend_config={
                        k: str(v) for k, v in (entry.get("backendConfig") or {}).items()
                    },
                )
            )
        return TerraformDeploy(deployments=tuple(units))

    @classmethod
    def load_global_config(cls, path: Optional[str] = None) -> GlobalConfig:
        """
        Load user level settings.

        Missing files yield an empty GlobalConfig; malformed ones raise.
        """
        path = path or os.environ.get(GLOBAL_CONFIG_ENV) or str(DEFAULT_GLOBAL_CONFIG)
        if not os.path.exists(path):
            return GlobalConfig()

        with open(path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"parsing global config {path}: {e}", cause=e
                ) from e
        settings = raw.get("global") or {}
        return GlobalConfig(
            insecure_registries=tuple(settings.get("insecure-registries") or ()),
            debug_helpers_registry=settings.get("debug-helpers-registry", ""),
        )


def _resolve(base_dir: str, path: str) -> str:
    if not base_dir or os.path.isabs(path):
        return path
    return os.path.normpath(os.path.join(base_dir, path))


def _as_tuple(raw: Dict[str, Any], key: str) -> Tuple:
    return tuple(raw.get(key) or ())


def _build_variant(key: str, raw: Dict[str, Any]):
    if key == "docker":
        return ARTIFACT_VARIANTS[key](
            dockerfile=raw.get("dockerfile", "Dockerfile"),
            target=raw.get("target", ""),
            build_args={k: str(v) for k, v in (raw.get("buildArgs") or {}).items()},
            cache_from=_as_tuple(raw, "cacheFrom"),
            network=raw.get("network", ""),
            no_cache=bool(raw.get("noCache", False)),
        )
    if key == "kaniko":
        return ARTIFACT_VARIANTS[key](
            dockerfile=raw.get("dockerfile", "Dockerfile"),
            target=raw.get("target", ""),
            build_args={k: str(v) for k, v in (raw.get("buildArgs") or {}).items()},
            image=raw.get("image", ""),
            cache=raw.get("cache") is not None,
            cache_repo=(raw.get("cache") or {}).get("repo", ""),
            flags=_as_tuple(raw, "flags"),
        )
    if key == "buildpacks":
        return ARTIFACT_VARIANTS[key](
            builder=raw.get("builder", ""),
            run_image=raw.get("runImage", ""),
            env=_as_tuple(raw, "env"),
            buildpacks=_as_tuple(raw, "buildpacks"),
            trust_builder=bool(raw.get("trustBuilder", False)),
        )
    if key == "jib":
        return ARTIFACT_VARIANTS[key](
            project=raw.get("project", ""),
            type=raw.get("type", "maven"),
            flags=_as_tuple(raw, "args"),
        )
    if key == "ko":
        return ARTIFACT_VARIANTS[key](
            main=raw.get("main", "."),
            base_image=raw.get("fromImage", ""),
            env=_as_tuple(raw, "env"),
            flags=_as_tuple(raw, "flags"),
            ldflags=_as_tuple(raw, "ldflags"),
        )
    if key == "packer":
        if not raw.get("templatePath"):
            raise ConfigurationError("packer artifact is missing 'templatePath'")
        return ARTIFACT_VARIANTS[key](
            template_path=raw["templatePath"],
            build_args=_as_tuple(raw, "buildArgs"),
            env=_as_tuple(raw, "env"),
        )
    raise ConfigurationError(f"unexpected artifact type {key!r}")


def _parse_cloud_build(raw: Dict[str, Any], config_name: str = "") -> CloudBuild:
    defaults = CloudBuild()
    return CloudBuild(
        project_id=raw.get("projectId", ""),
        bucket=raw.get("bucket", ""),
        disk_size_gb=int(raw.get("diskSizeGb", 0)),
        machine_type=raw.get("machineType", ""),
        worker_pool=raw.get("workerPool", ""),
        logging=raw.get("logging", ""),
        log_streaming_option=raw.get("logStreamingOption", ""),
        timeout=raw.get("timeout", ""),
        service_account=raw.get("serviceAccount", ""),
        docker_image=raw.get("dockerImage", defaults.docker_image),
        kaniko_image=raw.get("kanikoImage", defaults.kaniko_image),
        pack_image=raw.get("packImage", defaults.pack_image),
        maven_image=raw.get("mavenImage", defaults.maven_image),
        gradle_image=raw.get("gradleImage", defaults.gradle_image),
        ko_image=raw.get("koImage", defaults.ko_image),
        secrets=tuple(
            _parse_secret(s, config_name)
            for s in (raw.get("availableSecrets") or {}).get("secretManager") or []
        ),
        concurrency=int(raw.get("concurrency", 0)),
    )


def _parse_dependency(image: str, raw: Dict[str, Any]) -> ArtifactDependency:
    if not isinstance(raw, dict) or not raw.get("image"):
        raise ConfigurationError(
            f"artifact {image!r}: requires entry is missing 'image'",
            context=create_error_context("parse_artifact", artifact=image),
            suggestions=["Each requires entry names the image it depends on"],
        )
    return ArtifactDependency(image_name=raw["image"], alias=raw.get("alias", ""))


def _parse_secret(raw: Dict[str, Any], config_name: str) -> SecretManagerSecret:
    missing = [key for key in ("env", "versionName") if not (isinstance(raw, dict) and raw.get(key))]
    if missing:
        raise ConfigurationError(
            f"config {config_name!r}: secretManager entry is missing "
            + ", ".join(f"'{key}'" for key in missing),
            context=create_error_context("load_config", component=config_name),
        )
    return SecretManagerSecret(env=raw["env"], version_name=raw["versionName"])


def _parse_profiles(raw: List[Any], config_name: str) -> Tuple[Profile, ...]:
    profiles = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ConfigurationError(
                f"config {config_name!r}: profile is missing 'name'",
                suggestions=["Every entry under profiles needs a name"],
            )
        if entry["name"] in seen:
            raise ConfigurationError(
                f"config {config_name!r}: duplicate profile name {entry['name']!r}"
            )
        seen.add(entry["name"])
        build = entry.get("build") or {}
        profiles.append(
            Profile(
                name=entry["name"],
                build_env="cloudBuild" if "cloudBuild" in build else "local",
            )
        )
    return tuple(profiles)


def _parse_filter(raw: Dict[str, Any]) -> ResourceFilter:
    if not raw.get("groupKind"):
        raise ConfigurationError("resourceSelector entry is missing 'groupKind'")
    # Fail at load time rather than when the first manifest is transformed.
    parse_group_kind(raw["groupKind"])
    return ResourceFilter(
        group_kind=raw["groupKind"],
        image=tuple(raw.get("image") or ()),
        labels=tuple(raw.get("labels") or ()),
    )
