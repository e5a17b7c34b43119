#!/usr/bin/env python3
"""
Debug instrumentation for workloads running built artifacts.

For every container whose image is a built artifact the transform:

- installs the runtime's debug support files through an init-container
  pulled from the debug helpers registry into a shared emptyDir volume,
- relaunches the container command under the runtime's debug launcher,
- exposes the debugger port,
- records what it did in a pod annotation.

The container runtime comes from the artifact's ``runtimeType`` or, failing
that, from the container's command and environment. When a container has
no command the image configuration is looked up through an optional
retriever, with the insecure-registry set deciding how the registry is
contacted.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from portside.core.errors import ConfigurationError
from portside.graph.artifact import Artifact, registry_of, strip_tag

from .document import ManifestDocument, ManifestList

logger = logging.getLogger(__name__)

DEFAULT_DEBUG_HELPERS_REGISTRY = "gcr.io/k8s-skaffold/skaffold-debug-support"
DEBUG_CONFIG_ANNOTATION = "debug.portside.dev/config"
SUPPORT_VOLUME = "debugging-support-files"
SUPPORT_MOUNT_PATH = "/dbg"

# Runtime -> supported protocols (first is the default) and their ports.
RUNTIME_PROTOCOLS: Dict[str, Tuple[Tuple[str, int], ...]] = {
    "python": (("dap", 5678), ("pydevd", 5678)),
    "go": (("dap", 56268),),
    "nodejs": (("devtools", 9229),),
    "jvm": (("jdwp", 5005),),
    "netcore": (("vsdbg", 0),),
}

_TEMPLATES = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class Registries:
    """Registry settings resolved once per invocation."""

    debug_helpers_registry: str = DEFAULT_DEBUG_HELPERS_REGISTRY
    insecure_registries: FrozenSet[str] = frozenset()

    def is_insecure(self, image: str) -> bool:
        return registry_of(image) in self.insecure_registries


@dataclass(frozen=True)
class ImageConfig:
    """The parts of an image's configuration debug support cares about."""

    entrypoint: Tuple[str, ...] = ()
    cmd: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    working_dir: str = ""


# (image reference, insecure) -> ImageConfig, or None when unknown.
ImageConfigRetriever = Callable[[str, bool], Optional[ImageConfig]]


def apply_debugging_transforms(
    manifests: ManifestList,
    builds: List[Artifact],
    registries: Registries,
    protocols: Sequence[str] = (),
    retrieve_image_config: Optional[ImageConfigRetriever] = None,
) -> ManifestList:
    """
    Instrument containers running built artifacts, in place.

    Raises:
        ConfigurationError: If a container cannot be instrumented as requested
    """
    if not builds or not manifests:
        return manifests

    by_image = {}
    for b in builds:
        by_image[b.tag] = b
        by_image[strip_tag(b.tag)] = b
        by_image[strip_tag(b.image_name)] = b

    for doc in manifests:
        for pod_meta, pod_spec in _pod_templates(doc):
            changed = _transform_pod(
                pod_meta, pod_spec, by_image, registries, protocols, retrieve_image_config
            )
            if changed:
                doc.mark_modified()
    return manifests


def _pod_templates(doc: ManifestDocument) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
    """(metadata, spec) pairs of the pods a document creates."""
    obj = doc.obj
    kind = doc.kind
    if kind == "Pod":
        template = obj
    elif kind in ("Deployment", "ReplicaSet", "StatefulSet", "DaemonSet", "Job"):
        template = (obj.get("spec") or {}).get("template")
    elif kind == "CronJob":
        job = ((obj.get("spec") or {}).get("jobTemplate") or {}).get("spec") or {}
        template = job.get("template")
    else:
        return []
    if not isinstance(template, dict) or not isinstance(template.get("spec"), dict):
        return []
    if not isinstance(template.get("metadata"), dict):
        template["metadata"] = {}
    return [(template["metadata"], template["spec"])]


def _transform_pod(
    pod_meta: Dict[str, Any],
    pod_spec: Dict[str, Any],
    by_image: Dict[str, Artifact],
    registries: Registries,
    protocols: Sequence[str],
    retrieve_image_config: Optional[ImageConfigRetriever],
) -> bool:
    if not isinstance(pod_meta.get("annotations"), dict):
        pod_meta["annotations"] = {}
    annotations = pod_meta["annotations"]
    existing = _existing_configurations(annotations.get(DEBUG_CONFIG_ANNOTATION))
    configurations = dict(existing)
    runtimes = []

    for container in pod_spec.get("containers") or []:
        if not isinstance(container, dict):
            raise ConfigurationError(f"malformed container entry {container!r}")
        name = container.get("name", "")
        if name in existing:
            continue
        image = container.get("image", "")
        artifact = by_image.get(image) or by_image.get(strip_tag(image))
        if artifact is None:
            continue

        image_config = None
        if not container.get("command") and retrieve_image_config is not None:
            image_config = retrieve_image_config(image, registries.is_insecure(image))

        runtime = artifact.runtime_type or _detect_runtime(container, image_config)
        if not runtime:
            logger.warning("Unable to determine runtime for container %s (%s), skipping", name, image)
            continue
        if runtime not in RUNTIME_PROTOCOLS:
            raise ConfigurationError(f"unsupported debug runtime {runtime!r} for {image}")

        protocol, port = _select_protocol(runtime, protocols)
        launch = _launch_command(container, image_config)
        if not launch:
            logger.warning("No command known for container %s (%s), skipping", name, image)
            continue

        container["command"] = [
            f"{SUPPORT_MOUNT_PATH}/{runtime}/launcher",
            "--mode", protocol,
            "--port", str(port),
            "--",
        ] + launch
        container.pop("args", None)
        mounts = container.setdefault("volumeMounts", [])
        mounts.append({"name": SUPPORT_VOLUME, "mountPath": SUPPORT_MOUNT_PATH})
        if port:
            ports = container.setdefault("ports", [])
            ports.append({"name": protocol, "containerPort": port})

        configurations[name] = {
            "artifact": artifact.image_name,
            "runtime": runtime,
            "protocol": protocol,
            "port": port,
        }
        if runtime not in runtimes:
            runtimes.append(runtime)

    if not runtimes:
        if not annotations:
            pod_meta.pop("annotations")
        return False

    params = {"volume_name": SUPPORT_VOLUME, "mount_path": SUPPORT_MOUNT_PATH}
    volumes = pod_spec.setdefault("volumes", [])
    if not any(v.get("name") == SUPPORT_VOLUME for v in volumes):
        volumes.append(_render("debug-volume.yaml.j2", **params))

    init_containers = pod_spec.setdefault("initContainers", [])
    present = {c.get("name") for c in init_containers}
    for runtime in runtimes:
        init = _render(
            "debug-init-container.yaml.j2",
            runtime=runtime,
            helpers_registry=registries.debug_helpers_registry,
            **params,
        )
        if init["name"] not in present:
            init_containers.append(init)

    annotations[DEBUG_CONFIG_ANNOTATION] = json.dumps(configurations, sort_keys=True)
    return True


def _existing_configurations(value: Any) -> Dict[str, Any]:
    """Containers already instrumented, from a previous run's annotation."""
    if not value:
        return {}
    try:
        existing = json.loads(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"malformed {DEBUG_CONFIG_ANNOTATION} annotation {value!r}: {e}",
            suggestions=[f"Remove the {DEBUG_CONFIG_ANNOTATION} annotation from the manifest"],
        ) from e
    if not isinstance(existing, dict):
        raise ConfigurationError(
            f"malformed {DEBUG_CONFIG_ANNOTATION} annotation {value!r}: expected a JSON object"
        )
    return existing


def _render(template: str, **context) -> Dict[str, Any]:
    return yaml.safe_load(_TEMPLATES.get_template(template).render(**context))


def _select_protocol(runtime: str, protocols: Sequence[str]) -> Tuple[str, int]:
    supported = RUNTIME_PROTOCOLS[runtime]
    if not protocols:
        return supported[0]
    for wanted in protocols:
        for protocol, port in supported:
            if protocol == wanted:
                return protocol, port
    raise ConfigurationError(
        f"no supported debug protocol for {runtime} in {list(protocols)}",
        suggestions=[f"{runtime} supports: {', '.join(p for p, _ in supported)}"],
    )


def _launch_command(container: Dict[str, Any], image_config: Optional[ImageConfig]) -> List[str]:
    command = list(container.get("command") or [])
    args = list(container.get("args") or [])
    if not command and image_config is not None:
        command = list(image_config.entrypoint)
        if not args:
            args = list(image_config.cmd)
    return [str(c) for c in command + args]


def _detect_runtime(container: Dict[str, Any], image_config: Optional[ImageConfig]) -> str:
    env = {}
    if image_config is not None:
        env.update(image_config.env)
    for e in container.get("env") or []:
        if isinstance(e, dict) and "name" in e:
            env[e["name"]] = str(e.get("value", ""))
    argv = " ".join(_launch_command(container, image_config))

    if "JAVA_TOOL_OPTIONS" in env or "JAVA_VERSION" in env or argv.startswith("java"):
        return "jvm"
    if "NODE_VERSION" in env or argv.startswith(("node", "npm")):
        return "nodejs"
    if "PYTHON_VERSION" in env or argv.startswith(("python", "gunicorn", "flask")):
        return "python"
    if "GOTRACEBACK" in env or "KO_DATA_PATH" in env:
        return "go"
    if "DOTNET_VERSION" in env or argv.startswith("dotnet"):
        return "netcore"
    return ""
