"""Utility functions for tests.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

# built-in modules
import textwrap
from unittest.mock import MagicMock

# user-defined modules
from portside.config.schema import (
    ArtifactDependency,
    ArtifactDescriptor,
    DockerArtifact,
)
from portside.core.console import Console


DEPLOYMENT_YAML = textwrap.dedent(
    """\
    apiVersion: apps/v1
    kind: Deployment
    metadata:
      name: web
    spec:
      replicas: 1 # kpt-set: ${replicas}
      template:
        metadata:
          labels:
            app: web
        spec:
          containers:
            - name: web
              image: example.com/web
    """
)

SERVICE_YAML = textwrap.dedent(
    """\
    apiVersion: v1
    kind: Service
    metadata:
      name: web
    spec:
      ports:
        - port: 80
    """
)

CRD_YAML = textwrap.dedent(
    """\
    apiVersion: apiextensions.k8s.io/v1
    kind: CustomResourceDefinition
    metadata:
      name: widgets.example.com
    spec:
      group: example.com
    """
)


def new_mock_console(output: str = "") -> MagicMock:
    """Console whose run() records calls instead of starting processes."""
    console = MagicMock(spec=Console)
    console.run.return_value = output
    return console


def commands(console) -> list:
    """argv lists passed to a mock console's run(), in call order."""
    return [c.args[0] for c in console.run.call_args_list]


def stages(console) -> list:
    return [c.kwargs["stage"] for c in console.run.call_args_list]


def make_artifact(name, requires=(), build=None, **kwargs) -> ArtifactDescriptor:
    """ArtifactDescriptor with a docker build unless another one is given."""
    return ArtifactDescriptor(
        image_name=name,
        build=build if build is not None else DockerArtifact(),
        dependencies=tuple(ArtifactDependency(image_name=r) for r in requires),
        **kwargs,
    )
