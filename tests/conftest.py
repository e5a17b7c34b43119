"""
Pytest configuration and shared fixtures for portside tests.

Provides manifest samples, configuration files on disk and a mock Console
that records every command instead of running it.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import textwrap

import pytest

from tests.fixtures.utils import (
    CRD_YAML,
    DEPLOYMENT_YAML,
    SERVICE_YAML,
    new_mock_console,
)


# ============================================================================
# Manifest Fixtures
# ============================================================================

@pytest.fixture
def deployment_yaml():
    return DEPLOYMENT_YAML


@pytest.fixture
def manifest_stream():
    """Deployment, Service and CRD in one stream."""
    return "---\n".join([DEPLOYMENT_YAML, SERVICE_YAML, CRD_YAML])


# ============================================================================
# Process Runner Fixtures
# ============================================================================

@pytest.fixture
def mock_console():
    """Console whose run() records calls and returns empty output."""
    return new_mock_console()


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def project_dir(tmp_path):
    """Project directory with a kubectl configuration and one manifest file."""
    (tmp_path / "k8s").mkdir()
    (tmp_path / "k8s" / "app.yaml").write_text(DEPLOYMENT_YAML + "---\n" + SERVICE_YAML)
    (tmp_path / "portside.yaml").write_text(
        textwrap.dedent(
            """\
            metadata:
              name: app
            build:
              tagPolicy: sha256
              artifacts:
                - image: example.com/web
                  docker:
                    dockerfile: Dockerfile
            manifests:
              rawYaml:
                - k8s/app.yaml
            deploy:
              kubectl:
                defaultNamespace: staging
            """
        )
    )
    return tmp_path


@pytest.fixture
def terraform_config_file(tmp_path):
    """Configuration with two dependent terraform deployments."""
    path = tmp_path / "portside.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            metadata:
              name: infra
            deploy:
              terraform:
                deployments:
                  - name: app
                    dir: stacks/app
                    dependsOn: [network]
                    autoApprove: true
                  - name: network
                    dir: stacks/network
                    vars:
                      region: us-east1
            """
        )
    )
    return path


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path_factory, monkeypatch):
    """Never read the real ~/.portside/config.yaml during tests."""
    missing = tmp_path_factory.mktemp("home") / "config.yaml"
    monkeypatch.setenv("PORTSIDE_GLOBAL_CONFIG", str(missing))
    return missing


@pytest.fixture
def global_config_file(isolated_global_config):
    """User level config with an insecure registry and a helpers mirror."""
    isolated_global_config.write_text(
        textwrap.dedent(
            """\
            global:
              insecure-registries:
                - registry.local:5000
              debug-helpers-registry: mirror.example.com/debug
            """
        )
    )
    return isolated_global_config
