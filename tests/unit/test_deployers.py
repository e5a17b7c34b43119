#!/usr/bin/env python3
"""
Unit tests for the deployer contract and the terraform and kubectl backends.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import io
from unittest.mock import MagicMock

import pytest

from portside.config.schema import (
    DeploymentUnit,
    KubectlDeploy,
    ProjectConfig,
    TerraformDeploy,
)
from portside.core.cancellation import CancellationToken
from portside.core.errors import BackendExecutionError, ConfigurationError, DependencyError
from portside.deploy.contract import (
    Capabilities,
    Deployer,
    NoopAccessor,
    NoopDebugger,
    NoopLogger,
    NoopMonitor,
    NoopSyncer,
    StatusCode,
)
from portside.deploy.factory import DeployerMux, create_deployer, create_deployers
from portside.deploy.kubectl import KubectlDeployer, deployed_images
from portside.deploy.terraform import TerraformDeployer
from portside.graph.artifact import Artifact
from portside.manifest.document import ManifestList
from tests.fixtures.utils import DEPLOYMENT_YAML, SERVICE_YAML, commands, stages


class StaticDeployer(Deployer):
    """Deployer that only records calls."""

    BACKEND = "static"

    def __init__(self, config_name, calls=None):
        super().__init__(config_name)
        self.calls = calls if calls is not None else []

    def deploy(self, out, builds, manifests_by_config, token=None):
        self.calls.append(("deploy", self.config_name))

    def cleanup(self, out, dry_run, manifests_by_config, token=None):
        self.calls.append(("cleanup", self.config_name, dry_run))

    def dependencies(self):
        return [f"{self.config_name}.yaml", "shared.yaml"]


@pytest.mark.unit
class TestDeployerContract:
    """Default capabilities and tracking."""

    def test_capabilities_default_to_noops(self):
        deployer = StaticDeployer("app")

        assert isinstance(deployer.get_debugger(), NoopDebugger)
        assert isinstance(deployer.get_logger(), NoopLogger)
        assert isinstance(deployer.get_accessor(), NoopAccessor)
        assert isinstance(deployer.get_syncer(), NoopSyncer)
        assert isinstance(deployer.get_status_monitor(), NoopMonitor)

    def test_noop_monitor_reports_not_applicable(self):
        assert StaticDeployer("app").get_status_monitor().check(io.StringIO()) == StatusCode.NOT_APPLICABLE

    def test_noop_logger_discards_writes(self):
        out = io.StringIO()
        logger = NoopLogger()

        logger.start(out)
        logger.write("hello")
        logger.stop()

        assert out.getvalue() == ""

    def test_custom_capability(self):
        monitor = MagicMock()
        deployer = StaticDeployer("app")
        deployer.capabilities = Capabilities(status_monitor=monitor)

        assert deployer.get_status_monitor() is monitor
        assert isinstance(deployer.get_syncer(), NoopSyncer)

    def test_tracking_tolerates_empty_input(self):
        deployer = StaticDeployer("app")

        deployer.track_build_artifacts([], [])
        deployer.track_build_artifacts(None, None)
        deployer.register_local_images([])

        assert deployer.tracked_builds == []
        assert deployer.local_images == []

    def test_tracking_records_artifacts(self):
        deployer = StaticDeployer("app")
        build = Artifact("web", "web:1")

        deployer.track_build_artifacts([build], [build])
        deployer.register_local_images([build])

        assert deployer.tracked_builds == [build]
        assert deployer.deployed_images == [build]
        assert deployer.local_images == [build]


def terraform_units():
    return TerraformDeploy(
        deployments=(
            DeploymentUnit(
                name="app",
                dir="stacks/app",
                depends_on=("network",),
                vars={"image": "web:1", "env": "prod"},
                var_files=("prod.tfvars",),
                extra_args=("-parallelism=2",),
                auto_approve=True,
                workspace="prod",
                backend_config={"prefix": "app", "bucket": "state"},
            ),
            DeploymentUnit(name="network", dir="stacks/network"),
        )
    )


@pytest.mark.unit
class TestTerraformDeployer:
    """terraform init/apply/destroy per unit."""

    def test_deploy_runs_units_in_dependency_order(self, mock_console):
        deployer = TerraformDeployer("infra", terraform_units(), mock_console)

        deployer.deploy(io.StringIO(), [], {})

        assert commands(mock_console) == [
            ["terraform", "init"],
            ["terraform", "apply"],
            ["terraform", "init", "-backend-config=bucket=state", "-backend-config=prefix=app"],
            ["terraform", "workspace", "select", "-or-create", "prod"],
            [
                "terraform", "apply",
                "-var", "env=prod", "-var", "image=web:1",
                "-var-file", "prod.tfvars",
                "-parallelism=2",
                "-auto-approve",
            ],
        ]
        cwds = [c.kwargs["cwd"] for c in mock_console.run.call_args_list]
        assert cwds == ["stacks/network"] * 2 + ["stacks/app"] * 3
        assert stages(mock_console) == ["init", "apply", "init", "workspace", "apply"]

    def test_token_is_passed_to_every_command(self, mock_console):
        token = CancellationToken()

        TerraformDeployer("infra", terraform_units(), mock_console).deploy(io.StringIO(), [], {}, token)

        assert all(c.kwargs["token"] is token for c in mock_console.run.call_args_list)

    def test_failure_is_wrapped_with_unit_and_stage(self, mock_console):
        mock_console.run.side_effect = [
            "",
            BackendExecutionError("terraform apply failed", backend="terraform", stage="apply", returncode=1),
        ]
        deployer = TerraformDeployer("infra", terraform_units(), mock_console)

        with pytest.raises(BackendExecutionError) as exc_info:
            deployer.deploy(io.StringIO(), [], {})

        error = exc_info.value
        assert str(error).startswith("failed to deploy network: ")
        assert error.backend == "terraform"
        assert error.stage == "apply"
        assert error.returncode == 1
        # Later units never start.
        assert len(commands(mock_console)) == 2

    def test_cleanup_destroys_in_apply_order(self, mock_console):
        deployer = TerraformDeployer("infra", terraform_units(), mock_console)

        deployer.cleanup(io.StringIO(), False, {})

        assert commands(mock_console) == [
            ["terraform", "destroy", "-auto-approve"],
            [
                "terraform", "destroy",
                "-var", "env=prod", "-var", "image=web:1",
                "-var-file", "prod.tfvars",
                "-parallelism=2",
                "-auto-approve",
            ],
        ]
        assert stages(mock_console) == ["destroy", "destroy"]

    def test_cleanup_failure_is_wrapped(self, mock_console):
        mock_console.run.side_effect = BackendExecutionError("boom", backend="terraform", stage="destroy")

        with pytest.raises(BackendExecutionError, match="failed to destroy network: boom"):
            TerraformDeployer("infra", terraform_units(), mock_console).cleanup(io.StringIO(), False, {})

    def test_dry_run_prints_one_line_per_unit_and_runs_nothing(self, mock_console):
        out = io.StringIO()

        TerraformDeployer("infra", terraform_units(), mock_console).cleanup(out, True, {})

        mock_console.run.assert_not_called()
        assert out.getvalue().splitlines() == [
            "Terraform Deployer: Would run 'terraform destroy' for stacks/network (dry run)",
            "Terraform Deployer: Would run 'terraform destroy' for stacks/app (dry run)",
        ]

    def test_cycle_fails_before_running_anything(self, mock_console):
        config = TerraformDeploy(
            deployments=(
                DeploymentUnit(name="a", depends_on=("b",)),
                DeploymentUnit(name="b", depends_on=("a",)),
            )
        )

        with pytest.raises(DependencyError):
            TerraformDeployer("infra", config, mock_console).deploy(io.StringIO(), [], {})
        mock_console.run.assert_not_called()

    def test_no_dependencies(self):
        assert TerraformDeployer("infra", terraform_units()).dependencies() == []


@pytest.fixture
def app_manifests():
    return {"app": ManifestList.load(DEPLOYMENT_YAML + "---\n" + SERVICE_YAML)}


@pytest.mark.unit
class TestKubectlDeployer:
    """kubectl apply/delete of transformed manifests."""

    def test_apply_sends_manifests_on_stdin(self, mock_console, app_manifests):
        deployer = KubectlDeployer("app", KubectlDeploy(default_namespace="staging", apply_flags=("--force",)), [], mock_console)

        deployer.deploy(io.StringIO(), [], app_manifests)

        assert commands(mock_console) == [
            ["kubectl", "--namespace", "staging", "apply", "--force", "-f", "-"]
        ]
        assert mock_console.run.call_args.kwargs["stdin"] == str(app_manifests["app"])

    def test_deploy_tracks_images(self, mock_console, app_manifests):
        build = Artifact("example.com/web", "example.com/web:abc")
        deployer = KubectlDeployer("app", KubectlDeploy(), [], mock_console)

        deployer.deploy(io.StringIO(), [build], app_manifests)

        assert deployer.tracked_builds == [build]
        assert deployer.deployed_images == [Artifact("example.com/web", "example.com/web")]

    def test_other_configs_manifests_are_ignored(self, mock_console, app_manifests):
        KubectlDeployer("other", KubectlDeploy(), [], mock_console).deploy(io.StringIO(), [], app_manifests)

        mock_console.run.assert_not_called()

    def test_cleanup(self, mock_console, app_manifests):
        KubectlDeployer("app", KubectlDeploy(), [], mock_console).cleanup(io.StringIO(), False, app_manifests)

        assert commands(mock_console) == [
            ["kubectl", "delete", "--ignore-not-found=true", "--wait=false", "-f", "-"]
        ]
        assert stages(mock_console) == ["delete"]

    def test_dry_run_lists_resources(self, mock_console, app_manifests):
        out = io.StringIO()

        KubectlDeployer("app", KubectlDeploy(default_namespace="staging"), [], mock_console).cleanup(
            out, True, app_manifests
        )

        mock_console.run.assert_not_called()
        assert out.getvalue().splitlines() == [
            "kubectl: Would delete Deployment/web (namespace staging) (dry run)",
            "kubectl: Would delete Service/web (namespace staging) (dry run)",
        ]

    def test_dependencies_are_manifest_paths(self):
        assert KubectlDeployer("app", KubectlDeploy(), ["k8s/a.yaml"]).dependencies() == ["k8s/a.yaml"]

    def test_deployed_images(self, app_manifests):
        builds = [Artifact("example.com/web", "example.com/web:abc"), Artifact("example.com/api", "example.com/api:1")]

        found = deployed_images(app_manifests["app"], builds)

        assert [a.image_name for a in found] == ["example.com/web"]


@pytest.mark.unit
class TestDeployerMux:
    """One deployer per configuration."""

    def test_duplicate_config_names_rejected(self):
        with pytest.raises(ConfigurationError, match="duplicate deployer"):
            DeployerMux([StaticDeployer("app"), StaticDeployer("app")])

    def test_calls_fan_out_in_order(self):
        calls = []
        mux = DeployerMux([StaticDeployer("a", calls), StaticDeployer("b", calls)])

        mux.deploy(io.StringIO(), [], {})
        mux.cleanup(io.StringIO(), True, {})

        assert calls == [("deploy", "a"), ("deploy", "b"), ("cleanup", "a", True), ("cleanup", "b", True)]

    def test_dependencies_are_deduplicated(self):
        mux = DeployerMux([StaticDeployer("a"), StaticDeployer("b")])

        assert mux.dependencies() == ["a.yaml", "shared.yaml", "b.yaml"]

    def test_local_images_reach_every_deployer(self):
        first, second = StaticDeployer("a"), StaticDeployer("b")
        build = Artifact("web", "web:1")

        DeployerMux([first, second]).register_local_images([build])

        assert first.local_images == [build]
        assert second.local_images == [build]


@pytest.mark.unit
class TestCreateDeployer:
    def test_kubectl(self):
        config = ProjectConfig(name="app", deploy=KubectlDeploy(), manifests=("k8s/app.yaml",))

        deployer = create_deployer(config)

        assert isinstance(deployer, KubectlDeployer)
        assert deployer.dependencies() == ["k8s/app.yaml"]

    def test_terraform(self):
        deployer = create_deployer(ProjectConfig(name="infra", deploy=terraform_units()))

        assert isinstance(deployer, TerraformDeployer)
        assert deployer.config_name == "infra"

    def test_missing_backend(self):
        with pytest.raises(ConfigurationError, match="unexpected deploy backend"):
            create_deployer(ProjectConfig(name="app", deploy=None))

    def test_create_deployers(self):
        mux = create_deployers(
            [ProjectConfig(name="app", deploy=KubectlDeploy()), ProjectConfig(name="infra", deploy=terraform_units())]
        )

        assert [d.config_name for d in mux.deployers] == ["app", "infra"]
