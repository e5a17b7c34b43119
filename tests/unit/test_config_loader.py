#!/usr/bin/env python3
"""
Unit tests for ConfigLoader.

Tests configuration loading, variant inference and validation of
portside.yaml documents and the user level config.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import os
import textwrap

import pytest

from portside.build.packer import context_dir
from portside.config.loader import ConfigLoader
from portside.config.schema import (
    CloudBuild,
    DockerArtifact,
    JibArtifact,
    KanikoArtifact,
    KubectlDeploy,
    LocalBuild,
    PackerArtifact,
    Profile,
    TerraformDeploy,
)
from portside.core.errors import ConfigurationError


def write(tmp_path, text, name="portside.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text))
    return str(path)


@pytest.mark.unit
class TestDeepMerge:
    """Layered merging of configuration dictionaries."""

    def test_nested_dicts_are_merged(self):
        base = {"build": {"tagPolicy": "gitCommit", "local": {"push": False}}}
        override = {"build": {"local": {"push": True}}}

        result = ConfigLoader.deep_merge(base, override)

        assert result == {"build": {"tagPolicy": "gitCommit", "local": {"push": True}}}

    def test_lists_are_replaced(self):
        result = ConfigLoader.deep_merge({"a": [1, 2]}, {"a": [3]})

        assert result == {"a": [3]}

    def test_inputs_are_not_modified(self):
        base = {"a": {"b": 1}}

        ConfigLoader.deep_merge(base, {"a": {"b": 2}})

        assert base == {"a": {"b": 1}}


@pytest.mark.unit
class TestLoadFile:
    """Reading portside.yaml."""

    def test_project_fixture(self, project_dir):
        configs = ConfigLoader.load_file(str(project_dir / "portside.yaml"))

        assert len(configs) == 1
        config = configs[0]
        assert config.name == "app"
        assert config.build.tag_policy == "sha256"
        assert isinstance(config.build.backend, LocalBuild)
        artifact = config.build.artifacts[0]
        assert artifact.image_name == "example.com/web"
        assert isinstance(artifact.build, DockerArtifact)
        assert artifact.workspace == str(project_dir)
        assert config.manifests == (str(project_dir / "k8s" / "app.yaml"),)
        assert config.deploy == KubectlDeploy(default_namespace="staging")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load_file(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = write(tmp_path, "build: [unclosed\n")

        with pytest.raises(ConfigurationError, match="parsing"):
            ConfigLoader.load_file(path)

    def test_multiple_documents(self, tmp_path):
        path = write(
            tmp_path,
            """\
            metadata:
              name: first
            ---
            deploy:
              kubectl: {}
            """,
        )

        configs = ConfigLoader.load_file(path)

        assert [c.name for c in configs] == ["first", f"{path}:1"]

    def test_duplicate_names(self, tmp_path):
        path = write(tmp_path, "metadata:\n  name: a\n---\nmetadata:\n  name: a\n")

        with pytest.raises(ConfigurationError, match="duplicate config name"):
            ConfigLoader.load_file(path)

    def test_overrides_win(self, project_dir):
        configs = ConfigLoader.load_file(
            str(project_dir / "portside.yaml"), overrides={"build": {"tagPolicy": "dateTime"}}
        )

        assert configs[0].build.tag_policy == "dateTime"

    def test_defaults(self, tmp_path):
        config = ConfigLoader.load_file(write(tmp_path, "metadata:\n  name: bare\n"))[0]

        assert config.build.tag_policy == "gitCommit"
        assert config.build.artifacts == ()
        assert config.manifests == ()
        assert isinstance(config.deploy, KubectlDeploy)


@pytest.mark.unit
class TestArtifactParsing:
    """Exactly one build variant per artifact."""

    def test_no_variant(self):
        with pytest.raises(ConfigurationError, match="found none"):
            ConfigLoader.parse_artifact({"image": "web"})

    def test_two_variants(self):
        with pytest.raises(ConfigurationError, match="found docker, kaniko"):
            ConfigLoader.parse_artifact({"image": "web", "docker": {}, "kaniko": {}})

    def test_missing_image(self):
        with pytest.raises(ConfigurationError, match="missing required field 'image'"):
            ConfigLoader.parse_artifact({"docker": {}})

    def test_empty_variant_block_uses_defaults(self):
        artifact = ConfigLoader.parse_artifact({"image": "web", "docker": None, "kaniko": {}})

        assert isinstance(artifact.build, KanikoArtifact)

    def test_kaniko_cache(self):
        artifact = ConfigLoader.parse_artifact(
            {"image": "web", "kaniko": {"cache": {"repo": "gcr.io/p/cache"}, "buildArgs": {"N": 1}}}
        )

        assert artifact.build.cache
        assert artifact.build.cache_repo == "gcr.io/p/cache"
        assert artifact.build.build_args == {"N": "1"}

    def test_jib_and_requires(self):
        artifact = ConfigLoader.parse_artifact(
            {
                "image": "svc",
                "jib": {"type": "gradle", "args": ["--info"]},
                "requires": [{"image": "base", "alias": "BASE"}],
                "runtimeType": "jvm",
            }
        )

        assert artifact.build == JibArtifact(type="gradle", flags=("--info",))
        assert artifact.depends_on == ["base"]
        assert artifact.runtime_type == "jvm"

    def test_requires_entry_needs_image(self):
        with pytest.raises(ConfigurationError, match="'web': requires entry is missing 'image'"):
            ConfigLoader.parse_artifact({"image": "web", "docker": {}, "requires": [{"alias": "BASE"}]})

    def test_packer_requires_template(self):
        with pytest.raises(ConfigurationError, match="templatePath"):
            ConfigLoader.parse_artifact({"image": "ami", "packer": {}})

    def test_packer(self):
        artifact = ConfigLoader.parse_artifact(
            {"image": "ami", "packer": {"templatePath": "ami.pkr.hcl", "buildArgs": ["-force"]}}
        )

        assert artifact.build == PackerArtifact(template_path="ami.pkr.hcl", build_args=("-force",))
        assert artifact.workspace == ""

    def test_packer_without_context_runs_next_to_template(self):
        artifact = ConfigLoader.parse_artifact(
            {"image": "ami", "packer": {"templatePath": "images/ami.pkr.hcl"}}, base_dir="/proj"
        )

        assert artifact.workspace == ""
        assert artifact.build.template_path == os.path.normpath("/proj/images/ami.pkr.hcl")
        assert context_dir(artifact) == os.path.normpath("/proj/images")

    def test_packer_with_context(self):
        artifact = ConfigLoader.parse_artifact(
            {"image": "ami", "context": "infra", "packer": {"templatePath": "ami.pkr.hcl"}}, base_dir="/proj"
        )

        assert artifact.workspace == os.path.normpath("/proj/infra")
        assert artifact.build.template_path == "ami.pkr.hcl"

    def test_context_resolved_against_config_dir(self):
        artifact = ConfigLoader.parse_artifact({"image": "web", "docker": {}, "context": "app"}, base_dir="/proj")

        assert artifact.workspace == os.path.normpath("/proj/app")


@pytest.mark.unit
class TestBackendSelection:
    """Build and deploy backends inferred from the present sub-configuration."""

    def test_cloud_build(self, tmp_path):
        path = write(
            tmp_path,
            """\
            build:
              cloudBuild:
                projectId: proj
                diskSizeGb: 50
                availableSecrets:
                  secretManager:
                    - env: TOKEN
                      versionName: projects/proj/secrets/token/versions/1
            """,
        )

        backend = ConfigLoader.load_file(path)[0].build.backend

        assert isinstance(backend, CloudBuild)
        assert backend.project_id == "proj"
        assert backend.disk_size_gb == 50
        assert backend.secrets[0].env == "TOKEN"

    def test_secret_missing_fields(self, tmp_path):
        path = write(
            tmp_path,
            """\
            metadata:
              name: app
            build:
              cloudBuild:
                availableSecrets:
                  secretManager:
                    - versionName: projects/proj/secrets/token/versions/1
            """,
        )

        with pytest.raises(ConfigurationError, match="config 'app': secretManager entry is missing 'env'"):
            ConfigLoader.load_file(path)

    def test_conflicting_build_backends(self, tmp_path):
        path = write(tmp_path, "build:\n  local: {}\n  cloudBuild: {}\n")

        with pytest.raises(ConfigurationError, match="conflicting build configuration"):
            ConfigLoader.load_file(path)

    def test_terraform(self, terraform_config_file):
        config = ConfigLoader.load_file(str(terraform_config_file))[0]

        assert isinstance(config.deploy, TerraformDeploy)
        app, network = config.deploy.deployments
        assert app.depends_on == ("network",)
        assert app.auto_approve
        assert app.dir == str(terraform_config_file.parent / "stacks" / "app")
        assert network.vars == {"region": "us-east1"}

    def test_two_deploy_backends(self, tmp_path):
        path = write(tmp_path, "deploy:\n  kubectl: {}\n  terraform: {}\n")

        with pytest.raises(ConfigurationError, match="expected exactly one deploy backend"):
            ConfigLoader.load_file(path)

    def test_empty_deploy_section(self, tmp_path):
        path = write(tmp_path, "deploy: {}\n")

        with pytest.raises(ConfigurationError, match="found 0"):
            ConfigLoader.load_file(path)

    def test_terraform_unit_needs_name(self, tmp_path):
        path = write(tmp_path, "deploy:\n  terraform:\n    deployments:\n      - dir: x\n")

        with pytest.raises(ConfigurationError, match="missing 'name'"):
            ConfigLoader.load_file(path)

    def test_malformed_group_kind_fails_at_load(self, tmp_path):
        path = write(tmp_path, "resourceSelector:\n  allow:\n    - groupKind: 'Deployment.'\n")

        with pytest.raises(ConfigurationError, match="malformed groupKind"):
            ConfigLoader.load_file(path)


@pytest.mark.unit
class TestProfiles:
    def test_profiles_are_listed_with_build_env(self, tmp_path):
        path = write(
            tmp_path,
            """\
            metadata:
              name: app
            profiles:
              - name: dev
              - name: ci
                build:
                  cloudBuild:
                    projectId: my-project
            """,
        )

        config = ConfigLoader.load_file(path)[0]

        assert config.profiles == (Profile("dev", "local"), Profile("ci", "cloudBuild"))

    def test_profile_needs_name(self, tmp_path):
        path = write(tmp_path, "profiles:\n  - build: {}\n")

        with pytest.raises(ConfigurationError, match="profile is missing 'name'"):
            ConfigLoader.load_file(path)

    def test_duplicate_profile(self, tmp_path):
        path = write(tmp_path, "profiles:\n  - name: dev\n  - name: dev\n")

        with pytest.raises(ConfigurationError, match="duplicate profile name 'dev'"):
            ConfigLoader.load_file(path)


@pytest.mark.unit
class TestGlobalConfig:
    def test_missing_file_gives_defaults(self):
        config = ConfigLoader.load_global_config()

        assert config.insecure_registries == ()
        assert config.debug_helpers_registry == ""

    def test_env_var_location(self, global_config_file):
        config = ConfigLoader.load_global_config()

        assert config.insecure_registries == ("registry.local:5000",)
        assert config.debug_helpers_registry == "mirror.example.com/debug"

    def test_explicit_path(self, tmp_path):
        path = write(tmp_path, "global:\n  insecure-registries: [a.local]\n", name="g.yaml")

        assert ConfigLoader.load_global_config(path).insecure_registries == ("a.local",)

    def test_malformed(self, tmp_path):
        path = write(tmp_path, "global: [\n", name="g.yaml")

        with pytest.raises(ConfigurationError, match="global config"):
            ConfigLoader.load_global_config(path)
