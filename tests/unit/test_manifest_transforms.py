#!/usr/bin/env python3
"""
Unit tests for manifest documents, setters, selectors, labels and images.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import textwrap

import pytest

from portside.config.schema import ResourceFilter, ResourceSelectorConfig
from portside.core.errors import ConfigurationError
from portside.graph.artifact import Artifact, registry_of, strip_tag
from portside.manifest.document import ManifestList
from portside.manifest.images import replace_images
from portside.manifest.labels import (
    MANAGED_BY_LABEL,
    RUN_ID_LABEL,
    provenance_labels,
    set_labels,
)
from portside.manifest.selector import (
    TRANSFORM_ALLOWLIST,
    GroupKind,
    SelectorTables,
    parse_group_kind,
)
from portside.manifest.setters import ApplySetters
from tests.fixtures.utils import DEPLOYMENT_YAML, SERVICE_YAML


@pytest.mark.unit
class TestManifestList:
    """Splitting and joining manifest streams."""

    def test_untouched_stream_round_trips(self, manifest_stream):
        manifests = ManifestList.load(manifest_stream)

        assert len(manifests) == 3
        assert str(manifests) == manifest_stream

    def test_empty_documents_are_dropped(self):
        manifests = ManifestList.load("---\n# only a comment\n---\n" + SERVICE_YAML + "---\n")

        assert [d.kind for d in manifests] == ["Service"]

    def test_group_kind_of_core_and_grouped_kinds(self, manifest_stream):
        kinds = [d.group_kind for d in ManifestList.load(manifest_stream)]

        assert kinds == [
            GroupKind("apps", "Deployment"),
            GroupKind("", "Service"),
            GroupKind("apiextensions.k8s.io", "CustomResourceDefinition"),
        ]

    def test_load_files_concatenates_in_order(self, tmp_path):
        first = tmp_path / "a.yaml"
        second = tmp_path / "b.yaml"
        first.write_text(DEPLOYMENT_YAML)
        second.write_text(SERVICE_YAML)

        manifests = ManifestList.load_files([str(first), str(second)])

        assert [d.kind for d in manifests] == ["Deployment", "Service"]


@pytest.mark.unit
class TestApplySetters:
    """Setter marker comments."""

    def test_marked_field_is_replaced_and_comment_kept(self, deployment_yaml):
        manifests = ManifestList.load(deployment_yaml)

        ApplySetters({"replicas": "3"}).apply(manifests)

        doc = next(iter(manifests))
        assert "replicas: 3 # kpt-set: ${replicas}" in doc.raw
        assert doc.obj["spec"]["replicas"] == 3

    def test_applying_twice_is_idempotent(self, deployment_yaml):
        manifests = ManifestList.load(deployment_yaml)
        setters = ApplySetters({"replicas": "3"})

        setters.apply(manifests)
        once = str(manifests)
        setters.apply(manifests)

        assert str(manifests) == once

    def test_template_with_several_setters(self):
        text = "image: nginx:1.0 # kpt-set: ${image}:${tag}\n"

        result = ApplySetters({"image": "web", "tag": "2.1"}).apply_to_text(text)

        assert result == "image: web:2.1 # kpt-set: ${image}:${tag}\n"

    def test_marker_with_unknown_setter_is_left_alone(self):
        text = "image: nginx:1.0 # kpt-set: ${image}:${tag}\n"

        assert ApplySetters({"image": "web"}).apply_to_text(text) == text

    def test_quotes_are_preserved(self):
        text = 'env: "dev" # kpt-set: ${env}\n'

        assert ApplySetters({"env": "prod"}).apply_to_text(text) == 'env: "prod" # kpt-set: ${env}\n'

    def test_list_item_value(self):
        text = "args:\n  - --level=info # kpt-set: --level=${level}\n"

        result = ApplySetters({"level": "debug"}).apply_to_text(text)

        assert "  - --level=debug # kpt-set: --level=${level}\n" in result

    def test_no_setters_changes_nothing(self, deployment_yaml):
        manifests = ManifestList.load(deployment_yaml)

        ApplySetters({}).apply(manifests)

        assert str(manifests) == deployment_yaml

    def test_invalid_setter_name(self):
        with pytest.raises(ConfigurationError, match="invalid setter name"):
            ApplySetters({"bad name": "x"})


@pytest.mark.unit
class TestSelectors:
    """GroupKind parsing and merged allow/deny tables."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Pod", GroupKind("", "Pod")),
            ("Deployment.apps", GroupKind("apps", "Deployment")),
            ("Ingress.Networking.k8s.io", GroupKind("networking.k8s.io", "Ingress")),
        ],
    )
    def test_parse_group_kind(self, value, expected):
        assert parse_group_kind(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "Deployment.", ".apps", "Deploy ment"])
    def test_malformed_group_kind(self, value):
        with pytest.raises(ConfigurationError):
            parse_group_kind(value)

    def test_malformed_group_kind_fails_when_tables_are_built(self):
        config = ResourceSelectorConfig(allow=(ResourceFilter(group_kind="Thing."),))

        with pytest.raises(ConfigurationError):
            SelectorTables.build([config])

    def test_defaults_are_read_only(self):
        with pytest.raises(TypeError):
            TRANSFORM_ALLOWLIST[GroupKind("", "Secret")] = None

    def test_user_rule_replaces_default_with_same_key(self):
        config = ResourceSelectorConfig(
            allow=(ResourceFilter(group_kind="Deployment.apps", labels=(".metadata.labels",)),)
        )

        tables = SelectorTables.build([config])
        gk = GroupKind("apps", "Deployment")

        assert not tables.allows_image(gk, ("spec", "template", "spec", "containers", "0", "image"))
        assert tables.allows_labels(gk, ("metadata", "labels"))
        # Defaults are not modified by a merged copy.
        assert TRANSFORM_ALLOWLIST[gk].image.match_all

    def test_later_config_wins(self):
        first = ResourceSelectorConfig(allow=(ResourceFilter(group_kind="Widget.example.com", image=(".*",)),))
        second = ResourceSelectorConfig(allow=(ResourceFilter(group_kind="Widget.example.com"),))

        tables = SelectorTables.build([first, second])

        assert not tables.allows_image(GroupKind("example.com", "Widget"), ("spec", "image"))

    def test_deny_without_paths_blocks_the_kind(self):
        assert not SelectorTables.build().selects(
            GroupKind("apiextensions.k8s.io", "CustomResourceDefinition")
        )

    def test_wildcard_path_segment(self):
        config = ResourceSelectorConfig(
            allow=(ResourceFilter(group_kind="Widget.example.com", image=(".spec.containers.*.image",)),)
        )
        tables = SelectorTables.build([config])
        gk = GroupKind("example.com", "Widget")

        assert tables.allows_image(gk, ("spec", "containers", "3", "image"))
        assert not tables.allows_image(gk, ("spec", "sidecar", "image"))


@pytest.mark.unit
class TestLabels:
    """Provenance label injection."""

    def test_provenance_labels_include_custom(self):
        labels = provenance_labels("abc", {"team": "infra"})

        assert labels == {MANAGED_BY_LABEL: "portside", RUN_ID_LABEL: "abc", "team": "infra"}

    def test_labels_on_metadata_and_pod_template(self, deployment_yaml):
        manifests = ManifestList.load(deployment_yaml)

        set_labels(manifests, {"team": "infra"}, SelectorTables.build())

        obj = next(iter(manifests)).obj
        assert obj["metadata"]["labels"] == {"team": "infra"}
        assert obj["spec"]["template"]["metadata"]["labels"] == {"app": "web", "team": "infra"}

    def test_denied_kind_is_untouched(self, manifest_stream):
        manifests = ManifestList.load(manifest_stream)

        set_labels(manifests, {"team": "infra"}, SelectorTables.build())

        crd = list(manifests)[2]
        assert not crd.modified
        assert "labels" not in crd.obj["metadata"]

    def test_unlisted_kind_is_untouched(self):
        text = "apiVersion: v1\nkind: Secret\nmetadata:\n  name: s\n"
        manifests = ManifestList.load(text)

        set_labels(manifests, {"team": "infra"}, SelectorTables.build())

        assert str(manifests) == text

    def test_idempotent(self, manifest_stream):
        manifests = ManifestList.load(manifest_stream)
        tables = SelectorTables.build()

        set_labels(manifests, {"team": "infra"}, tables)
        once = str(manifests)
        set_labels(manifests, {"team": "infra"}, tables)

        assert str(manifests) == once

    def test_document_already_labelled_stays_byte_identical(self):
        text = textwrap.dedent(
            """\
            apiVersion: v1
            kind: Service
            metadata:
              name: web   # keep this comment
              labels:
                team: infra
            """
        )
        manifests = ManifestList.load(text)

        set_labels(manifests, {"team": "infra"}, SelectorTables.build())

        assert str(manifests) == text


@pytest.mark.unit
class TestReplaceImages:
    """Image references pointing at built artifacts."""

    def test_matching_image_gets_full_tag(self, deployment_yaml):
        manifests = ManifestList.load(deployment_yaml)
        builds = [Artifact("example.com/web", "example.com/web:abc123")]

        replace_images(manifests, builds, SelectorTables.build())

        container = next(iter(manifests)).obj["spec"]["template"]["spec"]["containers"][0]
        assert container["image"] == "example.com/web:abc123"

    def test_tagged_reference_in_manifest_is_replaced(self):
        text = DEPLOYMENT_YAML.replace("image: example.com/web", "image: example.com/web:old")
        manifests = ManifestList.load(text)

        replace_images(manifests, [Artifact("example.com/web", "example.com/web:new")], SelectorTables.build())

        assert "example.com/web:new" in str(manifests)

    def test_unrelated_documents_are_byte_identical(self, manifest_stream):
        text = manifest_stream.replace("image: example.com/web", "image: example.com/other  # pinned")
        manifests = ManifestList.load(text)

        replace_images(manifests, [Artifact("example.com/web", "example.com/web:abc")], SelectorTables.build())

        assert str(manifests) == text

    def test_kind_without_image_paths_is_skipped(self):
        text = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: c\ndata:\n  image: example.com/web\n"
        manifests = ManifestList.load(text)

        replace_images(manifests, [Artifact("example.com/web", "example.com/web:abc")], SelectorTables.build())

        assert str(manifests) == text

    def test_no_builds_is_a_noop(self, manifest_stream):
        manifests = ManifestList.load(manifest_stream)

        replace_images(manifests, [], SelectorTables.build())

        assert str(manifests) == manifest_stream


@pytest.mark.unit
class TestImageReferences:
    @pytest.mark.parametrize(
        "image,expected",
        [
            ("web", "web"),
            ("web:1.0", "web"),
            ("localhost:5000/app:v1@sha256:ab", "localhost:5000/app"),
            ("localhost:5000/app", "localhost:5000/app"),
        ],
    )
    def test_strip_tag(self, image, expected):
        assert strip_tag(image) == expected

    @pytest.mark.parametrize(
        "image,expected",
        [
            ("library/web", ""),
            ("gcr.io/project/web", "gcr.io"),
            ("registry.local:5000/web:1", "registry.local:5000"),
            ("localhost/web", "localhost"),
        ],
    )
    def test_registry_of(self, image, expected):
        assert registry_of(image) == expected
