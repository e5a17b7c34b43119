#!/usr/bin/env python3
"""
Resource selectors.

Decide which resource types, and which fields inside them, the label and
image transforms may touch. Rules are keyed by GroupKind (``Kind.group``,
e.g. ``Deployment.apps``; core kinds have no group). Built-in defaults are
immutable; per-invocation tables are merged copies in which user rules
replace defaults with the same key.

Field paths are dotted (``.spec.template.spec.containers.*.image``). ``*``
matches one key or list index; the single path ``.*`` matches every field.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple

from portside.config.schema import ResourceFilter, ResourceSelectorConfig
from portside.core.errors import ConfigurationError

WILDCARD_ALL = ".*"


@dataclass(frozen=True)
class GroupKind:
    """API group and kind of a resource type."""

    group: str
    kind: str

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind


def parse_group_kind(value: str) -> GroupKind:
    """
    Parse ``Kind.group`` into a normalized GroupKind.

    Raises:
        ConfigurationError: If the string is empty or has an empty kind/group
    """
    if not isinstance(value, str) or not value.strip() or " " in value.strip():
        raise ConfigurationError(f"malformed groupKind {value!r}")
    value = value.strip()
    kind, sep, group = value.partition(".")
    if not kind or (sep and not group):
        raise ConfigurationError(
            f"malformed groupKind {value!r}: expected Kind or Kind.group",
            suggestions=["Examples: Pod, Deployment.apps, Job.batch"],
        )
    return GroupKind(group=group.lower(), kind=kind)


def _split_path(path: str) -> Tuple[str, ...]:
    return tuple(p for p in path.strip().lstrip(".").split(".") if p)


@dataclass(frozen=True)
class FieldPaths:
    """Compiled field path patterns of one rule."""

    patterns: Tuple[Tuple[str, ...], ...] = ()
    match_all: bool = False

    @classmethod
    def compile(cls, paths: Iterable[str]) -> "FieldPaths":
        paths = list(paths)
        if any(p.strip() == WILDCARD_ALL for p in paths):
            return cls(match_all=True)
        return cls(patterns=tuple(_split_path(p) for p in paths))

    def __bool__(self) -> bool:
        return self.match_all or bool(self.patterns)

    def matches(self, path: Tuple[str, ...]) -> bool:
        if self.match_all:
            return True
        for pattern in self.patterns:
            if len(pattern) == len(path) and all(
                p == "*" or p == str(k) for p, k in zip(pattern, path)
            ):
                return True
        return False


@dataclass(frozen=True)
class SelectorRule:
    group_kind: GroupKind
    image: FieldPaths
    labels: FieldPaths

    @classmethod
    def from_filter(cls, rf: ResourceFilter) -> "SelectorRule":
        return cls(
            group_kind=parse_group_kind(rf.group_kind),
            image=FieldPaths.compile(rf.image),
            labels=FieldPaths.compile(rf.labels),
        )


def _defaults(filters: Iterable[ResourceFilter]) -> Mapping[GroupKind, SelectorRule]:
    rules = {}
    for rf in filters:
        rule = SelectorRule.from_filter(rf)
        rules[rule.group_kind] = rule
    return MappingProxyType(rules)


_WORKLOAD_KINDS = (
    "Pod",
    "Deployment.apps",
    "ReplicaSet.apps",
    "StatefulSet.apps",
    "DaemonSet.apps",
    "Job.batch",
    "CronJob.batch",
)

TRANSFORM_ALLOWLIST = _defaults(
    [ResourceFilter(group_kind=gk, image=(WILDCARD_ALL,), labels=(WILDCARD_ALL,)) for gk in _WORKLOAD_KINDS]
    + [
        ResourceFilter(group_kind="Service", labels=(WILDCARD_ALL,)),
        ResourceFilter(group_kind="ConfigMap", labels=(".metadata.labels",)),
    ]
)

TRANSFORM_DENYLIST = _defaults(
    [ResourceFilter(group_kind="CustomResourceDefinition.apiextensions.k8s.io")]
)


@dataclass(frozen=True)
class SelectorTables:
    """Merged allow/deny tables for one invocation."""

    allow: Mapping[GroupKind, SelectorRule]
    deny: Mapping[GroupKind, SelectorRule]

    @classmethod
    def build(cls, configs: Iterable[ResourceSelectorConfig] = ()) -> "SelectorTables":
        """Defaults first, then each config's rules in order; later keys win."""
        allow = dict(TRANSFORM_ALLOWLIST)
        deny = dict(TRANSFORM_DENYLIST)
        for cfg in configs:
            for rf in cfg.allow:
                rule = SelectorRule.from_filter(rf)
                allow[rule.group_kind] = rule
            for rf in cfg.deny:
                rule = SelectorRule.from_filter(rf)
                deny[rule.group_kind] = rule
        return cls(allow=MappingProxyType(allow), deny=MappingProxyType(deny))

    def _denied(self, gk: GroupKind, field: str, path: Tuple[str, ...]) -> bool:
        rule = self.deny.get(gk)
        if rule is None:
            return False
        paths = getattr(rule, field)
        # A deny rule without paths blocks the whole resource type.
        if not rule.image and not rule.labels:
            return True
        return bool(paths) and paths.matches(path)

    def selects(self, gk: GroupKind) -> bool:
        """True if the resource type is allowed and not wholly denied."""
        rule = self.deny.get(gk)
        if rule is not None and not rule.image and not rule.labels:
            return False
        return gk in self.allow

    def allows_image(self, gk: GroupKind, path: Tuple[str, ...]) -> bool:
        rule = self.allow.get(gk)
        if rule is None or not rule.image.matches(path):
            return False
        return not self._denied(gk, "image", path)

    def allows_labels(self, gk: GroupKind, path: Tuple[str, ...]) -> bool:
        rule = self.allow.get(gk)
        if rule is None or not rule.labels.matches(path):
            return False
        return not self._denied(gk, "labels", path)
