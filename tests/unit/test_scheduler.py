#!/usr/bin/env python3
"""
Unit tests for dependency ordering of deployment units and artifacts.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging

import pytest

from portside.config.schema import DeploymentUnit
from portside.core.errors import ConfigurationError, DependencyError
from portside.graph.scheduler import order_for_execution
from tests.fixtures.utils import make_artifact


def unit(name, *depends_on):
    return DeploymentUnit(name=name, depends_on=tuple(depends_on))


def names(units):
    return [u.name for u in units]


@pytest.mark.unit
class TestOrderForExecution:
    """Dependencies come before dependents."""

    def test_chain_is_reversed(self):
        units = [unit("C", "B"), unit("B", "A"), unit("A")]

        assert names(order_for_execution(units)) == ["A", "B", "C"]

    def test_independent_units_keep_input_order(self):
        units = [unit("x"), unit("y"), unit("z")]

        assert names(order_for_execution(units)) == ["x", "y", "z"]

    def test_diamond_emits_shared_dependency_once(self):
        units = [
            unit("app", "api", "worker"),
            unit("api", "db"),
            unit("worker", "db"),
            unit("db"),
        ]

        assert names(order_for_execution(units)) == ["db", "api", "worker", "app"]

    def test_every_dependency_precedes_its_dependent(self):
        units = [unit("e", "d", "a"), unit("d", "c"), unit("c", "b"), unit("b"), unit("a", "b")]

        ordered = names(order_for_execution(units))
        position = {name: i for i, name in enumerate(ordered)}
        for u in units:
            for dep in u.depends_on:
                assert position[dep] < position[u.name]
        assert sorted(ordered) == sorted(names(units))

    def test_empty_input(self):
        assert order_for_execution([]) == []

    def test_works_with_artifacts(self):
        artifacts = [make_artifact("web", requires=["base"]), make_artifact("base")]

        assert names(order_for_execution(artifacts)) == ["base", "web"]


@pytest.mark.unit
class TestOrderForExecutionErrors:
    """Invalid graphs fail before any unit is returned."""

    def test_self_dependency_names_the_unit(self):
        with pytest.raises(DependencyError) as exc_info:
            order_for_execution([unit("A"), unit("B", "B")])

        assert "B depends on itself" in str(exc_info.value)
        assert exc_info.value.unit == "B"

    def test_two_node_cycle(self):
        with pytest.raises(DependencyError) as exc_info:
            order_for_execution([unit("A", "B"), unit("B", "A")])

        assert "circular dependency" in str(exc_info.value)

    def test_longer_cycle_behind_valid_units(self):
        units = [unit("ok"), unit("A", "B"), unit("B", "C"), unit("C", "A")]

        with pytest.raises(DependencyError, match="circular dependency detected involving A"):
            order_for_execution(units)

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError, match="duplicate unit name"):
            order_for_execution([unit("A"), unit("A")])

    def test_missing_dependency_warns_and_continues(self, caplog):
        units = [unit("app", "ghost"), unit("db")]

        with caplog.at_level(logging.WARNING, logger="portside.graph.scheduler"):
            ordered = order_for_execution(units)

        assert names(ordered) == ["app", "db"]
        assert "Dependency ghost not found for deployment app" in caplog.text
