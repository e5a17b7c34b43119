#!/usr/bin/env python3
"""
Dependency ordering for named units.

Used by the Terraform deployer to order stacks and by the build scheduler to
validate artifact dependencies. Units are any objects with a ``name`` and a
``depends_on`` sequence of names.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from enum import Enum
from typing import Dict, List, Sequence, TypeVar

from portside.core.errors import ConfigurationError, DependencyError, create_error_context

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeState(Enum):
    """Traversal state of a unit."""

    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    DONE = "done"


def order_for_execution(units: Sequence[T]) -> List[T]:
    """
    Order units so every unit follows all of its dependencies.

    Traversal is depth-first in input order. A unit reachable from several
    dependents is emitted once, at its first position. Dependencies naming a
    unit outside the input are logged and skipped.

    Args:
        units: Units exposing ``name`` and ``depends_on``

    Returns:
        The units in execution order

    Raises:
        ConfigurationError: If two units share a name
        DependencyError: On self-dependency or a dependency cycle
    """
    by_name: Dict[str, T] = {}
    for unit in units:
        if unit.name in by_name:
            raise ConfigurationError(
                f"duplicate unit name {unit.name!r}",
                context=create_error_context("order_for_execution", unit=unit.name),
            )
        by_name[unit.name] = unit

    for unit in units:
        if unit.name in unit.depends_on:
            raise DependencyError(
                f"deployment {unit.name} depends on itself", unit=unit.name
            )

    state = {name: NodeState.UNVISITED for name in by_name}
    ordered: List[T] = []

    for root in units:
        if state[root.name] is NodeState.DONE:
            continue

        # Each frame is (unit, index of the next dependency to look at).
        stack = [(root, 0)]
        state[root.name] = NodeState.IN_PROGRESS
        while stack:
            unit, next_dep = stack[-1]
            deps = list(unit.depends_on)
            if next_dep == len(deps):
                stack.pop()
                state[unit.name] = NodeState.DONE
                ordered.append(unit)
                continue

            stack[-1] = (unit, next_dep + 1)
            dep_name = deps[next_dep]
            dep = by_name.get(dep_name)
            if dep is None:
                logger.warning(
                    "Dependency %s not found for deployment %s", dep_name, unit.name
                )
                continue
            if state[dep_name] is NodeState.DONE:
                continue
            if state[dep_name] is NodeState.IN_PROGRESS:
                raise DependencyError(
                    f"circular dependency detected involving {dep_name}",
                    unit=dep_name,
                )
            state[dep_name] = NodeState.IN_PROGRESS
            stack.append((dep, 0))

    return ordered

