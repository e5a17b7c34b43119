#!/usr/bin/env python3
"""
Field visitor for manifest object trees.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from typing import Any, Iterator, Tuple, Union

Path = Tuple[str, ...]
Container = Union[dict, list]


def walk_fields(obj: Any, path: Path = ()) -> Iterator[Tuple[Path, Container, Union[str, int], Any]]:
    """Yield (path, parent, key, value) for every field, depth first.

    List indices appear in paths as strings so they compare with patterns.
    """
    if isinstance(obj, dict):
        items = list(obj.items())
    elif isinstance(obj, list):
        items = list(enumerate(obj))
    else:
        return
    for key, value in items:
        child = path + (str(key),)
        yield child, obj, key, value
        yield from walk_fields(value, child)
