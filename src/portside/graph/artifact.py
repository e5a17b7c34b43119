#!/usr/bin/env python3
"""
Build results and image reference helpers.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import json
from dataclasses import asdict, dataclass
from typing import List


@dataclass(frozen=True)
class Artifact:
    """A built image: the configured name and the fully qualified tag."""

    image_name: str
    tag: str
    runtime_type: str = ""


def strip_tag(image: str) -> str:
    """Image reference without its tag or digest.

    ``localhost:5000/app:v1@sha256:ab`` -> ``localhost:5000/app``
    """
    name = image.split("@", 1)[0]
    slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > slash:
        name = name[:colon]
    return name


def registry_of(image: str) -> str:
    """Registry host of an image reference, or "" for Docker Hub images."""
    first, sep, _ = image.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return first
    return ""


def load_build_output(path: str) -> List[Artifact]:
    """Read a build output file written by ``portside build --file-output``."""
    with open(path) as f:
        data = json.load(f)
    return [
        Artifact(
            image_name=b["imageName"],
            tag=b["tag"],
            runtime_type=b.get("runtimeType", ""),
        )
        for b in data.get("builds", [])
    ]


def dump_build_output(path: str, builds: List[Artifact]) -> None:
    data = {
        "builds": [
            {"imageName": b.image_name, "tag": b.tag, "runtimeType": b.runtime_type}
            for b in builds
        ]
    }
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
