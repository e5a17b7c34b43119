#!/usr/bin/env python3
"""
Target platform handling.

A platform is written ``os/arch[/variant]`` (``linux/amd64``,
``linux/arm/v7``). A PlatformMatcher is either "all platforms" or an explicit
set; builders with a restricted platform set expose one and the dispatcher
intersects it with what the user asked for.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class Platform:
    """A single os/arch[/variant] target."""

    os: str
    architecture: str
    variant: str = ""

    @classmethod
    def parse(cls, value: str) -> "Platform":
        parts = value.strip().split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ConfigurationError(
                f"invalid platform {value!r}: expected os/arch[/variant]",
                suggestions=["Use values such as linux/amd64 or linux/arm64"],
            )
        variant = parts[2] if len(parts) == 3 else ""
        return cls(os=parts[0].lower(), architecture=parts[1].lower(), variant=variant)

    def __str__(self) -> str:
        if self.variant:
            return f"{self.os}/{self.architecture}/{self.variant}"
        return f"{self.os}/{self.architecture}"


@dataclass(frozen=True)
class PlatformMatcher:
    """A set of platforms, or every platform when ``all`` is set."""

    platforms: Tuple[Platform, ...] = ()
    all: bool = False

    @classmethod
    def parse(cls, values: Optional[Iterable[str]]) -> "PlatformMatcher":
        values = [v for v in (values or []) if v]
        if any(v.strip().lower() == "all" for v in values):
            return ALL_PLATFORMS
        return cls(platforms=tuple(Platform.parse(v) for v in values))

    def is_empty(self) -> bool:
        return not self.all and not self.platforms

    def is_not_empty(self) -> bool:
        return not self.is_empty()

    def intersect(self, other: "PlatformMatcher") -> "PlatformMatcher":
        if self.all:
            return other
        if other.all:
            return self
        return PlatformMatcher(
            platforms=tuple(p for p in self.platforms if _matches_any(p, other.platforms))
        )

    def names(self) -> List[str]:
        if self.all:
            return ["all"]
        return [str(p) for p in self.platforms]

    def __str__(self) -> str:
        return ",".join(self.names())


def _matches_any(platform: Platform, candidates: Iterable[Platform]) -> bool:
    for c in candidates:
        if c.os != platform.os or c.architecture != platform.architecture:
            continue
        # An unspecified variant matches any variant.
        if not c.variant or not platform.variant or c.variant == platform.variant:
            return True
    return False


ALL_PLATFORMS = PlatformMatcher(all=True)
