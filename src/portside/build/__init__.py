"""
Build layer.

Architecture:
- Builder: abstract base class for build backends
- LocalBuilder: docker and packer on this machine
- CloudBuilder: remote builds from a BuildSpec
- CloudBuildSpecBuilder: artifact descriptor -> BuildSpec
- BuildScheduler: concurrent, dependency ordered builds

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .base import Builder
from .dispatcher import CloudBuildSpecBuilder
from .scheduler import BuildScheduler

__all__ = ["Builder", "CloudBuildSpecBuilder", "BuildScheduler"]
