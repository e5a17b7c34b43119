"""
Configuration loading and schema.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .loader import ConfigLoader
from .schema import ArtifactDescriptor, GlobalConfig, ProjectConfig

__all__ = ["ConfigLoader", "ArtifactDescriptor", "GlobalConfig", "ProjectConfig"]
