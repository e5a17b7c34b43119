"""
Dependency ordering and build results.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .artifact import Artifact
from .scheduler import order_for_execution

__all__ = ["Artifact", "order_for_execution"]
