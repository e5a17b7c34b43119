"""
Orchestration of build, transform and deploy stages.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .driver import DriverState, OrchestrationDriver, RunOptions

__all__ = ["DriverState", "OrchestrationDriver", "RunOptions"]
