#!/usr/bin/env python3
"""
Constants and configuration for portside CLI

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from portside.config.loader import DEFAULT_CONFIG_FILE
from portside.manifest.debugging import RUNTIME_PROTOCOLS


class ExitCode:
    """Exit codes, chosen by the driver stage that failed."""

    SUCCESS = 0
    # Cancellation and anything not tied to a stage
    FAILURE = 1
    BUILD_FAILURE = 2
    # Deploying or cleaning up
    DEPLOY_FAILURE = 3
    # Configuration, arguments or dependency graph
    INVALID_ARGS = 4


# Debugger protocols accepted by --protocols
VALID_PROTOCOLS = sorted({name for pairs in RUNTIME_PROTOCOLS.values() for name, _ in pairs})

__all__ = ["ExitCode", "DEFAULT_CONFIG_FILE", "VALID_PROTOCOLS"]
