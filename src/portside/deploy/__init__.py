"""
Deployment layer.

Architecture:
- Deployer: abstract base class every backend implements
- Capabilities: optional capabilities, defaulting to no-ops
- KubectlDeployer: applies manifests with kubectl
- TerraformDeployer: applies terraform root modules in dependency order
- DeployerMux: one deployer per configuration

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .contract import Capabilities, Deployer, StatusCode
from .factory import DeployerMux, create_deployer, create_deployers

__all__ = [
    "Capabilities",
    "Deployer",
    "StatusCode",
    "DeployerMux",
    "create_deployer",
    "create_deployers",
]
