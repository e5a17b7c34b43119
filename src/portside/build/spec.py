#!/usr/bin/env python3
"""
Cloud build request model.

``to_dict`` produces the document ``gcloud builds submit --config`` reads,
with empty fields left out.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class BuildStep:
    name: str
    args: List[str] = field(default_factory=list)
    id: str = ""
    entrypoint: str = ""
    dir: str = ""
    env: List[str] = field(default_factory=list)
    secret_env: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "id": self.id,
                "entrypoint": self.entrypoint,
                "dir": self.dir,
                "args": self.args,
                "env": self.env,
                "secretEnv": self.secret_env,
            }
        )


@dataclass
class StorageSource:
    bucket: str
    object: str


@dataclass
class BuildOptions:
    disk_size_gb: int = 0
    machine_type: str = ""
    pool: str = ""
    logging: str = ""
    log_streaming_option: str = ""
    env: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _compact(
            {
                "diskSizeGb": self.disk_size_gb,
                "machineType": self.machine_type,
                "pool": {"name": self.pool} if self.pool else None,
                "logging": self.logging,
                "logStreamingOption": self.log_streaming_option,
                "env": self.env,
            }
        )


@dataclass
class SecretReference:
    env: str
    version_name: str


@dataclass
class BuildSpec:
    """A build request for the remote build service."""

    steps: List[BuildStep] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    options: BuildOptions = field(default_factory=BuildOptions)
    source: Optional[StorageSource] = None
    logs_bucket: str = ""
    timeout: str = ""
    service_account: str = ""
    available_secrets: List[SecretReference] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "steps": [s.to_dict() for s in self.steps],
            "images": self.images,
            "options": self.options.to_dict(),
            "logsBucket": self.logs_bucket,
            "timeout": self.timeout,
            "serviceAccount": self.service_account,
        }
        if self.source is not None:
            data["source"] = {
                "storageSource": {"bucket": self.source.bucket, "object": self.source.object}
            }
        if self.available_secrets:
            data["availableSecrets"] = {
                "secretManager": [
                    {"env": s.env, "versionName": s.version_name}
                    for s in self.available_secrets
                ]
            }
        return _compact(data)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v not in (None, "", 0, [], {})}
