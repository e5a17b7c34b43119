#!/usr/bin/env python3
"""
Label injection.

Adds provenance labels to every selected resource: always on
``metadata.labels`` and on any other ``labels`` map the selector allows,
such as a pod template's labels.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from typing import Dict, Mapping, Optional

from .document import ManifestList
from .selector import SelectorTables
from .visitor import walk_fields

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
RUN_ID_LABEL = "portside.dev/run-id"
MANAGED_BY_VALUE = "portside"


def provenance_labels(run_id: str, custom: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Fixed provenance labels plus user labels (user labels win)."""
    labels = {MANAGED_BY_LABEL: MANAGED_BY_VALUE}
    if run_id:
        labels[RUN_ID_LABEL] = run_id
    labels.update(custom or {})
    return labels


def set_labels(
    manifests: ManifestList, labels: Mapping[str, str], selectors: SelectorTables
) -> ManifestList:
    """Merge labels into selected documents, in place.

    Documents whose labels already carry every value are left untouched.
    """
    if not labels:
        return manifests

    for doc in manifests:
        if not doc.obj or not selectors.selects(doc.group_kind):
            continue

        changed = False
        metadata = doc.obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = doc.obj["metadata"] = {}
            changed = True
        if not isinstance(metadata.get("labels"), dict):
            metadata["labels"] = {}
            changed = True
        targets = [metadata["labels"]]

        gk = doc.group_kind
        for path, _, key, value in walk_fields(doc.obj):
            if key != "labels" or not isinstance(value, dict):
                continue
            if path == ("metadata", "labels"):
                continue
            if selectors.allows_labels(gk, path):
                targets.append(value)

        for target in targets:
            for k, v in labels.items():
                if target.get(k) != v:
                    target[k] = v
                    changed = True

        if changed:
            doc.mark_modified()
    return manifests
