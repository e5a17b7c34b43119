#!/usr/bin/env python3
"""
Image reference substitution.

Replaces image references that name a just-built artifact with the
artifact's fully qualified tag. Only fields called ``image`` at paths the
selector allows are considered, and a document none of whose images match
is left exactly as it was read.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import Dict, List

from portside.graph.artifact import Artifact, strip_tag

from .document import ManifestList
from .selector import SelectorTables
from .visitor import walk_fields

logger = logging.getLogger(__name__)


def replace_images(
    manifests: ManifestList, builds: List[Artifact], selectors: SelectorTables
) -> ManifestList:
    """Point image fields at built tags, in place."""
    if not builds or not manifests:
        return manifests

    tags: Dict[str, str] = {strip_tag(b.image_name): b.tag for b in builds}
    for doc in manifests:
        if not doc.obj or not selectors.selects(doc.group_kind):
            continue

        gk = doc.group_kind
        replacements = []
        for path, parent, key, value in walk_fields(doc.obj):
            if key != "image" or not isinstance(value, str):
                continue
            if not selectors.allows_image(gk, path):
                continue
            tag = tags.get(strip_tag(value))
            if tag is not None and tag != value:
                replacements.append((parent, key, value, tag))

        for parent, key, old, new in replacements:
            logger.debug("Replacing image %s with %s in %s", old, new, doc)
            parent[key] = new
        if replacements:
            doc.mark_modified()
    return manifests
