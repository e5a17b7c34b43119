"""
Manifest handling and the transformation pipeline.

Architecture:
- ManifestList / ManifestDocument: documents that keep their source text
- SelectorTables: which resource types and fields transforms may touch
- TransformPipeline: setters, labels, images, then optional debugging

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

from .document import ManifestDocument, ManifestList
from .pipeline import TransformPipeline

__all__ = ["ManifestDocument", "ManifestList", "TransformPipeline"]
