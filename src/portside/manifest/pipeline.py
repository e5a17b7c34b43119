#!/usr/bin/env python3
"""
Manifest transformation pipeline.

Stages always run in this order:

1. setter overrides
2. label injection
3. image reference substitution
4. debug instrumentation (only when enabled)

Selector tables are merged when the pipeline is constructed, so a malformed
GroupKind in configuration fails before any manifest is touched.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
from typing import Iterable, List, Mapping, Optional, Sequence

from portside.config.schema import ResourceSelectorConfig
from portside.core.errors import ConfigurationError, PortsideError, create_error_context
from portside.graph.artifact import Artifact

from .debugging import ImageConfigRetriever, Registries, apply_debugging_transforms
from .document import ManifestList
from .images import replace_images
from .labels import provenance_labels, set_labels
from .selector import SelectorTables
from .setters import ApplySetters

logger = logging.getLogger(__name__)


class TransformPipeline:
    """Ordered, idempotent mutation stages applied to a manifest list."""

    def __init__(
        self,
        selectors: Iterable[ResourceSelectorConfig] = (),
        registries: Optional[Registries] = None,
        run_id: str = "",
        retrieve_image_config: Optional[ImageConfigRetriever] = None,
    ):
        self.selectors = SelectorTables.build(selectors)
        self.registries = registries or Registries()
        self.run_id = run_id
        self.retrieve_image_config = retrieve_image_config

    def apply(
        self,
        manifests: ManifestList,
        overrides: Optional[Mapping[str, str]] = None,
        built_artifacts: Optional[List[Artifact]] = None,
        debug: bool = False,
        custom_labels: Optional[Mapping[str, str]] = None,
        protocols: Sequence[str] = (),
    ) -> ManifestList:
        """
        Run every stage over ``manifests`` in place.

        Args:
            manifests: Documents to transform
            overrides: Setter name -> value
            built_artifacts: Build results used for image substitution and debugging
            debug: Enable the debug instrumentation stage
            custom_labels: User labels added next to the provenance labels
            protocols: Debugger protocols in priority order

        Returns:
            The same ManifestList

        Raises:
            ConfigurationError: If a stage cannot be applied
        """
        if not manifests:
            return manifests
        builds = list(built_artifacts or [])

        ApplySetters(overrides).apply(manifests)
        set_labels(manifests, provenance_labels(self.run_id, custom_labels), self.selectors)
        replace_images(manifests, builds, self.selectors)

        if debug:
            try:
                apply_debugging_transforms(
                    manifests,
                    builds,
                    self.registries,
                    protocols=protocols,
                    retrieve_image_config=self.retrieve_image_config,
                )
            except PortsideError as e:
                raise ConfigurationError(
                    f"transforming manifests: {e.message}",
                    context=create_error_context("transform", phase="debug"),
                    suggestions=e.suggestions,
                    cause=e,
                ) from e

        logger.debug("Transformed %d manifest(s)", len(manifests))
        return manifests
