#!/usr/bin/env python3
"""
Setter overrides.

A field opts into overrides with a setter marker comment::

    image: nginx:1.0 # kpt-set: ${image}:${tag}

Given ``image=web`` and ``tag=2.1`` the value becomes ``web:2.1``. A marker
is rewritten only when every setter it references has a value. Rewriting
works on the document text, so comments and formatting survive, and
applying the same setters twice changes nothing further.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional

import yaml

from portside.core.errors import ConfigurationError

from .document import ManifestList

logger = logging.getLogger(__name__)

SETTER_REF = re.compile(r"\$\{([^}]*)\}")
MARKED_LINE = re.compile(
    r"^(?P<prefix>[ \t]*(?:-[ \t]+)?(?:[^\s#][^#]*?:[ \t]+)?)"
    r"(?P<value>[^\s#].*?)?"
    r"(?P<space>[ \t]*)"
    r"(?P<comment>#[ \t]*kpt-set:[ \t]*(?P<template>.*?))[ \t]*$"
)
_SETTER_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class ApplySetters:
    """Literal name -> value substitutions for marked fields."""

    def __init__(self, setters: Optional[Mapping[str, str]] = None):
        setters = dict(setters or {})
        for name in setters:
            if not _SETTER_NAME.match(name):
                raise ConfigurationError(
                    f"invalid setter name {name!r}",
                    suggestions=["Setter names may contain letters, digits, '_', '.', '-'"],
                )
        self.setters: Dict[str, str] = setters

    def apply(self, manifests: ManifestList) -> ManifestList:
        """
        Rewrite marked fields in every document.

        Raises:
            ConfigurationError: If a rewritten document is no longer valid YAML
        """
        if not self.setters:
            return manifests

        for doc in manifests:
            raw = doc.raw
            updated = self.apply_to_text(raw)
            if updated == raw:
                continue
            try:
                yaml.safe_load(updated)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"applying setters to {doc.kind} {doc.name!r} produced invalid YAML: {e}",
                    cause=e,
                ) from e
            doc.replace_raw(updated)
        return manifests

    def apply_to_text(self, text: str) -> str:
        lines: List[str] = []
        for line in text.splitlines(keepends=True):
            body = line.rstrip("\r\n")
            ending = line[len(body):]
            lines.append(self._apply_line(body) + ending)
        return "".join(lines)

    def _apply_line(self, line: str) -> str:
        match = MARKED_LINE.match(line)
        if not match:
            return line
        # A bare comment line has no field to set.
        if match.group("value") is None and not match.group("prefix").strip():
            return line

        template = match.group("template")
        names = SETTER_REF.findall(template)
        if not names or any(name not in self.setters for name in names):
            return line

        value = SETTER_REF.sub(lambda m: self.setters[m.group(1)], template)
        old = match.group("value") or ""
        if len(old) >= 2 and old[0] == old[-1] and old[0] in ("'", '"'):
            value = f"{old[0]}{value}{old[0]}"
        if value == old:
            return line

        space = match.group("space") or " "
        logger.debug("Setter %s: %r -> %r", ",".join(names), old, value)
        return f"{match.group('prefix')}{value}{space}{match.group('comment')}"
