#!/usr/bin/env python3
"""
Manifest documents and lists.

A manifest stream is a sequence of YAML documents separated by ``---``
lines. Each ManifestDocument keeps the exact text it was read from; the
parsed object is only serialised again once a transform has changed it, so
untouched documents round-trip byte for byte.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import re
from typing import Any, Dict, Iterator, List, Optional, TextIO, Union

import yaml

from portside.core.errors import ConfigurationError

from .selector import GroupKind

_SEPARATOR = re.compile(r"^---[ \t]*(?:#.*)?$", re.MULTILINE)


class ManifestDocument:
    """One resource document."""

    def __init__(self, raw: str):
        self._raw = raw
        self._obj: Optional[Dict[str, Any]] = None
        self._dirty = False

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ManifestDocument":
        doc = cls("")
        doc._obj = obj
        doc._dirty = True
        return doc

    @property
    def raw(self) -> str:
        """Source text, or the serialised object if it has been modified."""
        if self._dirty:
            return yaml.safe_dump(self._obj, sort_keys=False, default_flow_style=False)
        return self._raw

    @property
    def obj(self) -> Dict[str, Any]:
        """Parsed object tree. Callers that change it must call mark_modified()."""
        if self._obj is None:
            try:
                parsed = yaml.safe_load(self._raw)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"parsing manifest: {e}", cause=e) from e
            self._obj = parsed if isinstance(parsed, dict) else {}
        return self._obj

    def mark_modified(self) -> None:
        self._dirty = True

    def replace_raw(self, raw: str) -> None:
        """Swap in new source text, dropping any parsed state."""
        self._raw = raw
        self._obj = None
        self._dirty = False

    @property
    def modified(self) -> bool:
        return self._dirty

    @property
    def api_version(self) -> str:
        return str(self.obj.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return str(self.obj.get("kind", ""))

    @property
    def group_kind(self) -> GroupKind:
        api_version = self.api_version
        group = api_version.rsplit("/", 1)[0] if "/" in api_version else ""
        return GroupKind(group=group.lower(), kind=self.kind)

    @property
    def metadata(self) -> Dict[str, Any]:
        metadata = self.obj.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace", ""))

    def __repr__(self) -> str:
        return f"ManifestDocument({self.group_kind}, {self.namespace}/{self.name})"


class ManifestList:
    """Ordered collection of manifest documents."""

    def __init__(self, documents: Optional[List[ManifestDocument]] = None):
        self.documents: List[ManifestDocument] = list(documents or [])

    @classmethod
    def load(cls, source: Union[str, TextIO]) -> "ManifestList":
        """Split a manifest stream into documents, dropping empty ones."""
        text = source if isinstance(source, str) else source.read()
        documents = []
        for chunk in _SEPARATOR.split(text):
            if _is_blank(chunk):
                continue
            documents.append(ManifestDocument(chunk.strip("\n") + "\n"))
        return cls(documents)

    @classmethod
    def load_files(cls, paths: List[str]) -> "ManifestList":
        result = cls()
        for path in paths:
            with open(path) as f:
                result.documents.extend(cls.load(f).documents)
        return result

    def __iter__(self) -> Iterator[ManifestDocument]:
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)

    def __bool__(self) -> bool:
        return bool(self.documents)

    def extend(self, other: "ManifestList") -> None:
        self.documents.extend(other.documents)

    def __str__(self) -> str:
        return "---\n".join(doc.raw for doc in self.documents)


def _is_blank(chunk: str) -> bool:
    for line in chunk.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return False
    return True
