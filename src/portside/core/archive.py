#!/usr/bin/env python3
"""Module to create cancellable tar archives.

Build contexts are archived before they are shipped to a remote builder.
Every write goes through a CancellableWriter, so cancelling the invocation
stops the archive with a CancellationError instead of leaving a silently
truncated file behind.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import gzip
import logging
import os
import stat
import tarfile
import time
import typing

# user-defined modules
from portside.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

HeaderModifier = typing.Callable[[tarfile.TarInfo], None]


class CancellableWriter:
    """File-like wrapper that refuses writes once the token is cancelled."""

    def __init__(self, w: typing.BinaryIO, token: CancellationToken) -> None:
        self._w = w
        self._token = token
        self._written = 0

    def write(self, data: bytes) -> int:
        self._token.raise_if_cancelled()
        self._w.write(data)
        self._written += len(data)
        return len(data)

    def tell(self) -> int:
        return self._written

    def flush(self) -> None:
        if hasattr(self._w, "flush"):
            self._w.flush()


def create_tar(
    token: CancellationToken,
    w: typing.BinaryIO,
    root: str,
    paths: typing.List[str],
) -> None:
    """Write paths (relative to root, or absolute) into a tar stream."""
    batch_size = len(paths) // 10
    if batch_size < 10:
        batch_size = 5

    logger.info("Creating tar file from %d file(s)", len(paths))
    start = time.monotonic()
    with tarfile.open(fileobj=CancellableWriter(w, token), mode="w") as tw:
        for i, path in enumerate(paths):
            _add_file_to_tar(token, root, path, "", tw)
            if (i + 1) % batch_size == 0:
                logger.info("Added %d/%d files to tar file", i + 1, len(paths))
    logger.info("Creating tar file completed in %.2fs", time.monotonic() - start)


def create_tar_gz(
    token: CancellationToken,
    w: typing.BinaryIO,
    root: str,
    paths: typing.List[str],
) -> None:
    """Same as create_tar, gzip compressed."""
    gw = gzip.GzipFile(fileobj=CancellableWriter(w, token), mode="wb")
    try:
        create_tar(token, gw, root, paths)
    finally:
        if not token.cancelled:
            gw.close()


def create_mapped_tar(
    token: CancellationToken,
    w: typing.BinaryIO,
    root: str,
    path_map: typing.Dict[str, typing.List[str]],
) -> None:
    """Write each source file under every destination name it maps to."""
    with tarfile.open(fileobj=CancellableWriter(w, token), mode="w") as tw:
        for src, dsts in path_map.items():
            for dst in dsts:
                _add_file_to_tar(token, root, src, dst, tw)


def create_tar_with_parents(
    token: CancellationToken,
    w: typing.BinaryIO,
    root: str,
    paths: typing.List[str],
    uid: int,
    gid: int,
    mod_time: float,
) -> None:
    """Write paths with their parent directories first and fixed ownership."""

    def modify(info: tarfile.TarInfo) -> None:
        info.mtime = mod_time
        info.uid = uid
        info.gid = gid
        info.uname = ""
        info.gname = ""

    added: typing.Set[str] = set()
    with tarfile.open(fileobj=CancellableWriter(w, token), mode="w") as tw:
        for path in paths:
            parents_first = []
            p = os.path.normpath(path)
            while p not in (".", "", os.sep) and p not in added:
                parents_first.append(p)
                added.add(p)
                p = os.path.dirname(p)
            for entry in reversed(parents_first):
                _add_file_to_tar(token, root, entry, "", tw, modify)


def _add_file_to_tar(
    token: CancellationToken,
    root: str,
    src: str,
    dst: str,
    tw: tarfile.TarFile,
    header_modifier: typing.Optional[HeaderModifier] = None,
) -> None:
    full_path = src if os.path.isabs(src) else os.path.join(root, src)
    mode = os.lstat(full_path).st_mode
    if stat.S_ISSOCK(mode):
        return

    if stat.S_ISLNK(mode) and os.path.isabs(os.readlink(full_path)):
        logger.warning("Skipping %s. Only relative symlinks are supported.", src)
        return

    if dst:
        name = dst
    else:
        name = os.path.relpath(full_path, root)
    info = tw.gettarinfo(full_path, arcname=name.replace(os.sep, "/"))
    if header_modifier is not None:
        header_modifier(info)

    if not stat.S_ISREG(mode):
        tw.addfile(info)
        return

    token.raise_if_cancelled()
    with open(full_path, "rb") as f:
        tw.addfile(info, f)
