#!/usr/bin/env python3
"""Module for cooperative cancellation.

A CancellationToken is shared by everything started on behalf of one command
invocation: build workers, subprocesses and archive writers. Cancelling a
parent token cancels every child derived from it.

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""
# built-in modules
import threading
import typing

# user-defined modules
from portside.core.errors import CancellationError


class CancellationToken:
    """Cancellation flag with parent propagation.

    Attributes:
        reason (str): Why the token was cancelled, if it was.
    """

    def __init__(self, parent: typing.Optional["CancellationToken"] = None) -> None:
        self._event = threading.Event()
        self._parent = parent
        self.reason = ""

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Cancel this token and all of its children."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.cancelled:
            self.reason = self._parent.reason
            return True
        return False

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if this token or an ancestor was cancelled."""
        if self.cancelled:
            raise CancellationError(self.reason or "operation cancelled")

    def child(self) -> "CancellationToken":
        """Derive a token cancelled together with this one."""
        return CancellationToken(parent=self)


def background() -> CancellationToken:
    """A fresh root token that is never cancelled unless asked to."""
    return CancellationToken()
