"""
secureshred.progress
--------------------

Cooperative cancellation and one-way progress delivery.

Erasers call ``token.raise_if_cancelled(path)`` at every pass and chunk
boundary and report ``(fraction, status)`` through a plain callback. Nothing
here ever blocks the erasure loop.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from .errors import Cancelled
from .models import ProgressSnapshot

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#: (fraction in [0, 1], status text) -> None
ProgressCallback = Callable[[float, str], None]


def _ignore_progress(fraction: float, status: str) -> None:
    pass


class CancellationToken:
    """
    A cancel flag checked only at defined suspension points.

    An optional external ``threading.Event`` (e.g. set by a signal handler)
    counts as a cancellation request too.
    """

    def __init__(self, external: Optional[threading.Event] = None):
        self._event = threading.Event()
        self._external = external

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._external is not None and self._external.is_set()

    def raise_if_cancelled(self, path: Optional[str] = None) -> None:
        if self.is_cancelled:
            raise Cancelled(path)


class QueueProgressSink:
    """
    Deliver progress snapshots through a bounded queue.

    put_nowait() drops the update when the consumer lags behind; a missed
    update is acceptable, a stalled erasure loop is not.
    """

    def __init__(self, maxsize: int = 256):
        self.queue: "queue.Queue[ProgressSnapshot]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        try:
            self.queue.put_nowait(snapshot)
        except queue.Full:
            self.dropped += 1

    def drain(self) -> list[ProgressSnapshot]:
        items = []
        while True:
            try:
                items.append(self.queue.get_nowait())
            except queue.Empty:
                return items
