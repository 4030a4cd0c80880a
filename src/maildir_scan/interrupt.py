"""Cooperative cancellation of scans from a SIGINT handler."""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Iterator


class CancelToken:
    """A flag set asynchronously and polled by the directory enumerator."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()


@contextmanager
def sigint_cancels(token: CancelToken) -> Iterator[CancelToken]:
    """Set ``token`` on SIGINT instead of raising ``KeyboardInterrupt``."""

    def _handler(signum, frame) -> None:
        token.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


__all__ = ["CancelToken", "sigint_cancels"]
