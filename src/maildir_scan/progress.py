"""Progress reporting for mailbox scans."""

from __future__ import annotations

from typing import Protocol

from tqdm import tqdm


class ProgressSink(Protocol):
    def update(self, position: int, total: int) -> None: ...


class TqdmProgress:
    """Adapt a ``tqdm`` bar to absolute ``(position, total)`` updates."""

    def __init__(self, desc: str, *, disable: bool = False) -> None:
        self._bar = tqdm(total=0, desc=desc, unit="msg", disable=disable)

    def update(self, position: int, total: int) -> None:
        if total and self._bar.total != total:
            self._bar.total = total
        self._bar.n = position
        self._bar.refresh()

    def close(self) -> None:
        self._bar.close()

    def __enter__(self) -> "TqdmProgress":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["ProgressSink", "TqdmProgress"]
