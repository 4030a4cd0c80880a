"""A JSON-file header cache keyed by message identity within one mailbox."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Protocol

from maildir_scan.mailbox import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached parse and the time (epoch seconds) it was stored."""

    message: Message
    validity: int


class HeaderCache(Protocol):
    def fetch(self, key: str) -> CacheEntry | None: ...

    def store(self, key: str, message: Message) -> None: ...


class JsonHeaderCache:
    """Header cache persisted as a single JSON document per mailbox."""

    def __init__(self, cache_file: Path) -> None:
        self.cache_file = cache_file
        self._records: dict[str, dict[str, Any]] = {}
        self._touched: set[str] = set()
        self._dirty = False

    @classmethod
    def for_mailbox(cls, cache_dir: Path, mailbox_path: Path) -> "JsonHeaderCache":
        digest = hashlib.sha1(str(mailbox_path).encode("utf-8")).hexdigest()
        return cls(cache_dir / f"{digest}.json")

    def load(self) -> None:
        if not self.cache_file.exists():
            return
        try:
            data = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable header cache %s: %s", self.cache_file, exc)
            return
        records = data.get("records") if isinstance(data, dict) else None
        if isinstance(records, dict):
            self._records = records

    def fetch(self, key: str) -> CacheEntry | None:
        self._touched.add(key)
        record = self._records.get(key)
        if record is None:
            return None
        try:
            return CacheEntry(
                message=Message.from_dict(record["message"]),
                validity=int(record["validity"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Discarding malformed cache record %s: %s", key, exc)
            return None

    def store(self, key: str, message: Message) -> None:
        self._touched.add(key)
        self._records[key] = {
            "validity": int(time.time()),
            "message": message.to_dict(),
        }
        self._dirty = True

    def prune(self) -> int:
        """Drop records whose key was neither fetched nor stored since loading.

        Called after a full scan, this forgets messages that were deleted or
        renamed away. Returns the number of records dropped.
        """

        stale = [key for key in self._records if key not in self._touched]
        for key in stale:
            del self._records[key]
        if stale:
            logger.debug("pruned %d stale records from %s", len(stale), self.cache_file)
            self._dirty = True
        return len(stale)

    def close(self) -> None:
        if not self._dirty:
            return
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {"records": self._records}
        self.cache_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        self._dirty = False

    def __len__(self) -> int:
        return len(self._records)


@contextmanager
def open_header_cache(
    cache_dir: Path, mailbox_path: Path, *, prune: bool = False
) -> Iterator[JsonHeaderCache]:
    """Open the cache for ``mailbox_path`` and write it back on exit.

    With ``prune``, records not used inside the block are dropped when the
    block exits normally.
    """

    cache = JsonHeaderCache.for_mailbox(cache_dir, mailbox_path)
    cache.load()
    try:
        yield cache
        if prune:
            cache.prune()
    finally:
        cache.close()


__all__ = ["CacheEntry", "HeaderCache", "JsonHeaderCache", "open_header_cache"]
