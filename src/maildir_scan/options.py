"""Options controlling how a mailbox directory is scanned."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ScanOptions:
    """Scan behaviour switches.

    ``flag_safe`` keeps flagged messages from being marked deleted by a
    ``T`` in their filename. ``header_cache_verify`` rejects cached headers
    older than the file's mtime. ``mark_old`` marks messages found in
    ``cur/`` as old. ``sort_by_arrival`` puts MH messages in natural
    (path) order after parsing.
    """

    flag_safe: bool = False
    header_cache_verify: bool = True
    mark_old: bool = True
    sort_by_arrival: bool = True
    header_cache: Path | None = None
    mh_seq_unseen: str = "unseen"
    mh_seq_flagged: str = "flagged"
    mh_seq_replied: str = "replied"


__all__ = ["ScanOptions"]
