"""Hybrid insertion/merge sort over pending-list entries."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from maildir_scan.mailbox import Mailbox, MailboxType, PendingEntry
from maildir_scan.options import ScanOptions

logger = logging.getLogger(__name__)

# Runs at or below this length are insertion sorted.
INS_SORT_THRESHOLD = 6

Comparator = Callable[[PendingEntry, PendingEntry], int]


def cmp_inode(a: PendingEntry, b: PendingEntry) -> int:
    return (a.inode > b.inode) - (a.inode < b.inode)


def cmp_path(a: PendingEntry, b: PendingEntry) -> int:
    left = a.relative_path or ""
    right = b.relative_path or ""
    return (left > right) - (left < right)


def insertion_sort(entries: Sequence[PendingEntry], cmp: Comparator) -> list[PendingEntry]:
    result: list[PendingEntry] = []
    for entry in entries:
        position = len(result)
        while position > 0 and cmp(result[position - 1], entry) > 0:
            position -= 1
        result.insert(position, entry)
    return result


def merge_lists(
    left: Sequence[PendingEntry],
    right: Sequence[PendingEntry],
    cmp: Comparator,
) -> list[PendingEntry]:
    """Merge two sorted runs; on ties the entry from ``left`` comes first."""

    merged: list[PendingEntry] = []
    i = j = 0
    while i < len(left) and j < len(right):
        if cmp(left[i], right[j]) <= 0:
            merged.append(left[i])
            i += 1
        else:
            merged.append(right[j])
            j += 1
    merged.extend(left[i:])
    merged.extend(right[j:])
    return merged


def sort_entries(entries: Sequence[PendingEntry], cmp: Comparator) -> list[PendingEntry]:
    """Return ``entries`` stably sorted by ``cmp`` without modifying the input."""

    if len(entries) <= 1:
        return list(entries)
    if len(entries) <= INS_SORT_THRESHOLD:
        return insertion_sort(entries, cmp)

    middle = (len(entries) + 1) // 2
    left = sort_entries(entries[:middle], cmp)
    right = sort_entries(entries[middle:], cmp)
    return merge_lists(left, right, cmp)


def sort_natural(
    mailbox: Mailbox,
    entries: list[PendingEntry],
    *,
    options: ScanOptions,
) -> list[PendingEntry]:
    """Put MH entries in path order when arrival order is selected."""

    if not entries or mailbox.kind is not MailboxType.MH or not options.sort_by_arrival:
        return entries
    logger.debug("sorting %s into natural order", mailbox.path)
    return sort_entries(entries, cmp_path)


__all__ = [
    "INS_SORT_THRESHOLD",
    "cmp_inode",
    "cmp_path",
    "insertion_sort",
    "merge_lists",
    "sort_entries",
    "sort_natural",
]
