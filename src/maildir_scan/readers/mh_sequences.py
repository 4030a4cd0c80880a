"""Read MH ``.mh_sequences`` files and apply them to parsed messages."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Iterable

from maildir_scan.mailbox import PendingEntry
from maildir_scan.options import ScanOptions
from maildir_scan.readers.directory import MH_SEQUENCES_FILE

logger = logging.getLogger(__name__)


class MhSequenceError(ValueError):
    """Raised when ``.mh_sequences`` contains an unreadable range."""


class MhSeqFlags(enum.IntFlag):
    UNSEEN = 1
    FLAGGED = 2
    REPLIED = 4


class MhSequences:
    """Per-message-number flags loaded from a sequences file."""

    def __init__(self) -> None:
        self._flags: dict[int, MhSeqFlags] = {}

    def add(self, number: int, flag: MhSeqFlags) -> None:
        self._flags[number] = self._flags.get(number, MhSeqFlags(0)) | flag

    def check(self, number: int) -> MhSeqFlags:
        return self._flags.get(number, MhSeqFlags(0))


def _parse_range(token: str) -> tuple[int, int]:
    first, sep, last = token.partition("-")
    try:
        start = int(first)
        end = int(last) if sep else start
    except ValueError:
        raise MhSequenceError(f"invalid sequence range: {token!r}") from None
    if start <= 0 or end < start:
        raise MhSequenceError(f"invalid sequence range: {token!r}")
    return start, end


def parse_sequences(lines: Iterable[str], *, options: ScanOptions) -> MhSequences:
    names = {
        options.mh_seq_unseen: MhSeqFlags.UNSEEN,
        options.mh_seq_flagged: MhSeqFlags.FLAGGED,
        options.mh_seq_replied: MhSeqFlags.REPLIED,
    }
    sequences = MhSequences()
    for line in lines:
        name, sep, ranges = line.partition(":")
        if not sep:
            continue
        flag = names.get(name.strip())
        if flag is None:
            continue
        for token in ranges.split():
            start, end = _parse_range(token)
            for number in range(start, end + 1):
                sequences.add(number, flag)
    return sequences


def read_sequences(mailbox_path: Path, *, options: ScanOptions) -> MhSequences:
    """Load the sequences of the MH folder at ``mailbox_path``.

    A missing sequences file means no message is in any sequence.
    """

    path = mailbox_path / MH_SEQUENCES_FILE
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        logger.debug("no sequences file in %s", mailbox_path)
        return MhSequences()
    return parse_sequences(text.splitlines(), options=options)


def update_messages(entries: Iterable[PendingEntry], sequences: MhSequences) -> None:
    """Overwrite read/flagged/replied of each live entry from ``sequences``."""

    for entry in entries:
        message = entry.message
        if message is None:
            continue
        name = message.path.rpartition("/")[2]
        try:
            number = int(name)
        except ValueError:
            continue
        flags = sequences.check(number)
        message.read = not flags & MhSeqFlags.UNSEEN
        message.flagged = bool(flags & MhSeqFlags.FLAGGED)
        message.replied = bool(flags & MhSeqFlags.REPLIED)


__all__ = [
    "MhSeqFlags",
    "MhSequenceError",
    "MhSequences",
    "parse_sequences",
    "read_sequences",
    "update_messages",
]
