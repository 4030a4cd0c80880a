"""In-memory mailbox index populated by scanning a maildir or MH directory."""

from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterable

from lib.rfc822 import Envelope

logger = logging.getLogger(__name__)

# Number of slots added to the index arrays each time they fill up.
ALLOC_CHUNK = 25


class MailboxType(enum.Enum):
    MAILDIR = "maildir"
    MH = "mh"


@dataclass(slots=True)
class Message:
    """One message file, parsed or awaiting its header parse."""

    path: str
    read: bool = False
    replied: bool = False
    flagged: bool = False
    trashed: bool = False
    deleted: bool = False
    old: bool = False
    maildir_flags: str | None = None
    received: int = 0
    date_sent: int = 0
    size: int = 0
    header_offset: int = 0
    index: int = -1
    envelope: Envelope | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.envelope is not None:
            data["envelope"]["references"] = list(self.envelope.references)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        values = dict(data)
        envelope = values.pop("envelope", None)
        message = cls(**values)
        if envelope is not None:
            envelope = dict(envelope)
            envelope["references"] = tuple(envelope.get("references") or ())
            message.envelope = Envelope(**envelope)
        return message


@dataclass(slots=True)
class PendingEntry:
    """A discovered file awaiting parsing and assembly.

    An entry whose ``message`` is None is a tombstone: it stays in the list
    but is skipped by every later stage.
    """

    inode: int
    message: Message | None
    canon_name: str = ""
    parsed: bool = False

    @property
    def relative_path(self) -> str | None:
        return self.message.path if self.message is not None else None


@dataclass
class Mailbox:
    """A maildir or MH mailbox and its growable message index."""

    path: Path
    kind: MailboxType
    verbose: bool = False
    messages: list[Message | None] = field(default_factory=list)
    v2r: list[int] = field(default_factory=list)
    msg_count: int = 0
    email_max: int = 0
    size: int = 0
    msg_unread: int = 0
    msg_flagged: int = 0
    msg_deleted: int = 0
    msg_new: int = 0
    mtime: float = 0.0
    mtime_cur: float = 0.0

    def alloc_memory(self) -> None:
        """Grow the index arrays by one chunk.

        Growth failure is fatal: ``MemoryError`` propagates to the caller.
        """

        self.messages.extend([None] * ALLOC_CHUNK)
        self.v2r.extend([-1] * ALLOC_CHUNK)
        self.email_max += ALLOC_CHUNK

    def size_add(self, message: Message) -> None:
        self.size += message.header_offset + message.size
        if not message.read:
            self.msg_unread += 1
            if not message.old:
                self.msg_new += 1
        if message.flagged:
            self.msg_flagged += 1
        if message.deleted:
            self.msg_deleted += 1

    def iter_messages(self) -> Iterable[Message]:
        for message in self.messages[: self.msg_count]:
            if message is not None:
                yield message


def move_to_mailbox(mailbox: Mailbox, entries: list[PendingEntry]) -> int:
    """Append every live message in ``entries`` to the mailbox index.

    Ownership of each message moves to the mailbox and the pending list is
    emptied. Returns the number of messages added.
    """

    old_count = mailbox.msg_count
    for entry in entries:
        logger.debug("Considering %s", entry.canon_name)
        message = entry.message
        if message is None:
            continue

        logger.debug(
            "Adding header structure. Flags: %s%s%s%s%s",
            "f" if message.flagged else "",
            "D" if message.deleted else "",
            "r" if message.replied else "",
            "O" if message.old else "",
            "R" if message.read else "",
        )
        if mailbox.msg_count == mailbox.email_max:
            mailbox.alloc_memory()

        mailbox.messages[mailbox.msg_count] = message
        mailbox.v2r[mailbox.msg_count] = mailbox.msg_count
        message.index = mailbox.msg_count
        mailbox.size_add(message)

        entry.message = None
        mailbox.msg_count += 1

    entries.clear()
    return mailbox.msg_count - old_count


__all__ = [
    "ALLOC_CHUNK",
    "Mailbox",
    "MailboxType",
    "Message",
    "PendingEntry",
    "move_to_mailbox",
]
