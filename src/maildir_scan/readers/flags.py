"""Decode and encode the flag suffix of maildir filenames (``uniqueid:2,FRS``)."""

from __future__ import annotations

from maildir_scan.mailbox import Message

FLAG_MARKER = "2,"


def canonical_name(filename: str) -> str:
    """Return ``filename`` without its ``:2,...`` info suffix."""

    head, sep, _ = filename.rpartition(":")
    return head if sep else filename


def parse_maildir_flags(message: Message, path: str, *, flag_safe: bool = False) -> None:
    """Set ``message`` flags from the info suffix of ``path``.

    ``flagged``, ``read`` and ``replied`` are recomputed on every call.
    ``trashed`` and ``deleted`` are only ever set: a ``T`` is ignored when
    the message was already flagged before this call and ``flag_safe`` is on.
    Letters that are not recognized are kept, in order, in
    ``message.maildir_flags``.
    """

    was_flagged = message.flagged
    message.flagged = False
    message.read = False
    message.replied = False

    _, sep, info = path.rpartition(":")
    if not sep or not info.startswith(FLAG_MARKER):
        message.maildir_flags = None
        return

    kept: list[str] = []
    for letter in info[len(FLAG_MARKER):]:
        if letter == "F":
            message.flagged = True
        elif letter == "R":
            message.replied = True
        elif letter == "S":
            message.read = True
        elif letter == "T":
            if not (was_flagged and flag_safe):
                message.trashed = True
                message.deleted = True
        else:
            kept.append(letter)

    message.maildir_flags = "".join(kept) or None


def build_maildir_flags(message: Message) -> str:
    """Return the flag letters for ``message``, unknown letters last."""

    letters = []
    if message.flagged:
        letters.append("F")
    if message.replied:
        letters.append("R")
    if message.read:
        letters.append("S")
    if message.trashed:
        letters.append("T")
    return "".join(letters) + (message.maildir_flags or "")


def maildir_filename(canonical: str, message: Message) -> str:
    return f"{canonical}:{FLAG_MARKER}{build_maildir_flags(message)}"


__all__ = [
    "FLAG_MARKER",
    "build_maildir_flags",
    "canonical_name",
    "maildir_filename",
    "parse_maildir_flags",
]
