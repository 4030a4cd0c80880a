"""Helpers for reading the RFC 822 header block of a single message file."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timezone
from email import policy
from email.parser import BytesHeaderParser
from email.utils import parsedate_to_datetime
from typing import BinaryIO


class MessageParseError(ValueError):
    """Raised when a file does not start with a usable header block."""


@dataclass(frozen=True)
class Envelope:
    """The subset of header fields the mailbox index keeps per message."""

    from_: str = ""
    to: str = ""
    subject: str = ""
    date: str = ""
    message_id: str = ""
    references: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ParsedHeader:
    envelope: Envelope
    date_sent: int
    received: int
    header_offset: int


_HEADER_PARSER = BytesHeaderParser(policy=policy.compat32)


def read_header(handle: BinaryIO) -> ParsedHeader:
    """Parse the header block at the current position of ``handle``.

    The handle is left positioned at the start of the body. ``header_offset``
    is the absolute byte offset of the body within the file.
    """

    lines: list[bytes] = []
    for line in iter(handle.readline, b""):
        if line in (b"\n", b"\r\n"):
            break
        lines.append(line)
    offset = handle.tell()

    if not any(_is_field_line(line) for line in lines):
        raise MessageParseError("no header fields found")

    headers = _HEADER_PARSER.parsebytes(b"".join(lines))
    date_header = _normalize(headers.get("Date"))
    envelope = Envelope(
        from_=_normalize(headers.get("From")),
        to=_normalize(headers.get("To")),
        subject=_normalize(headers.get("Subject")),
        date=date_header,
        message_id=_normalize(headers.get("Message-ID")),
        references=tuple(_normalize(headers.get("References")).split()),
    )
    return ParsedHeader(
        envelope=envelope,
        date_sent=_to_epoch(date_header),
        received=_received_time(headers.get_all("Received") or []),
        header_offset=offset,
    )


def _is_field_line(line: bytes) -> bool:
    if line[:1] in (b" ", b"\t"):
        return False
    name, sep, _ = line.partition(b":")
    return bool(sep) and bool(name.strip()) and b" " not in name.strip()


def _normalize(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return " ".join(value.split())


def _to_epoch(date_header: str) -> int:
    if not date_header:
        return 0
    try:
        parsed = parsedate_to_datetime(date_header)
    except (TypeError, ValueError):
        return 0
    if parsed is None:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _received_time(received_headers: list) -> int:
    # The topmost Received header was added by the final hop.
    if not received_headers:
        return 0
    _, sep, stamp = _normalize(received_headers[0]).rpartition(";")
    if not sep:
        return 0
    return _to_epoch(stamp.strip())


__all__ = ["Envelope", "MessageParseError", "ParsedHeader", "read_header"]
