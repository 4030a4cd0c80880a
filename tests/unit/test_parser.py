"""Tests for incremental header parsing of pending entries."""

import os
from pathlib import Path

import pytest

from lib.header_cache import CacheEntry
from maildir_scan.mailbox import Mailbox, MailboxType, Message, PendingEntry
from maildir_scan.options import ScanOptions
from maildir_scan.readers import parser

HEADER = (
    "From: Alice <alice@example.com>\n"
    "To: Bob <bob@example.com>\n"
    "Date: Mon, 01 Jan 2001 12:00:00 +0000\n"
    "Message-ID: <{name}@example.com>\n"
    "Subject: {subject}\n"
    "\n"
)


def _write_message(path: Path, subject: str = "Hello", body: str = "Body\n") -> bytes:
    header = HEADER.format(name=path.name.split(":")[0], subject=subject).encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(header + body.encode("utf-8"))
    return header


def _entry(mailbox: Mailbox, path: str, *, inode: int | None = None) -> PendingEntry:
    if inode is None:
        inode = (mailbox.path / path).stat().st_ino
    message = Message(path=path, old=path.startswith("cur/"))
    return PendingEntry(inode=inode, message=message, canon_name=path.rpartition("/")[2])


class _DictCache:
    def __init__(self, validity: int | None = None) -> None:
        self.records: dict[str, Message] = {}
        self.validity = validity
        self.stores: list[str] = []

    def fetch(self, key: str) -> CacheEntry | None:
        message = self.records.get(key)
        if message is None:
            return None
        validity = 2**40 if self.validity is None else self.validity
        return CacheEntry(message=Message.from_dict(message.to_dict()), validity=validity)

    def store(self, key: str, message: Message) -> None:
        self.stores.append(key)
        self.records[key] = Message.from_dict(message.to_dict())


class _Recorder:
    def __init__(self) -> None:
        self.updates: list[tuple[int, int]] = []

    def update(self, position: int, total: int) -> None:
        self.updates.append((position, total))


@pytest.fixture
def maildir(tmp_path: Path) -> Mailbox:
    return Mailbox(path=tmp_path, kind=MailboxType.MAILDIR)


def _count_parses(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    calls: list[str] = []
    original = parser.parse_message

    def counting(kind, filename, **kwargs):
        calls.append(filename.name)
        return original(kind, filename, **kwargs)

    monkeypatch.setattr(parser, "parse_message", counting)
    return calls


def test_parse_message_reads_header_and_sizes(tmp_path: Path) -> None:
    target = tmp_path / "cur" / "1001:2,S"
    header = _write_message(target, subject="Greetings", body="Hello there\n")
    message = Message(path="cur/1001:2,S", index=7)

    parser.parse_message(MailboxType.MAILDIR, target, is_old=True, message=message)

    assert message.envelope.subject == "Greetings"
    assert message.envelope.message_id == "<1001@example.com>"
    assert message.header_offset == len(header)
    assert message.size == len("Hello there\n")
    assert message.date_sent == 978350400
    assert message.received == message.date_sent
    assert message.index == -1
    assert message.old is True
    assert message.read is True


def test_parse_message_ignores_header_flags_for_maildir(tmp_path: Path) -> None:
    target = tmp_path / "cur" / "1001:2,"
    target.parent.mkdir(parents=True)
    target.write_text("Subject: x\nStatus: RO\nX-Status: F\n\nBody\n")
    message = Message(path="cur/1001:2,")

    parser.parse_message(MailboxType.MAILDIR, target, is_old=False, message=message)

    assert message.read is False
    assert message.flagged is False


def test_parse_message_rejects_file_without_headers(tmp_path: Path) -> None:
    target = tmp_path / "cur" / "bad"
    target.parent.mkdir(parents=True)
    target.write_text("this is not a message\n")

    with pytest.raises(parser.MessageParseError):
        parser.parse_message(
            MailboxType.MAILDIR, target, is_old=False, message=Message(path="cur/bad")
        )


@pytest.mark.parametrize(
    ("kind", "path", "key"),
    [
        (MailboxType.MAILDIR, "cur/1001.host:2,S", "/1001.host"),
        (MailboxType.MAILDIR, "new/1001.host", "/1001.host"),
        (MailboxType.MH, "42", "42"),
    ],
)
def test_hcache_key(kind: MailboxType, path: str, key: str) -> None:
    assert parser.hcache_key(kind, path) == key


def test_delayed_parsing_parses_in_inode_order(maildir: Mailbox) -> None:
    for name in ("a", "b", "c"):
        _write_message(maildir.path / "cur" / f"{name}:2,")
    entries = [
        _entry(maildir, "cur/a:2,", inode=30),
        _entry(maildir, "cur/b:2,", inode=10),
        _entry(maildir, "cur/c:2,", inode=20),
    ]

    result = parser.delayed_parsing(maildir, entries, options=ScanOptions())

    assert result is entries
    assert [entry.inode for entry in entries] == [10, 20, 30]
    assert all(entry.parsed for entry in entries)


def test_delayed_parsing_discards_unparsable_and_vanished(maildir: Mailbox) -> None:
    _write_message(maildir.path / "cur" / "good:2,")
    (maildir.path / "cur" / "bad:2,").write_text("")
    entries = [
        _entry(maildir, "cur/good:2,"),
        _entry(maildir, "cur/bad:2,"),
        _entry(maildir, "cur/gone:2,", inode=1),
    ]

    parser.delayed_parsing(maildir, entries, options=ScanOptions())

    survivors = [entry.message.path for entry in entries if entry.message is not None]
    assert survivors == ["cur/good:2,"]
    assert len(entries) == 3


def test_delayed_parsing_twice_does_not_reparse(
    maildir: Mailbox, monkeypatch: pytest.MonkeyPatch
) -> None:
    for name in ("1001", "1002", "1003"):
        _write_message(maildir.path / "cur" / f"{name}:2,S")
    entries = [_entry(maildir, f"cur/{name}:2,S") for name in ("1001", "1002", "1003")]
    calls = _count_parses(monkeypatch)

    parser.delayed_parsing(maildir, entries, options=ScanOptions())
    first = [(entry.message.path, entry.message.envelope) for entry in entries]
    parser.delayed_parsing(maildir, entries, options=ScanOptions())
    second = [(entry.message.path, entry.message.envelope) for entry in entries]

    assert len(calls) == 3
    assert first == second


def test_delayed_parsing_only_sorts_unresolved_tail(maildir: Mailbox) -> None:
    for name in ("x", "y", "z"):
        _write_message(maildir.path / "cur" / f"{name}:2,")
    done = _entry(maildir, "cur/x:2,", inode=99)
    done.parsed = True
    entries = [
        done,
        _entry(maildir, "cur/y:2,", inode=5),
        _entry(maildir, "cur/z:2,", inode=2),
    ]

    parser.delayed_parsing(maildir, entries, options=ScanOptions())

    assert [entry.inode for entry in entries] == [99, 2, 5]
    assert entries[0].message.envelope is None


def test_adjacent_duplicates_collapse(maildir: Mailbox) -> None:
    _write_message(maildir.path / "new" / "1001")
    (maildir.path / "cur").mkdir()
    os.link(maildir.path / "new" / "1001", maildir.path / "cur" / "1001:2,S")
    entries = [
        _entry(maildir, "new/1001"),
        _entry(maildir, "cur/1001:2,S"),
    ]
    assert entries[0].inode == entries[1].inode

    parser.delayed_parsing(maildir, entries, options=ScanOptions())

    survivors = [entry for entry in entries if entry.message is not None]
    assert len(survivors) == 1
    assert survivors[0].message.path == "new/1001"


@pytest.mark.xfail(
    strict=True,
    reason="duplicates are only detected when adjacent after the inode sort",
)
def test_non_adjacent_duplicates_are_not_detected(maildir: Mailbox) -> None:
    _write_message(maildir.path / "new" / "1001")
    _write_message(maildir.path / "new" / "1002")
    _write_message(maildir.path / "cur" / "1001:2,S")
    entries = [
        _entry(maildir, "new/1001", inode=1),
        _entry(maildir, "new/1002", inode=2),
        _entry(maildir, "cur/1001:2,S", inode=3),
    ]

    parser.delayed_parsing(maildir, entries, options=ScanOptions())

    keys = [
        parser.hcache_key(maildir.kind, entry.message.path)
        for entry in entries
        if entry.message is not None
    ]
    assert keys.count("/1001") == 1


def test_cache_miss_stores_and_hit_skips_parse(
    maildir: Mailbox, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_message(maildir.path / "cur" / "1001:2,", subject="Cached")
    cache = _DictCache()
    parser.delayed_parsing(
        maildir, [_entry(maildir, "cur/1001:2,")], options=ScanOptions(), cache=cache
    )
    assert cache.stores == ["/1001"]

    os.rename(maildir.path / "cur" / "1001:2,", maildir.path / "cur" / "1001:2,FS")
    calls = _count_parses(monkeypatch)
    entries = [_entry(maildir, "cur/1001:2,FS")]
    parser.delayed_parsing(maildir, entries, options=ScanOptions(), cache=cache)

    message = entries[0].message
    assert calls == []
    assert entries[0].parsed is True
    assert message.envelope.subject == "Cached"
    assert message.path == "cur/1001:2,FS"
    assert message.old is True
    assert message.read is True
    assert message.flagged is True


def test_stale_cache_entry_is_reparsed_when_verifying(
    maildir: Mailbox, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = maildir.path / "cur" / "1001:2,"
    _write_message(target, subject="Fresh")
    cache = _DictCache(validity=0)
    cache.records["/1001"] = Message(path="cur/1001:2,")
    calls = _count_parses(monkeypatch)

    entries = [_entry(maildir, "cur/1001:2,")]
    parser.delayed_parsing(maildir, entries, options=ScanOptions(), cache=cache)

    assert calls == ["1001:2,"]
    assert entries[0].message.envelope.subject == "Fresh"


def test_stale_cache_entry_is_used_without_verification(
    maildir: Mailbox, monkeypatch: pytest.MonkeyPatch
) -> None:
    _write_message(maildir.path / "cur" / "1001:2,", subject="Fresh")
    cache = _DictCache(validity=0)
    cache.records["/1001"] = Message(path="cur/1001:2,")
    calls = _count_parses(monkeypatch)

    entries = [_entry(maildir, "cur/1001:2,")]
    parser.delayed_parsing(
        maildir, entries, options=ScanOptions(header_cache_verify=False), cache=cache
    )

    assert calls == []
    assert entries[0].message.envelope is None


def test_progress_reported_when_verbose(tmp_path: Path) -> None:
    mailbox = Mailbox(path=tmp_path, kind=MailboxType.MAILDIR, verbose=True)
    for name in ("a", "b"):
        _write_message(tmp_path / "cur" / f"{name}:2,")
    entries = [_entry(mailbox, "cur/a:2,"), _entry(mailbox, "cur/b:2,")]
    recorder = _Recorder()

    parser.delayed_parsing(mailbox, entries, options=ScanOptions(), progress=recorder)

    assert recorder.updates == [(1, 2), (2, 2)]
