"""Command-line interface for scanning maildir and MH folders."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable

from maildir_scan import scan
from maildir_scan.interrupt import CancelToken, sigint_cancels
from maildir_scan.mailbox import Mailbox, MailboxType
from maildir_scan.options import ScanOptions
from maildir_scan.progress import TqdmProgress

EXIT_CODES = {
    scan.ScanStatus.OK: 0,
    scan.ScanStatus.IO_ERROR: 1,
    scan.ScanStatus.ABORTED: 130,
}


def _add_scan_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "mailbox",
        type=Path,
        help="Path to the maildir (containing cur/ and new/) or MH folder.",
    )
    parser.add_argument(
        "--type",
        choices=[kind.value for kind in MailboxType],
        help="Mailbox format; detected from the directory layout when omitted.",
    )
    parser.add_argument(
        "--flag-safe",
        action="store_true",
        help="Do not mark flagged messages deleted when their filename carries T.",
    )
    parser.add_argument(
        "--header-cache",
        type=Path,
        help="Directory holding header cache files; caching is off when omitted.",
    )
    parser.add_argument(
        "--no-header-cache-verify",
        action="store_true",
        help="Trust cached headers even when the message file is newer.",
    )
    parser.add_argument(
        "--no-mark-old",
        action="store_true",
        help="Do not mark messages in cur/ as old.",
    )
    parser.add_argument(
        "--no-natural-order",
        action="store_true",
        help="Leave MH messages in inode order instead of path order.",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bar output during the scan.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Increase logging verbosity for troubleshooting.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="maildir-scan",
        description="Scan maildir and MH folders into a message index.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser(
        "list",
        help="List every message in a folder with its subject.",
    )
    _add_scan_arguments(list_parser)
    list_parser.set_defaults(handler=_handle_list)

    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan a folder and summarize message counts and flags.",
    )
    _add_scan_arguments(scan_parser)
    scan_parser.add_argument(
        "--report",
        type=Path,
        help="Optional path to write a JSON report of the scanned messages.",
    )
    scan_parser.set_defaults(handler=_handle_scan)

    return parser


Handler = Callable[[argparse.Namespace], int]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    args.mailbox = args.mailbox.resolve()
    if args.header_cache is not None:
        args.header_cache = args.header_cache.resolve()
    if getattr(args, "report", None) is not None:
        args.report = args.report.resolve()

    return args


def options_from_args(args: argparse.Namespace) -> ScanOptions:
    return ScanOptions(
        flag_safe=args.flag_safe,
        header_cache_verify=not args.no_header_cache_verify,
        mark_old=not args.no_mark_old,
        sort_by_arrival=not args.no_natural_order,
        header_cache=args.header_cache,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    handler: Handler = args.handler
    return handler(args)


def _run_scan(args: argparse.Namespace) -> tuple[Mailbox, scan.ScanResult]:
    kind = MailboxType(args.type) if args.type else None
    mailbox = scan.open_mailbox(args.mailbox, kind=kind, verbose=not args.no_progress)
    options = options_from_args(args)

    token = CancelToken()
    with sigint_cancels(token), TqdmProgress(
        f"Reading {mailbox.path.name}", disable=args.no_progress
    ) as progress:
        result = scan.read_mailbox(mailbox, options=options, cancel=token, progress=progress)
    return mailbox, result


def _report_failure(mailbox: Mailbox, result: scan.ScanResult) -> None:
    if result.status is scan.ScanStatus.ABORTED:
        print(f"Scan of {mailbox.path} aborted after {len(result.pending)} entries.")
    else:
        print(f"Failed to read {mailbox.path}: {result.error}")


def _handle_list(args: argparse.Namespace) -> int:
    mailbox, result = _run_scan(args)
    if not result.ok:
        _report_failure(mailbox, result)
        return EXIT_CODES[result.status]

    messages = list(mailbox.iter_messages())
    if not messages:
        print(f"No messages found in {mailbox.path}")
        return 0

    path_width = max(len(message.path) for message in messages)
    for message in messages:
        subject = message.envelope.subject if message.envelope else ""
        print(f"{message.path.ljust(path_width)}  {subject}")
    return 0


def _handle_scan(args: argparse.Namespace) -> int:
    mailbox, result = _run_scan(args)
    if not result.ok:
        _report_failure(mailbox, result)
        return EXIT_CODES[result.status]

    print(
        f"Scan complete: {mailbox.msg_count} messages "
        f"({mailbox.msg_unread} unread, {mailbox.msg_new} new, "
        f"{mailbox.msg_flagged} flagged, {mailbox.msg_deleted} deleted)."
    )
    print(f"Total size: {mailbox.size} bytes.")

    if args.report is not None:
        scan.write_report(args.report, mailbox, result)
        print(f"Report written to {args.report}")

    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
