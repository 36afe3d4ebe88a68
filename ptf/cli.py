"""Command line entry point: ``ptftool <command> FILE``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .diff import changed_records, compare
from .errors import PtfError
from .reader import PTFReader
from .render import format_diff, format_tree
from .session import read_session_info
from .versions import autoversion, find_changed_previous

log = logging.getLogger(__name__)


def content_type_arg(value: str) -> int:
    text = value[2:] if value.lower().startswith("0x") else value
    try:
        tag = int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hex content type: {value!r}") from None
    if not 0 <= tag <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"content type out of range: {value!r}")
    return tag


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ptftool", description="Pro Tools session format utilities."
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More log output (repeatable)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    unxor = sub.add_parser("unxor", help="Write deobfuscated bytes")
    unxor.add_argument("file", type=Path, help="Session file")
    unxor.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    blocks = sub.add_parser("blocks", help="Print block structure")
    blocks.add_argument("file", type=Path, help="Session file")
    blocks.add_argument(
        "-t",
        "--type",
        dest="types",
        action="append",
        type=content_type_arg,
        default=[],
        help="Only print blocks of this hex content type (repeatable)",
    )
    blocks.add_argument(
        "--no-transform", action="store_true", help="Print payloads without post-processing"
    )

    info = sub.add_parser("info", help="Print session version, format and metadata")
    info.add_argument("file", type=Path, help="Session file")

    diff = sub.add_parser("diff", help="Compare against a previous revision")
    diff.add_argument("file", type=Path, help="Session file")
    diff.add_argument(
        "--previous", type=Path, help="Revision to compare with (default: newest differing sibling)"
    )

    version = sub.add_parser("autoversion", help="Archive the file if it changed")
    version.add_argument("file", type=Path, help="Session file")
    version.add_argument("--dry-run", action="store_true", help="Report without copying")
    return parser


def _print_lines(lines: List[str]) -> None:
    for line in lines:
        print(line)


def cmd_unxor(args: argparse.Namespace) -> int:
    data = PTFReader.open(args.file).cleartext()
    if args.output is not None:
        args.output.write_bytes(data)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    return 0


def cmd_blocks(args: argparse.Namespace) -> int:
    reader = PTFReader.open(args.file)
    _print_lines(format_tree(reader.blocks(), args.types, transform=not args.no_transform))
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    reader = PTFReader.open(args.file)
    info = read_session_info(reader)
    print(f"File: {args.file}")
    print(f"Variant: {reader.variant.name} ({reader.variant.description}), {reader.byte_order}-endian")
    print(f"Version: {info.version if info.version is not None else '?'}")
    print(f"Sample rate: {info.sample_rate if info.sample_rate is not None else '?'}")
    print(f"Bit depth: {info.bit_depth if info.bit_depth is not None else '?'}")
    if info.metadata is not None:
        meta = info.metadata
        print(f"Title: {meta.title}")
        print(f"Artist: {meta.artist}")
        print(f"Contributors: {', '.join(meta.contributors)}")
        print(f"Location: {meta.location}")
    for sig in info.key_signatures:
        mode = "major" if sig.is_major else "minor"
        accidental = "#" if sig.is_sharp else "b"
        print(f"Key signature @{sig.pos}: {sig.sign_count}{accidental} {mode}")
    for sig in info.time_signatures:
        print(f"Time signature @{sig.pos} (bar {sig.measure}): {sig.numerator}/{sig.denominator}")
    for change in info.tempo_changes:
        print(f"Tempo @{change.pos}: {change.tempo:g} bpm (beat {change.beat_length})")
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    current = PTFReader.open(args.file)
    previous_path = args.previous
    if previous_path is None:
        found = find_changed_previous(args.file, current)
        if found is None:
            print("No differing previous revision.")
            return 0
        previous_path = found[1]
    previous = PTFReader.open(previous_path)
    log.info("comparing %s with %s", args.file, previous_path)
    records = changed_records(compare(previous.blocks(), current.blocks()))
    if not records:
        print(f"No block differences against {previous_path}.")
        return 0
    print(f"{len(records)} changed blocks against {previous_path}:")
    _print_lines(format_diff(records))
    return 0


def cmd_autoversion(args: argparse.Namespace) -> int:
    target = autoversion(args.file, dry_run=args.dry_run)
    if target is None:
        print("Unchanged; no revision written.")
    elif args.dry_run:
        print(f"Would archive as {target}")
    else:
        print(f"Archived as {target}")
    return 0


COMMANDS = {
    "unxor": cmd_unxor,
    "blocks": cmd_blocks,
    "info": cmd_info,
    "diff": cmd_diff,
    "autoversion": cmd_autoversion,
}


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    try:
        return COMMANDS[args.command](args)
    except PtfError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
