"""Text rendering for block trees and diffs."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence

from .blocks import Block
from .content_types import label_for, post_process
from .diff import BYTE_GROUP, DiffRecord

INDENT = "    "


def _printable(byte: int) -> str:
    return chr(byte) if 32 < byte < 128 else "."


def hex_rows(data: bytes, width: int = BYTE_GROUP, highlight: Iterable[int] = ()) -> Iterator[str]:
    """Yield ``width``-byte rows of hex followed by printable ASCII.

    Offsets in ``highlight`` are followed by ``*`` instead of a space in the
    hex column, so every cell stays three characters wide.
    """
    data = bytes(data)
    marked = set(highlight)
    for start in range(0, len(data), width):
        row = data[start : start + width]
        cells = []
        for i, byte in enumerate(row):
            cell = f"{byte:02x}"
            cells.append(cell + ("*" if start + i in marked else " "))
        yield "".join(cells) + "".join(_printable(b) for b in row)


def block_title(block: Block) -> str:
    return f"{label_for(block.content_type)}(0x{block.content_type:04x}) at {block.offset}"


def format_block(block: Block, level: int = 0, transform: bool = True) -> List[str]:
    prefix = INDENT * level
    lines = [prefix + block_title(block)]
    data = bytes(block.data)
    if transform:
        decoded = post_process(block.content_type, data)
        if decoded is not None:
            data = decoded
    lines.extend(prefix + row for row in hex_rows(data))
    return lines


def format_tree(
    blocks: Sequence[Block],
    tags: Iterable[int] = (),
    transform: bool = True,
    level: int = 0,
) -> List[str]:
    """Render ``blocks`` recursively; with ``tags``, only matching blocks print.

    Children of a filtered-out block are still visited.
    """
    wanted = set(tags)
    lines: List[str] = []
    for block in blocks:
        if not wanted or block.content_type in wanted:
            lines.extend(format_block(block, level, transform))
        lines.extend(format_tree(block.children, wanted, transform, level + 1))
    return lines


def format_diff(records: Iterable[DiffRecord]) -> List[str]:
    lines: List[str] = []
    for record in records:
        if not record.changed:
            continue
        prefix = INDENT * (len(record.path) - 1)
        where = ".".join(str(i) for i in record.path)
        tag = record.content_type
        label = f"{label_for(tag)}(0x{tag:04x})"
        if record.status == "added":
            lines.append(f"{prefix}+ {label} [{where}] at {record.current.offset}")
            lines.extend(f"{prefix}+ {row}" for row in hex_rows(record.current.data))
            continue
        if record.status == "removed":
            lines.append(f"{prefix}- {label} [{where}] at {record.previous.offset}")
            lines.extend(f"{prefix}- {row}" for row in hex_rows(record.previous.data))
            continue
        lines.append(
            f"{prefix}~ {label} [{where}] at {record.previous.offset} -> {record.current.offset}"
        )
        for group in record.groups:
            local = [offset - group.start for offset in group.offsets]
            lines.append(f"{prefix}  @{group.start:04x}")
            lines.extend(f"{prefix}  < {row}" for row in hex_rows(group.previous, highlight=local))
            lines.extend(f"{prefix}  > {row}" for row in hex_rows(group.current, highlight=local))
    return lines
