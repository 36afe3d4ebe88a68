"""Block tree parsing.

A cleartext session is a forest of blocks.  Each block is a header (shape
given by a :class:`~ptf.variants.BlockLayout`) followed by a body whose
length the header declares.  Child blocks live inside the body, wherever a
valid header starts::

    | 5A | block_type | block_size | content_type | body .............. |
    ^ offset                       |<------- block_size ------------->|^ end
                                                  | ... | child | ... |

A position holds a header when it carries the marker byte, the whole header
fits in the enclosing extent, ``block_type`` has no bit of the layout's
``type_mask`` set and the declared size covers the counted header fields.
Bytes that do not start a header are body bytes of the enclosing block (or,
at the top level, unclaimed bytes between blocks).  Once a header is
recognised its declared length is trusted only if it fits: a block that
runs past the buffer or past its parent raises a
:class:`~ptf.errors.BlockError` subclass instead of being clamped.

Parsing never depends on recognising ``content_type``; unknown tags are
walked like any other block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import BadBlockMarker, NestingTooDeep, OverlongBlock, TruncatedBlock
from .variants import FILE_HEADER_SIZE, ZMARK_LAYOUT, BlockLayout

MAX_DEPTH = 256


@dataclass(frozen=True)
class Block:
    """A parsed block.

    ``data`` is a read-only view of the whole body, children included, so
    field offsets inside a payload are independent of what is nested in it.
    """

    content_type: int
    offset: int
    block_type: int
    block_size: int
    header_size: int
    data: memoryview = field(repr=False)
    children: Tuple["Block", ...] = ()

    @property
    def payload_offset(self) -> int:
        return self.offset + self.header_size

    @property
    def end(self) -> int:
        return self.payload_offset + len(self.data)

    @property
    def size(self) -> int:
        """Total extent: header and body."""
        return self.end - self.offset

    def own_ranges(self) -> List[Tuple[int, int]]:
        """Absolute ``(start, stop)`` ranges of body bytes outside any child."""
        return free_ranges(self.children, self.payload_offset, self.end)

    def iter_tree(self) -> Iterator["Block"]:
        yield self
        for child in self.children:
            yield from child.iter_tree()


class _Parser:
    def __init__(self, cleartext: bytes, layout: BlockLayout, byte_order: str) -> None:
        self.buf = bytes(cleartext)
        self.view = memoryview(self.buf).toreadonly()
        self.layout = layout
        self.marker = bytes([layout.marker])
        self.header = layout.header_struct(byte_order)
        self.header_size = layout.header_size
        self.size_start = layout.size_start
        self.names = layout.field_names()

    def header_at(self, pos: int, limit: int, top: bool) -> Optional[Dict[str, int]]:
        """Return the header fields at ``pos``, or None if no header starts there.

        At the top level a marker byte whose header is cut off by the end of
        the buffer is a truncation; inside a body it is an ordinary body byte.
        """
        layout = self.layout
        if self.view[pos] != layout.marker:
            return None
        if pos + self.header_size > limit:
            if top:
                raise TruncatedBlock(
                    f"block header needs {self.header_size} bytes, "
                    f"{len(self.view) - pos} available",
                    pos,
                )
            return None
        fields = dict(zip(self.names, self.header.unpack_from(self.view, pos + 1)))
        if fields["block_type"] & layout.type_mask:
            return None
        if fields[layout.size_field] < layout.min_size:
            return None
        return fields

    def block_at(self, pos: int, fields: Dict[str, int], limit: int, depth: int) -> Block:
        if depth > MAX_DEPTH:
            raise NestingTooDeep(f"blocks nested deeper than {MAX_DEPTH}", pos)
        content_type = fields["content_type"]
        end = pos + self.size_start + fields[self.layout.size_field]
        if end > len(self.view):
            raise TruncatedBlock(
                f"block 0x{content_type:04X} declares {end - pos} bytes, "
                f"{len(self.view) - pos} available",
                pos,
            )
        if end > limit:
            raise OverlongBlock(
                f"block 0x{content_type:04X} ends at 0x{end:X}, "
                f"past parent extent ending at 0x{limit:X}",
                pos,
            )
        body = pos + self.header_size
        return Block(
            content_type=content_type,
            offset=pos,
            block_type=fields["block_type"],
            block_size=fields[self.layout.size_field],
            header_size=self.header_size,
            data=self.view[body:end],
            children=tuple(self.scan(body, end, depth + 1)),
        )

    def scan(self, start: int, stop: int, depth: int) -> Iterator[Block]:
        """Yield the blocks found between ``start`` and ``stop``."""
        cursor = start
        while cursor < stop:
            cursor = self.buf.find(self.marker, cursor, stop)
            if cursor < 0:
                return
            fields = self.header_at(cursor, stop, depth == 0)
            if fields is None:
                cursor += 1
                continue
            block = self.block_at(cursor, fields, stop, depth)
            yield block
            cursor = block.end


def parse_blocks(
    cleartext: bytes,
    layout: BlockLayout = ZMARK_LAYOUT,
    *,
    byte_order: str = "little",
    start: int = FILE_HEADER_SIZE,
) -> List[Block]:
    """Parse the top-level forest of ``cleartext`` starting at ``start``.

    Bytes between top-level blocks that do not start a header are skipped;
    :func:`free_ranges` reports them.
    """
    parser = _Parser(cleartext, layout, byte_order)
    return list(parser.scan(start, len(parser.view), 0))


def parse_block_at(
    cleartext: bytes,
    pos: int,
    layout: BlockLayout = ZMARK_LAYOUT,
    *,
    byte_order: str = "little",
) -> Block:
    """Parse the single block (and its subtree) whose header starts at ``pos``."""
    parser = _Parser(cleartext, layout, byte_order)
    if not 0 <= pos < len(parser.view):
        raise TruncatedBlock(
            f"no block header past end of buffer ({len(parser.view)} bytes)", pos
        )
    fields = parser.header_at(pos, len(parser.view), True)
    if fields is None:
        raise BadBlockMarker(
            f"no block header (marker 0x{layout.marker:02X}) starts here", pos
        )
    return parser.block_at(pos, fields, len(parser.view), 0)


def free_ranges(blocks: Sequence[Block], start: int, stop: int) -> List[Tuple[int, int]]:
    """Return the ``(start, stop)`` ranges in ``[start, stop)`` no block covers."""
    ranges = []
    cursor = start
    for block in blocks:
        if block.offset > cursor:
            ranges.append((cursor, block.offset))
        cursor = max(cursor, block.end)
    if cursor < stop:
        ranges.append((cursor, stop))
    return ranges


def walk(blocks: Sequence[Block], level: int = 0) -> Iterator[Tuple[int, Block]]:
    """Yield ``(depth, block)`` for every block, depth-first in file order."""
    for block in blocks:
        yield level, block
        yield from walk(block.children, level + 1)


def find_blocks(blocks: Sequence[Block], tags: int | Iterable[int]) -> List[Block]:
    wanted = {tags} if isinstance(tags, int) else set(tags)
    return [block for _, block in walk(blocks) if block.content_type in wanted]
