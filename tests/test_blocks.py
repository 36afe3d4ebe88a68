from pathlib import Path
import struct
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from ptf.blocks import (  # noqa: E402
    MAX_DEPTH,
    Block,
    find_blocks,
    free_ranges,
    parse_block_at,
    parse_blocks,
    walk,
)
from ptf.errors import (  # noqa: E402
    BadBlockMarker,
    BlockError,
    NestingTooDeep,
    OverlongBlock,
    TruncatedBlock,
)
from ptf.variants import FILE_HEADER_SIZE, ZMARK_LAYOUT  # noqa: E402

from conftest import clear_header, encode_block  # noqa: E402

HEADER = 9


def _clear(*blocks: bytes, tail: bytes = b"") -> bytes:
    return clear_header() + b"".join(blocks) + tail


def _assert_accounted(blocks, start: int, end: int) -> None:
    """Blocks and the bytes between them must tile ``[start, end)``, recursively."""
    pieces = [(b.offset, b.end) for b in blocks] + free_ranges(blocks, start, end)
    cursor = start
    for lo, hi in sorted(pieces):
        assert lo == cursor
        cursor = hi
    assert cursor == end
    for block in blocks:
        assert block.payload_offset == block.offset + block.header_size
        assert block.end == block.offset + ZMARK_LAYOUT.size_start + block.block_size
        _assert_accounted(block.children, block.payload_offset, block.end)


def test_layout_geometry() -> None:
    assert ZMARK_LAYOUT.header_size == HEADER
    assert ZMARK_LAYOUT.field_offset("block_type") == 1
    assert ZMARK_LAYOUT.field_offset("block_size") == 3
    assert ZMARK_LAYOUT.size_start == 7
    assert ZMARK_LAYOUT.min_size == 2


def test_fixed_byte_vector() -> None:
    # marker, block_type 1, block_size 10, content type 0x2067, 8 payload bytes
    clear = clear_header() + bytes.fromhex("5a 0100 0a000000 6720") + b"ABCDEFGH"
    blocks = parse_blocks(clear)
    assert len(blocks) == 1
    block = blocks[0]
    assert block.content_type == 0x2067
    assert block.block_type == 1
    assert block.block_size == 10
    assert block.offset == FILE_HEADER_SIZE
    assert bytes(block.data) == b"ABCDEFGH"
    assert block.children == ()
    assert block.end == len(clear)


def test_fixed_byte_vector_with_nested_child() -> None:
    clear = clear_header() + bytes.fromhex(
        "5a 0100 0e000000 6720 4142"  # parent, 12 body bytes
        "5a 0100 03000000 3000 76"  # child 0x0030 holding "v"
        "5a 0200 06000000 2810 01020304"  # top-level sibling 0x1028
    )
    parent, sibling = parse_blocks(clear)
    assert parent.content_type == 0x2067
    assert len(parent.data) == 12
    assert bytes(parent.data[:2]) == b"AB"
    (child,) = parent.children
    assert child.content_type == 0x0030
    assert child.offset == FILE_HEADER_SIZE + HEADER + 2
    assert bytes(child.data) == b"v"
    assert parent.own_ranges() == [(parent.payload_offset, child.offset)]
    assert sibling.content_type == 0x1028
    assert sibling.block_type == 2
    assert bytes(sibling.data) == b"\x01\x02\x03\x04"


def test_fixed_big_endian_byte_vector() -> None:
    clear = clear_header(big_endian=True) + bytes.fromhex(
        "5a 0001 0000000e 2067 4142"
        "5a 0001 00000003 0030 76"
    )
    (parent,) = parse_blocks(clear, byte_order="big")
    assert parent.content_type == 0x2067
    assert parent.block_type == 1
    assert parent.children[0].content_type == 0x0030
    assert bytes(parent.children[0].data) == b"v"


def test_single_block_with_payload() -> None:
    clear = _clear(encode_block(0x2067, b"ABCDEFGH"))
    blocks = parse_blocks(clear)
    assert len(blocks) == 1
    block = blocks[0]
    assert block.content_type == 0x2067
    assert block.offset == FILE_HEADER_SIZE
    assert bytes(block.data) == b"ABCDEFGH"
    assert block.size == HEADER + 8
    assert block.end == len(clear)


def test_payload_is_a_read_only_view() -> None:
    clear = _clear(encode_block(0x1028, b"\x01\x02\x03"))
    block = parse_blocks(clear)[0]
    assert isinstance(block.data, memoryview)
    assert block.data.readonly
    assert block.data == b"\x01\x02\x03"


def test_nested_tree_is_fully_accounted() -> None:
    tree = encode_block(
        0x1004,
        b"\x00\x00\x02\x00\x00\x00",
        [
            encode_block(0x103A, b"names", [encode_block(0x1003, b"meta")]),
            encode_block(0x1001, b""),
        ],
        block_type=3,
    )
    clear = _clear(tree, encode_block(0x1028, b"\x00\x18\x80\xbb\x00\x00"))
    blocks = parse_blocks(clear)

    _assert_accounted(blocks, FILE_HEADER_SIZE, len(clear))
    root = blocks[0]
    assert root.block_type == 3
    assert [c.content_type for c in root.children] == [0x103A, 0x1001]
    assert root.children[0].children[0].data == b"meta"
    assert root.children[1].children == ()
    assert blocks[1].content_type == 0x1028


def test_body_includes_children() -> None:
    inner = encode_block(0x2000, b"xy")
    clear = _clear(encode_block(0x2001, b"abc", [inner]))
    parent = parse_blocks(clear)[0]
    child = parent.children[0]
    assert child.offset == FILE_HEADER_SIZE + HEADER + 3
    assert bytes(parent.data) == b"abc" + inner
    assert clear[child.payload_offset : child.payload_offset + 2] == b"xy"


def test_children_between_payload_bytes() -> None:
    clear = _clear(
        encode_block(0x1015, b"pre", [encode_block(0x1014, b"a")], trailer=b"post")
    )
    parent = parse_blocks(clear)[0]
    child = parent.children[0]
    assert parent.own_ranges() == [
        (parent.payload_offset, child.offset),
        (child.end, parent.end),
    ]
    assert clear[child.end : parent.end] == b"post"


def test_unknown_tags_parse_structurally() -> None:
    clear = _clear(
        encode_block(0x1015, b"", [
            encode_block(0x1014, b"a"),
            encode_block(0xBEEF, b"??", [encode_block(0xCAFE, b"!")]),
            encode_block(0x1014, b"b"),
        ]),
        encode_block(0x1028, b"rate"),
    )
    blocks = parse_blocks(clear)
    _assert_accounted(blocks, FILE_HEADER_SIZE, len(clear))
    assert [b.content_type for b in blocks[0].children] == [0x1014, 0xBEEF, 0x1014]
    assert blocks[0].children[2].data == b"b"
    assert blocks[0].children[1].children[0].content_type == 0xCAFE
    assert blocks[1].data == b"rate"


def test_big_endian_headers() -> None:
    clear = clear_header(big_endian=True) + encode_block(
        0x2067,
        b"12345678",
        [encode_block(0x0030, b"v", byte_order="big")],
        byte_order="big",
    )
    block = parse_blocks(clear, byte_order="big")[0]
    assert block.content_type == 0x2067
    assert block.children[0].content_type == 0x0030
    assert bytes(block.children[0].data) == b"v"


def test_marker_byte_in_payload_is_not_a_child() -> None:
    clear = _clear(encode_block(0x2001, b"Zoo Zebra Z"))
    block = parse_blocks(clear)[0]
    assert block.children == ()
    assert bytes(block.data) == b"Zoo Zebra Z"


def test_unclaimed_top_level_bytes_are_skipped() -> None:
    clear = _clear(b"\x01\x02\x03", encode_block(0x2067, b"x"), tail=bytes(7))
    blocks = parse_blocks(clear)
    assert [b.content_type for b in blocks] == [0x2067]
    assert blocks[0].offset == FILE_HEADER_SIZE + 3
    assert free_ranges(blocks, FILE_HEADER_SIZE, len(clear)) == [
        (FILE_HEADER_SIZE, FILE_HEADER_SIZE + 3),
        (blocks[0].end, len(clear)),
    ]


def test_block_type_high_byte_rejects_header() -> None:
    fake = b"\x5a" + struct.pack("<HIH", 0x0100, 10, 0x2067) + b"ABCDEFGH"
    clear = _clear(fake, encode_block(0x1028, b"rate"))
    blocks = parse_blocks(clear)
    assert [b.content_type for b in blocks] == [0x1028]
    assert blocks[0].offset == FILE_HEADER_SIZE + len(fake)


def test_size_below_header_rejects_header() -> None:
    clear = _clear(b"\x5a" + struct.pack("<HIH", 0, 1, 0x2067))
    assert parse_blocks(clear) == []


def test_empty_forest() -> None:
    assert parse_blocks(clear_header()) == []


def test_truncated_final_block() -> None:
    good = encode_block(0x2067, b"12345678")
    bad = encode_block(0x1028, b"0123456789")[:-4]
    with pytest.raises(TruncatedBlock, match="declares 19 bytes, 15 available") as info:
        parse_blocks(_clear(good, bad))
    assert info.value.offset == FILE_HEADER_SIZE + len(good)


def test_truncated_header() -> None:
    with pytest.raises(TruncatedBlock, match="block header needs 9 bytes, 4 available"):
        parse_blocks(_clear(b"\x5a\x00\x00\x67"))


def test_child_overrunning_parent_body() -> None:
    child = encode_block(0x1014, b"abcd")
    # Parent's body claims only the child's header.
    parent = b"\x5a" + struct.pack("<HIH", 0, 2 + HEADER, 0x1015) + child
    sibling = encode_block(0x1028, b"rate")
    with pytest.raises(OverlongBlock, match="past parent extent") as info:
        parse_blocks(_clear(parent, sibling))
    assert info.value.offset == FILE_HEADER_SIZE + HEADER


def test_header_cut_by_parent_end_is_body() -> None:
    parent = encode_block(0x1015, b"\x5a\x01\x00\x00")
    clear = _clear(parent, encode_block(0x1028, b"rate"))
    blocks = parse_blocks(clear)
    assert blocks[0].children == ()
    assert bytes(blocks[0].data) == b"\x5a\x01\x00\x00"
    assert blocks[1].content_type == 0x1028


def test_parse_block_at() -> None:
    first = encode_block(0x2067, b"x")
    clear = _clear(first, encode_block(0x0003, b"", [encode_block(0x0030, b"v")]))
    block = parse_block_at(clear, FILE_HEADER_SIZE + len(first))
    assert block.content_type == 0x0003
    assert block.children[0].content_type == 0x0030
    with pytest.raises(BadBlockMarker, match="no block header") as info:
        parse_block_at(clear, FILE_HEADER_SIZE + 1)
    assert info.value.offset == FILE_HEADER_SIZE + 1
    with pytest.raises(TruncatedBlock):
        parse_block_at(clear, len(clear))


def test_nesting_limit() -> None:
    nested = encode_block(0x0001, b"leaf")
    for _ in range(MAX_DEPTH + 1):
        nested = encode_block(0x0001, b"", [nested])
    with pytest.raises(NestingTooDeep):
        parse_blocks(_clear(nested))


def test_block_errors_are_value_errors() -> None:
    assert issubclass(BlockError, ValueError)
    assert issubclass(TruncatedBlock, BlockError)


def test_walk_and_find_blocks() -> None:
    clear = _clear(
        encode_block(0x2433, b"", [encode_block(0x2432, b"k1"), encode_block(0x2432, b"k2")]),
        encode_block(0x2432, b"k3"),
    )
    blocks = parse_blocks(clear)
    depths = [(depth, block.content_type) for depth, block in walk(blocks)]
    assert depths == [(0, 0x2433), (1, 0x2432), (1, 0x2432), (0, 0x2432)]
    assert [bytes(b.data) for b in find_blocks(blocks, 0x2432)] == [b"k1", b"k2", b"k3"]
    assert [b.content_type for b in find_blocks(blocks, {0x2433})] == [0x2433]
    assert [b.content_type for b in blocks[0].iter_tree()] == [0x2433, 0x2432, 0x2432]


def test_blocks_are_immutable() -> None:
    block = parse_blocks(_clear(encode_block(0x2067, b"x")))[0]
    assert isinstance(block, Block)
    with pytest.raises(AttributeError):
        block.content_type = 1  # type: ignore[misc]
