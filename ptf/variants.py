"""Format variant descriptors.

A session file starts with a 20-byte header stored in clear.  Two of its
bytes drive decoding:

  0x11 — byte order of every multi-byte field (non-zero: big-endian)
  0x12 — xor type, selecting the variant below
  0x13 — xor seed, from which the key delta is solved

Supporting a new revision of the format means adding a row to ``VARIANTS``
(and, when its block header differs, a ``BlockLayout``).  Nothing else in the
pipeline branches on the variant.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from .errors import MalformedHeader, UnsupportedFormatVersion


FILE_HEADER_SIZE = 0x14
BYTE_ORDER_OFFSET = 0x11
XOR_TYPE_OFFSET = 0x12
XOR_VALUE_OFFSET = 0x13


@dataclass(frozen=True)
class BlockLayout:
    """Shape of a block header.

    ``fields`` lists the header fields after the marker byte, in on-disk
    order, as ``(name, struct code)`` pairs.  ``size_field`` holds the
    block's length, counted from the start of the ``size_origin`` field;
    the header therefore ends inside the counted range and whatever follows
    it up to the end of that range is the block body.  A header whose
    ``block_type`` has any ``type_mask`` bit set is not a block.
    """

    marker: int
    fields: tuple[tuple[str, str], ...]
    size_field: str = "block_size"
    size_origin: str = "content_type"
    type_mask: int = 0xFF00

    def header_struct(self, byte_order: str) -> struct.Struct:
        prefix = ">" if byte_order == "big" else "<"
        return struct.Struct(prefix + "".join(code for _, code in self.fields))

    @property
    def header_size(self) -> int:
        return 1 + struct.calcsize("<" + "".join(code for _, code in self.fields))

    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def field_offset(self, name: str) -> int:
        """Offset of field ``name`` from the marker byte."""
        pos = 1
        for field_name, code in self.fields:
            if field_name == name:
                return pos
            pos += struct.calcsize("<" + code)
        raise KeyError(name)

    @property
    def size_start(self) -> int:
        return self.field_offset(self.size_origin)

    @property
    def min_size(self) -> int:
        """Smallest length that still covers the header fields it counts."""
        return self.header_size - self.size_start


# 0x5A | u16 block_type | u32 block_size | u16 content_type | body ...
#                                          ^ block_size counts from here
ZMARK_LAYOUT = BlockLayout(
    marker=0x5A,
    fields=(
        ("block_type", "H"),
        ("block_size", "I"),
        ("content_type", "H"),
    ),
)


@dataclass(frozen=True)
class FormatVariant:
    """Key schedule and block layout for one family of format revisions."""

    name: str
    xor_type: int
    multiplier: int
    negative: bool
    index_shift: int
    layout: BlockLayout
    description: str = ""

    def key_index(self, pos: int) -> int:
        return (pos >> self.index_shift) & 0xFF


VARIANTS: Mapping[int, FormatVariant] = MappingProxyType(
    {
        0x01: FormatVariant(
            name="A",
            xor_type=0x01,
            multiplier=53,
            negative=False,
            index_shift=0,
            layout=ZMARK_LAYOUT,
            description="Pro Tools 5-9",
        ),
        0x05: FormatVariant(
            name="B",
            xor_type=0x05,
            multiplier=11,
            negative=True,
            index_shift=12,
            layout=ZMARK_LAYOUT,
            description="Pro Tools 10-12",
        ),
    }
)


def _check_header(raw: bytes) -> None:
    if len(raw) < FILE_HEADER_SIZE:
        raise MalformedHeader(
            f"file too short for header ({len(raw)} bytes, need {FILE_HEADER_SIZE})"
        )


def select_variant(raw: bytes) -> FormatVariant:
    """Return the descriptor chosen by the xor type byte of ``raw``."""
    _check_header(raw)
    xor_type = raw[XOR_TYPE_OFFSET]
    try:
        return VARIANTS[xor_type]
    except KeyError:
        raise UnsupportedFormatVersion(xor_type) from None


def byte_order(raw: bytes) -> str:
    """Return ``"big"`` or ``"little"`` as flagged by the clear header."""
    _check_header(raw)
    return "big" if raw[BYTE_ORDER_OFFSET] else "little"
