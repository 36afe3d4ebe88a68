"""Session-level facts read from a decoded block forest.

These readers mirror what is known about a handful of block kinds: the
product version, sample rate and bit depth, the base64 metadata blob, and
the key signature, time signature and tempo maps.  Offsets are relative to
each block's own payload.  A block too short for its record is skipped
rather than read out of range.

Positions in the signature and tempo maps are ticks since session start at
960,000 ticks per quarter note.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .blocks import Block, walk
from .content_types import post_process
from .errors import MalformedHeader

BITCODE = b"0010111100101011"

TAG_VERSION_V5 = 0x0003
TAG_SAMPLE_RATE = 0x1028
TAG_GENERAL_INFO = 0x204B
TAG_SESSION_PATH = 0x2067
TAG_TEMPO_CHANGES = 0x2028
TAG_TIME_SIGNATURES = 0x2029
TAG_KEY_SIGNATURE = 0x2432
TAG_KEY_SIGNATURE_LIST = 0x2433
TAG_METADATA_BASE64 = 0x2715
TAG_METADATA = 0x2716

EVENT_MAP_HEADER = 15
TIME_SIGNATURE_SIZE = 36
TEMPO_CHANGE_SIZE = 61
BEAT_RESOLUTION = 120000
METADATA_MAX_DEPTH = 64

FIELD_TITLE = "http://purl.org/dc/elements/1.1/:title"
FIELD_ARTIST = "http://www.id3.org/id3v2.3.0#:TPE1"
FIELD_CONTRIBUTORS = "http://purl.org/dc/elements/1.1/:contributor"
FIELD_LOCATION = "http://meta.avid.com/everywhere/1.0#:location"


@dataclass
class SessionMetadata:
    title: str = ""
    artist: str = ""
    contributors: List[str] = field(default_factory=list)
    location: str = ""

    def fill(self, name: str, value: str) -> None:
        if name == FIELD_TITLE:
            self.title = value
        elif name == FIELD_ARTIST:
            self.artist = value
        elif name == FIELD_CONTRIBUTORS:
            self.contributors.append(value)
        elif name == FIELD_LOCATION:
            self.location = value


@dataclass(frozen=True)
class KeySignature:
    pos: int
    is_major: bool
    is_sharp: bool
    sign_count: int


@dataclass(frozen=True)
class TimeSignature:
    pos: int
    measure: int
    numerator: int
    denominator: int


@dataclass(frozen=True)
class TempoChange:
    pos: int
    tempo: float
    beat_length: int


@dataclass
class SessionInfo:
    version: int | None
    sample_rate: int | None
    bit_depth: int | None
    metadata: SessionMetadata | None
    key_signatures: List[KeySignature]
    time_signatures: List[TimeSignature]
    tempo_changes: List[TempoChange]


class _Fields:
    """Bounds-checked fixed-width reads in one byte order."""

    def __init__(self, data: bytes, byte_order: str) -> None:
        self.data = bytes(data)
        self.prefix = ">" if byte_order == "big" else "<"

    def fits(self, pos: int, size: int) -> bool:
        return 0 <= pos and pos + size <= len(self.data)

    def unpack(self, fmt: str, pos: int) -> Tuple | None:
        size = struct.calcsize(self.prefix + fmt)
        if not self.fits(pos, size):
            return None
        return struct.unpack_from(self.prefix + fmt, self.data, pos)

    def u32(self, pos: int) -> int | None:
        values = self.unpack("I", pos)
        return None if values is None else values[0]

    def string(self, pos: int) -> bytes | None:
        length = self.u32(pos)
        if length is None or not self.fits(pos + 4, length):
            return None
        return self.data[pos + 4 : pos + 4 + length]


def is_session(cleartext: bytes) -> bool:
    if len(cleartext) < 1:
        return False
    return cleartext[0] == 0x03 or cleartext.find(BITCODE, 0, 0x100) == 1


def read_version(blocks: Sequence[Block], byte_order: str) -> int | None:
    for _, block in walk(blocks):
        fields = _Fields(block.data, byte_order)
        if block.content_type == TAG_VERSION_V5:
            name = fields.string(1)
            if name is None:
                continue
            return fields.u32(1 + len(name) + 8)
        if block.content_type == TAG_SESSION_PATH:
            value = fields.u32(18)
            if value is not None:
                return value + 2
    return None


def read_sample_format(
    blocks: Sequence[Block], byte_order: str
) -> tuple[int | None, int | None]:
    """Return ``(sample_rate, bit_depth)`` from the top-level info blocks."""
    sample_rate = None
    bit_depth = None
    general_depth = 0
    for block in blocks:
        fields = _Fields(block.data, byte_order)
        if block.content_type == TAG_SAMPLE_RATE:
            values = fields.unpack("BI", 1)
            if values is not None:
                bit_depth, sample_rate = values
        elif block.content_type == TAG_GENERAL_INFO and fields.fits(4, 1):
            # Also reports 32-bit float sessions, which the rate block calls 24.
            general_depth = fields.data[4]
    if general_depth:
        bit_depth = general_depth
    return sample_rate, bit_depth


def parse_metadata_struct(
    data: bytes,
    byte_order: str,
    metadata: SessionMetadata | None = None,
    outer_field: str | None = None,
    depth: int = 0,
) -> tuple[SessionMetadata, int] | None:
    """Parse a decoded metadata struct.

    Returns the filled metadata and the number of bytes consumed, or
    ``None`` if the struct is malformed or nests deeper than
    ``METADATA_MAX_DEPTH``.
    """
    if depth > METADATA_MAX_DEPTH:
        return None
    if metadata is None:
        metadata = SessionMetadata()
    fields = _Fields(data, byte_order)
    if fields.u32(0) != 1:
        return None
    count = fields.u32(4)
    if count is None:
        return None
    pos = 8
    for _ in range(count):
        raw_name = fields.string(pos)
        if raw_name is None:
            return None
        pos += 4 + len(raw_name)
        name = raw_name.decode("utf-8", "replace").replace("\t", "/")
        field_type = fields.u32(pos)
        if field_type is None:
            return None
        pos += 4
        if field_type == 0:
            value = fields.string(pos)
            if value is None:
                return None
            pos += 4 + len(value)
            metadata.fill(outer_field or name, value.decode("utf-8", "replace"))
        elif field_type == 3:
            inner = parse_metadata_struct(data[pos:], byte_order, metadata, name, depth + 1)
            if inner is None:
                return None
            pos += inner[1]
    return metadata, pos


def read_metadata(blocks: Sequence[Block], byte_order: str) -> SessionMetadata | None:
    for block in blocks:
        if block.content_type != TAG_METADATA:
            continue
        for child in block.children:
            if child.content_type != TAG_METADATA_BASE64:
                continue
            decoded = post_process(child.content_type, bytes(child.data))
            if decoded is None:
                return None
            parsed = parse_metadata_struct(decoded, byte_order)
            return parsed[0] if parsed is not None else None
    return None


def read_key_signatures(blocks: Sequence[Block], byte_order: str) -> List[KeySignature]:
    signatures: List[KeySignature] = []
    for block in blocks:
        if block.content_type != TAG_KEY_SIGNATURE_LIST:
            continue
        for child in block.children:
            if child.content_type != TAG_KEY_SIGNATURE:
                continue
            values = _Fields(child.data, byte_order).unpack("QBBB", 0)
            if values is None:
                continue
            pos, is_major, is_sharp, signs = values
            if is_major > 1 or is_sharp > 1 or signs > 7:
                continue
            signatures.append(KeySignature(pos, bool(is_major), bool(is_sharp), signs))
    return signatures


def _event_map(blocks: Sequence[Block], tag: int, event_size: int, byte_order: str):
    """Return ``(fields, count)`` for the first well-sized event map block."""
    for block in blocks:
        if block.content_type != tag:
            continue
        fields = _Fields(block.data, byte_order)
        count = fields.u32(11)
        if count is None or not fields.fits(EVENT_MAP_HEADER, count * event_size):
            return None
        return fields, count
    return None


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def read_time_signatures(blocks: Sequence[Block], byte_order: str) -> List[TimeSignature]:
    found = _event_map(blocks, TAG_TIME_SIGNATURES, TIME_SIGNATURE_SIZE, byte_order)
    if found is None:
        return []
    fields, count = found
    signatures: List[TimeSignature] = []
    for i in range(count):
        pos, measure, numerator, denominator = fields.unpack(
            "QIII", EVENT_MAP_HEADER + i * TIME_SIGNATURE_SIZE
        )
        if not (0 < numerator <= 255 and 0 < denominator <= 255):
            continue
        if not _is_power_of_two(denominator):
            continue
        signatures.append(TimeSignature(pos, measure, numerator, denominator))
    return signatures


def read_tempo_changes(blocks: Sequence[Block], byte_order: str) -> List[TempoChange]:
    found = _event_map(blocks, TAG_TEMPO_CHANGES, TEMPO_CHANGE_SIZE, byte_order)
    if found is None:
        return []
    fields, count = found
    changes: List[TempoChange] = []
    for i in range(count):
        base = EVENT_MAP_HEADER + i * TEMPO_CHANGE_SIZE
        (pos,) = fields.unpack("Q", base + 34)
        tempo, beat_length = fields.unpack("dQ", base + 44)
        if math.isnan(tempo) or not 5.0 <= tempo <= 500.0:
            continue
        if beat_length % BEAT_RESOLUTION != 0:
            continue
        changes.append(TempoChange(pos, tempo, beat_length))
    return changes


def read_session_info(reader) -> SessionInfo:
    """Collect everything above from a :class:`~ptf.reader.PTFReader`."""
    if not is_session(reader.cleartext()):
        raise MalformedHeader("not a session file: signature missing")
    blocks = reader.blocks()
    order = reader.byte_order
    sample_rate, bit_depth = read_sample_format(blocks, order)
    return SessionInfo(
        version=read_version(blocks, order),
        sample_rate=sample_rate,
        bit_depth=bit_depth,
        metadata=read_metadata(blocks, order),
        key_signatures=read_key_signatures(blocks, order),
        time_signatures=read_time_signatures(blocks, order),
        tempo_changes=read_tempo_changes(blocks, order),
    )
