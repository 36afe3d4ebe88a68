"""Content-type labels and payload post-processors.

Tags are 16-bit block classifiers.  Only some are known; :func:`label_for`
returns ``"Unknown"`` for the rest.  A post-processor turns a block payload
into a friendlier byte string, or returns ``None`` when the payload does not
have the shape it expects.  ``None`` means "show the raw payload", never an
error.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping, Optional

PostProcessor = Callable[[bytes], Optional[bytes]]

UNKNOWN_LABEL = "Unknown"
METADATA_MARKER = b"sessionMetadataBase64"


def _u32le(data: bytes, pos: int) -> int | None:
    if pos < 0 or pos + 4 > len(data):
        return None
    return int.from_bytes(data[pos : pos + 4], "little")


def decode_base64_metadata(data: bytes) -> bytes | None:
    """Decode the line-wrapped base64 blob carried by metadata blocks.

    Payload layout (all counts little-endian u32)::

        name_len | name (contains "sessionMetadataBase64") | count | base64...

    ``count`` covers the wrapped text including its CR/LF bytes.
    """
    data = bytes(data)
    name_len = _u32le(data, 0)
    if name_len is None or 4 + name_len > len(data):
        return None
    if METADATA_MARKER not in data[4 : 4 + name_len]:
        return None
    pos = 4 + name_len
    count = _u32le(data, pos)
    if count is None:
        return None
    pos += 4
    if pos + count > len(data):
        return None
    text = data[pos : pos + count].replace(b"\r", b"").replace(b"\n", b"")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None


@dataclass(frozen=True)
class ContentType:
    tag: int
    label: str
    post_processor: PostProcessor | None = None


def _table(*entries: ContentType) -> Mapping[int, ContentType]:
    return MappingProxyType({entry.tag: entry for entry in entries})


CONTENT_TYPES: Mapping[int, ContentType] = _table(
    ContentType(0x0003, "InfoProductVersionV5"),
    ContentType(0x0030, "InfoProductVersion"),
    ContentType(0x1001, "WavSampleRateSize"),
    ContentType(0x1003, "WavMeta"),
    ContentType(0x1004, "WavList"),
    ContentType(0x1007, "RegionNameNumber"),
    ContentType(0x1008, "AudioRegionNameNumberV5"),
    ContentType(0x100B, "AudioRegionListV5"),
    ContentType(0x100F, "AudioRegionTrackEntry"),
    ContentType(0x1011, "AudioRegionToTrackEntries"),
    ContentType(0x1012, "AudioRegionToTrackMap"),
    ContentType(0x1014, "AudioTrackNameNumber"),
    ContentType(0x1015, "AudioTracks"),
    ContentType(0x1017, "PluginEntry"),
    ContentType(0x1018, "PluginList"),
    ContentType(0x1021, "IOChannelEntry"),
    ContentType(0x1022, "IOChannelList"),
    ContentType(0x1028, "InfoSampleRate"),
    ContentType(0x103A, "WavNames"),
    ContentType(0x104F, "AudioRegionToTrackSubEntryV8"),
    ContentType(0x1050, "AudioRegionToTrackEntryV8"),
    ContentType(0x1052, "AudioRegionToTrackEntriesV8"),
    ContentType(0x1054, "AudioRegionToTrackMapV8"),
    ContentType(0x1056, "MidiRegionToTrackEntry"),
    ContentType(0x1057, "MidiRegionToTrackEntries"),
    ContentType(0x1058, "MidiRegionToTrackMap"),
    ContentType(0x2000, "MidiEventsBlock"),
    ContentType(0x2001, "MidiRegionNameNumberV5"),
    ContentType(0x2002, "MidiRegionsMapV5"),
    ContentType(0x2028, "TempoChanges"),
    ContentType(0x2029, "TimeSignatures"),
    ContentType(0x204B, "GeneralInfo"),
    ContentType(0x2067, "InfoSessionPath"),
    ContentType(0x2432, "KeySignature"),
    ContentType(0x2433, "KeySignatureList"),
    ContentType(0x2511, "Snaps"),
    ContentType(0x2519, "MidiTrackList"),
    ContentType(0x251A, "MidiTrackNameNumber"),
    ContentType(0x2523, "CompoundRegionElement"),
    ContentType(0x2602, "IORoute"),
    ContentType(0x2603, "IORoutingTable"),
    ContentType(0x2628, "CompoundRegionGroup"),
    ContentType(0x2629, "AudioRegionNameNumberV10"),
    ContentType(0x262A, "AudioRegionListV10"),
    ContentType(0x262C, "CompoundRegionMap"),
    ContentType(0x2633, "MidiRegionsNameNumberV10"),
    ContentType(0x2634, "MidiRegionsMapV10"),
    ContentType(0x2715, "SessionMetadataBase64", decode_base64_metadata),
    ContentType(0x2716, "SessionMetadata"),
    ContentType(0x271A, "MarkerList"),
)


def label_for(tag: int) -> str:
    entry = CONTENT_TYPES.get(tag)
    return entry.label if entry is not None else UNKNOWN_LABEL


def post_process(tag: int, data: bytes) -> bytes | None:
    """Run the post-processor registered for ``tag``; ``None`` if none applies."""
    entry = CONTENT_TYPES.get(tag)
    if entry is None or entry.post_processor is None:
        return None
    return entry.post_processor(data)
