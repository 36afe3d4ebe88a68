"""Exception hierarchy for session decoding.

Everything raised by the decoder derives from :class:`PtfError`.  Structural
problems additionally derive from ``ValueError`` so callers that only guard
against malformed input keep working.
"""

from __future__ import annotations


class PtfError(Exception):
    """Base class for all decoder failures."""


class UnreadableFile(PtfError, OSError):
    """The session file could not be opened or read."""


class MalformedHeader(PtfError, ValueError):
    """The clear file header is too short or its selector is unusable."""


class UnsupportedFormatVersion(MalformedHeader):
    """The header selects a variant this decoder does not implement."""

    def __init__(self, selector: int) -> None:
        super().__init__(f"unsupported xor type 0x{selector:02X}")
        self.selector = selector


class BlockError(PtfError, ValueError):
    """A block header is inconsistent with the bytes around it."""

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(f"{message} at offset 0x{offset:X}")
        self.offset = offset


class TruncatedBlock(BlockError):
    """A header or declared extent runs past the end of the buffer."""


class OverlongBlock(BlockError):
    """A child block runs past the end of its parent's body."""


class BadBlockMarker(BlockError):
    """A block header was expected but the marker byte is wrong."""


class NestingTooDeep(BlockError):
    """Children nest deeper than the parser accepts."""
