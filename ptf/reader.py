"""Session file reader: raw bytes in, cleartext and block forest out."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

from .blocks import Block, parse_blocks
from .errors import UnreadableFile
from .unxor import deobfuscate
from .variants import FILE_HEADER_SIZE, FormatVariant, byte_order, select_variant


class PTFReader:
    """Owns one session file.

    The variant is chosen when the reader is built; :meth:`cleartext` and
    :meth:`blocks` are computed on first use and then returned unchanged
    for the lifetime of the reader.
    """

    def __init__(self, raw: bytes, path: Path | None = None) -> None:
        self.raw = bytes(raw)
        self.path = path
        self.variant: FormatVariant = select_variant(self.raw)
        self.byte_order = byte_order(self.raw)
        self._cleartext: bytes | None = None
        self._blocks: Tuple[Block, ...] | None = None

    @classmethod
    def open(cls, path: str | Path) -> "PTFReader":
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise UnreadableFile(f"cannot read {path}: {exc.strerror or exc}") from exc
        return cls(raw, path=path)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PTFReader":
        return cls(raw)

    def cleartext(self) -> bytes:
        if self._cleartext is None:
            self._cleartext = deobfuscate(self.raw)
        return self._cleartext

    def blocks(self) -> Tuple[Block, ...]:
        if self._blocks is None:
            self._blocks = tuple(
                parse_blocks(
                    self.cleartext(),
                    self.variant.layout,
                    byte_order=self.byte_order,
                    start=FILE_HEADER_SIZE,
                )
            )
        return self._blocks

    def __repr__(self) -> str:
        name = self.path.name if self.path is not None else "<bytes>"
        return f"PTFReader({name}, variant={self.variant.name}, {len(self.raw)} bytes)"


def open_session(path: str | Path) -> PTFReader:
    return PTFReader.open(path)
