"""Recover cleartext from an obfuscated session file.

The body of a session (everything after the 20-byte clear header) is XORed
with a 256-entry key.  The key is an arithmetic progression ``i * delta``
where ``delta`` solves ``delta * multiplier == seed (mod 256)``; which key
entry applies to a byte depends on its absolute file position and the
variant's index shift.
"""

from __future__ import annotations

from .errors import MalformedHeader
from .variants import FILE_HEADER_SIZE, XOR_VALUE_OFFSET, FormatVariant, select_variant


def xor_delta(value: int, multiplier: int, negative: bool) -> int:
    """Solve ``(delta * multiplier) & 0xFF == value`` for the smallest delta."""
    for i in range(256):
        if (i * multiplier) & 0xFF == value:
            return (-i) & 0xFF if negative else i
    raise MalformedHeader(
        f"xor seed 0x{value:02X} has no delta for multiplier {multiplier}"
    )


def xor_key(delta: int) -> bytes:
    return bytes((i * delta) & 0xFF for i in range(256))


def keystream(variant: FormatVariant, key: bytes, start: int, stop: int) -> bytes:
    """Return the key bytes covering absolute positions ``[start, stop)``.

    The stream is periodic with period ``256 << index_shift``; one period is
    built and then repeated, so this never loops per byte.
    """
    if stop <= start:
        return b""
    run = 1 << variant.index_shift
    period = b"".join(bytes([key[k]]) * run for k in range(256))
    phase = start % len(period)
    needed = stop - start
    reps = (phase + needed) // len(period) + 1
    return (period * reps)[phase : phase + needed]


def deobfuscate(raw: bytes) -> bytes:
    """Return the cleartext image of ``raw``.

    The clear header is copied through, so offsets in the cleartext match
    offsets in the file.  The result never aliases ``raw``.
    """
    variant = select_variant(raw)
    delta = xor_delta(raw[XOR_VALUE_OFFSET], variant.multiplier, variant.negative)
    key = xor_key(delta)

    body = raw[FILE_HEADER_SIZE:]
    if not body:
        return bytes(raw[:FILE_HEADER_SIZE])
    stream = keystream(variant, key, FILE_HEADER_SIZE, len(raw))
    plain = int.from_bytes(body, "big") ^ int.from_bytes(stream, "big")
    return bytes(raw[:FILE_HEADER_SIZE]) + plain.to_bytes(len(body), "big")
