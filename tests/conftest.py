"""Builders for synthetic session files.

Sessions are assembled in cleartext and obfuscated by XORing with the same
key stream the decoder strips, which is its own inverse.
"""

from pathlib import Path
import base64
import struct
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from ptf.unxor import keystream, xor_delta, xor_key  # noqa: E402
from ptf.variants import FILE_HEADER_SIZE, VARIANTS  # noqa: E402

SEED_A = 0x35  # delta 1 for multiplier 53
SEED_B = 0x0B  # delta 0xFF for multiplier 11


def encode_block(tag, payload=b"", children=(), *, byte_order="little", block_type=0, trailer=b""):
    """Encode one block; ``children`` are already-encoded block bytes.

    The body is ``payload``, then the children, then ``trailer``; the size
    field counts from the content type to the end of the body.
    """
    prefix = ">" if byte_order == "big" else "<"
    body = bytes(payload) + b"".join(children) + bytes(trailer)
    header = b"\x5a" + struct.pack(prefix + "HIH", block_type, 2 + len(body), tag)
    return header + body


def clear_header(*, xor_type=0x05, seed=SEED_B, big_endian=False, signature=True):
    header = bytearray(FILE_HEADER_SIZE)
    if signature:
        header[0] = 0x03
    header[0x11] = 1 if big_endian else 0
    header[0x12] = xor_type
    header[0x13] = seed
    return bytes(header)


def obfuscate(cleartext):
    variant = VARIANTS[cleartext[0x12]]
    delta = xor_delta(cleartext[0x13], variant.multiplier, variant.negative)
    stream = keystream(variant, xor_key(delta), FILE_HEADER_SIZE, len(cleartext))
    body = bytes(a ^ b for a, b in zip(cleartext[FILE_HEADER_SIZE:], stream))
    return cleartext[:FILE_HEADER_SIZE] + body


def build_session(*blocks, xor_type=0x05, seed=SEED_B, big_endian=False, signature=True, tail=b""):
    header = clear_header(
        xor_type=xor_type, seed=seed, big_endian=big_endian, signature=signature
    )
    return obfuscate(header + b"".join(blocks) + tail)


def metadata_payload(blob, *, marker=b"sessionMetadataBase64", line=64):
    """Wrap ``blob`` as base64 text broken with CRLF every ``line`` chars."""
    text = base64.b64encode(blob)
    wrapped = b"\r\n".join(text[i : i + line] for i in range(0, len(text), line))
    return (
        struct.pack("<I", len(marker)) + marker + struct.pack("<I", len(wrapped)) + wrapped
    )


@pytest.fixture
def write_session(tmp_path):
    def _write(name, *blocks, **kwargs):
        path = tmp_path / name
        path.write_bytes(build_session(*blocks, **kwargs))
        return path

    return _write
