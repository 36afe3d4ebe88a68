"""Read-only decoding of Pro Tools session files."""

from .blocks import (  # noqa: F401
    MAX_DEPTH,
    Block,
    find_blocks,
    free_ranges,
    parse_block_at,
    parse_blocks,
    walk,
)
from .content_types import (  # noqa: F401
    CONTENT_TYPES,
    ContentType,
    decode_base64_metadata,
    label_for,
    post_process,
)
from .diff import BYTE_GROUP, ByteGroupDiff, DiffRecord, changed_records, compare, diff_payload  # noqa: F401
from .errors import (  # noqa: F401
    BadBlockMarker,
    BlockError,
    MalformedHeader,
    NestingTooDeep,
    OverlongBlock,
    PtfError,
    TruncatedBlock,
    UnreadableFile,
    UnsupportedFormatVersion,
)
from .reader import PTFReader, open_session  # noqa: F401
from .unxor import deobfuscate  # noqa: F401
from .variants import FILE_HEADER_SIZE, VARIANTS, BlockLayout, FormatVariant, select_variant  # noqa: F401
from .versions import VersionFile, autoversion, find_changed_previous, find_previous, find_versions  # noqa: F401
