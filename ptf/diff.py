"""Block-level comparison of two decoded revisions.

Forests are paired by position: index ``i`` of one children sequence is
compared with index ``i`` of the other, and the pair is kept only when both
blocks carry the same tag.  Mismatched positions are dropped, so an inserted
or reordered block desynchronises the rest of its level.  Positions past the
end of the shorter sequence are reported as wholly added or removed
subtrees.

Kept pairs are compared in 16-byte groups; only the exact differing
offsets inside a group are reported.  A block's bytes include those of its
children, so a changed child also marks each of its ancestors changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .blocks import Block

BYTE_GROUP = 16


@dataclass(frozen=True)
class ByteGroupDiff:
    start: int  # payload-relative offset of the group
    offsets: Tuple[int, ...]  # payload-relative offsets that differ
    previous: bytes
    current: bytes


@dataclass(frozen=True)
class DiffRecord:
    path: Tuple[int, ...]  # child indices from the forest root
    previous: Block | None
    current: Block | None
    groups: Tuple[ByteGroupDiff, ...]

    @property
    def status(self) -> str:
        if self.previous is None:
            return "added"
        if self.current is None:
            return "removed"
        return "changed" if self.groups else "unchanged"

    @property
    def changed(self) -> bool:
        return self.status != "unchanged"

    @property
    def content_type(self) -> int:
        block = self.current if self.current is not None else self.previous
        return block.content_type


def diff_payload(
    previous: bytes, current: bytes, group: int = BYTE_GROUP
) -> List[ByteGroupDiff]:
    """Return the differing ``group``-byte runs of two payloads.

    A byte present on only one side counts as differing.
    """
    previous = bytes(previous)
    current = bytes(current)
    groups: List[ByteGroupDiff] = []
    for start in range(0, max(len(previous), len(current)), group):
        a = previous[start : start + group]
        b = current[start : start + group]
        if a == b:
            continue
        offsets = tuple(
            start + i
            for i in range(max(len(a), len(b)))
            if i >= len(a) or i >= len(b) or a[i] != b[i]
        )
        groups.append(ByteGroupDiff(start=start, offsets=offsets, previous=a, current=b))
    return groups


def _one_sided(
    block: Block, path: Tuple[int, ...], removed: bool, records: List[DiffRecord]
) -> None:
    if removed:
        groups = diff_payload(block.data, b"")
        records.append(DiffRecord(path, block, None, tuple(groups)))
    else:
        groups = diff_payload(b"", block.data)
        records.append(DiffRecord(path, None, block, tuple(groups)))
    for index, child in enumerate(block.children):
        _one_sided(child, path + (index,), removed, records)


def _compare_level(
    previous: Sequence[Block],
    current: Sequence[Block],
    path: Tuple[int, ...],
    records: List[DiffRecord],
) -> None:
    for index in range(max(len(previous), len(current))):
        here = path + (index,)
        if index >= len(current):
            _one_sided(previous[index], here, True, records)
            continue
        if index >= len(previous):
            _one_sided(current[index], here, False, records)
            continue
        old, new = previous[index], current[index]
        if old.content_type != new.content_type:
            continue
        groups = diff_payload(old.data, new.data)
        records.append(DiffRecord(here, old, new, tuple(groups)))
        _compare_level(old.children, new.children, here, records)


def compare(previous: Sequence[Block], current: Sequence[Block]) -> List[DiffRecord]:
    """Compare two forests; one record per kept pair or one-sided block."""
    records: List[DiffRecord] = []
    _compare_level(previous, current, (), records)
    return records


def changed_records(records: Iterable[DiffRecord]) -> List[DiffRecord]:
    return [record for record in records if record.changed]
