"""Sibling revision discovery and auto-versioning.

Archived revisions of ``song.ptx`` live next to it as ``song_01.ptx``,
``song_02.ptx`` and so on.  The newest revision is the one with the largest
number, not the latest modification time.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .errors import UnreadableFile
from .reader import PTFReader

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionFile:
    number: int
    path: Path


def revision_name(path: Path, number: int) -> Path:
    return path.with_name(f"{path.stem}_{number:02d}{path.suffix}")


def find_versions(path: str | Path) -> List[VersionFile]:
    """Return archived revisions of ``path``, oldest first."""
    path = Path(path)
    pattern = re.compile(
        re.escape(path.stem) + r"_(\d+)" + re.escape(path.suffix) + r"\Z"
    )
    directory = path.parent
    found: List[VersionFile] = []
    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise UnreadableFile(f"cannot list {directory}: {exc.strerror}") from exc
    for candidate in entries:
        if not candidate.is_file():
            continue
        match = pattern.match(candidate.name)
        if match:
            found.append(VersionFile(int(match.group(1)), candidate))
    found.sort(key=lambda v: (v.number, v.path.name))
    return found


def find_previous(path: str | Path) -> Tuple[int, Path] | None:
    versions = find_versions(path)
    if not versions:
        return None
    newest = versions[-1]
    return newest.number, newest.path


def find_changed_previous(
    path: str | Path, current: PTFReader | None = None
) -> Tuple[int, Path] | None:
    """Return the newest revision whose cleartext differs from ``path``.

    Only the newest revision and, if it is identical, the one before it are
    checked.  ``None`` means no differing revision was found.
    """
    if current is None:
        current = PTFReader.open(path)
    versions = find_versions(path)
    for candidate in list(reversed(versions))[:2]:
        previous = PTFReader.open(candidate.path)
        if previous.cleartext() != current.cleartext():
            return candidate.number, candidate.path
        log.debug("%s is identical to %s", candidate.path.name, Path(path).name)
    return None


def archive_revision(path: str | Path, number: int) -> Path:
    """Copy the on-disk (obfuscated) bytes of ``path`` to revision ``number``."""
    path = Path(path)
    target = revision_name(path, number)
    shutil.copyfile(path, target)
    log.info("archived %s as %s", path.name, target.name)
    return target


def autoversion(path: str | Path, *, dry_run: bool = False) -> Path | None:
    """Archive ``path`` unless its newest revision already matches it.

    Returns the new revision path, or ``None`` when nothing was written.
    """
    path = Path(path)
    current = PTFReader.open(path)
    newest = find_previous(path)
    if newest is not None:
        number, previous_path = newest
        if PTFReader.open(previous_path).cleartext() == current.cleartext():
            log.info("%s unchanged since revision %02d", path.name, number)
            return None
        next_number = number + 1
    else:
        next_number = 1
    if dry_run:
        target = revision_name(path, next_number)
        log.info("would archive %s as %s", path.name, target.name)
        return target
    return archive_revision(path, next_number)
