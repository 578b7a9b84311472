"""
Extract VP archive entries to disk.

Conflicts between an entry and what is already on disk are reported per
entry and the entry is skipped; the rest of the archive is still extracted.
"""

import os
from dataclasses import dataclass
from typing import Iterator, Optional

from vptools.errors import OnDiskConflictError
from vptools.reader import LogicalEntry, PathFilter, VPFile, iterate_entries
from vptools.streamer import CHUNK_SIZE, stream_entry

ACTION_CREATE = 'create'
ACTION_EXTRACT = 'extract'
ACTION_OVERWRITE = 'overwrite'
ACTION_SKIP = 'skip'
ACTION_ERROR = 'error'


@dataclass
class ExtractAction:
    """What happened (or, in no-op mode, would happen) to one entry."""
    action: str
    entry: LogicalEntry
    target: str
    error: Optional[OnDiskConflictError] = None


def _check_parents(root: str, entry: LogicalEntry) -> None:
    """Raise if any directory above the entry's target exists as a non-directory."""
    parts = entry.path.split('/')[:-1]
    current = root
    for part in parts:
        current = os.path.join(current, part)
        if os.path.lexists(current) and not os.path.isdir(current):
            raise OnDiskConflictError(f"{current} exists but is not a directory")


def _check_inside(root: str, target: str) -> None:
    real_root = os.path.realpath(root)
    real_target = os.path.realpath(target)
    if os.path.commonpath([real_root, real_target]) != real_root:
        raise OnDiskConflictError(f"{target} resolves outside {root}")


def _write_file(handle: VPFile, entry: LogicalEntry, target: str, chunk_size: int) -> None:
    with open(target, 'wb') as out:
        for chunk in stream_entry(handle, entry, chunk_size):
            out.write(chunk)
    if entry.timestamp:
        os.utime(target, (entry.timestamp, entry.timestamp))


def extract_entry(handle: VPFile, entry: LogicalEntry, root: str, noop: bool = False,
                  overwrite: bool = False, chunk_size: int = CHUNK_SIZE) -> ExtractAction:
    """
    Extract a single entry below root.

    Raises:
        OnDiskConflictError: If a file is in the way of a directory or the
            other way round, or a symlink on disk leads outside root
    """
    target = os.path.join(root, *entry.path.split('/'))
    _check_parents(root, entry)
    _check_inside(root, target)

    if entry.is_dir:
        if os.path.isdir(target):
            return ExtractAction(ACTION_SKIP, entry, target)
        if os.path.lexists(target):
            raise OnDiskConflictError(f"{target} exists but is not a directory")
        if not noop:
            os.makedirs(target)
        return ExtractAction(ACTION_CREATE, entry, target)

    if os.path.isdir(target):
        raise OnDiskConflictError(f"{target}/ exists but is not a file")

    action = ACTION_EXTRACT
    if os.path.lexists(target):
        if not overwrite:
            return ExtractAction(ACTION_SKIP, entry, target)
        action = ACTION_OVERWRITE

    if not noop:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        _write_file(handle, entry, target, chunk_size)
    return ExtractAction(action, entry, target)


def extract_archive(handle: VPFile, root: str = '.', pattern: PathFilter = None,
                    lowercase: bool = False, noop: bool = False, overwrite: bool = False,
                    chunk_size: int = CHUNK_SIZE) -> Iterator[ExtractAction]:
    """
    Extract every matching entry of an open archive below root.

    Yields one ExtractAction per entry. On-disk conflicts come back as
    "error" actions carrying the OnDiskConflictError; archive format errors,
    unsafe entry names included, propagate and stop the extraction.
    """
    for entry in iterate_entries(handle, lowercase=lowercase, pattern=pattern):
        try:
            result = extract_entry(handle, entry, root, noop=noop, overwrite=overwrite,
                                   chunk_size=chunk_size)
        except OnDiskConflictError as e:
            target = os.path.join(root, *entry.path.split('/'))
            result = ExtractAction(ACTION_ERROR, entry, target, error=e)
        yield result
