"""
Builds VP containers from a directory tree named "data".

The tree is walked in sorted order and flattened into the same shape the
reader produces: a directory record, its children, then a ".." record.
Zero-byte files are reported as skipped and left out of the archive, but
their names are still checked; directories are always kept, empty or not.
Symbolic links are not followed.

Layout written:
- placeholder header (16 bytes)
- file data, in table order, no padding
- entry table
- real header, written last once the table offset is known
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from vptools.codec import (
    DIR_END, ENTRY_SIZE, HEADER_SIZE, MAGIC, MAX_U32, VERSION,
    encode_entry, encode_header, encode_name,
)
from vptools.errors import (
    ArchiveNotFoundError, DestinationExistsError, DuplicateNameError,
    LimitExceededError, SourceNameError, SourceNotDirectoryError, VPError,
)
from vptools.streamer import CHUNK_SIZE

ROOT_NAME = 'data'

# Planned entry kinds
KIND_FILE = 'file'
KIND_DIR = 'directory'
KIND_DIR_END = 'dir_end'

# Planned entry actions
ACTION_ARCHIVE = 'archive'
ACTION_SKIP = 'skip'


@dataclass
class PlannedEntry:
    """One item of the flattened source tree."""
    name: str
    path: str
    kind: str
    action: str = ACTION_ARCHIVE
    offset: int = 0
    size: int = 0
    timestamp: int = 0
    source: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.kind == KIND_FILE

    @property
    def is_dir(self) -> bool:
        return self.kind == KIND_DIR

    @property
    def archived(self) -> bool:
        return self.action == ACTION_ARCHIVE


@dataclass
class ArchivePlan:
    """Everything create_archive() needs to know before writing a byte."""
    entries: List[PlannedEntry] = field(default_factory=list)
    data_size: int = 0

    @property
    def records(self) -> List[PlannedEntry]:
        """Entries that become table records, in table order."""
        return [e for e in self.entries if e.archived]

    @property
    def entry_count(self) -> int:
        return len(self.records)

    @property
    def table_offset(self) -> int:
        return HEADER_SIZE + self.data_size

    @property
    def total_size(self) -> int:
        return self.table_offset + self.entry_count * ENTRY_SIZE


def _clamp_timestamp(mtime: float) -> int:
    return min(max(int(mtime), 0), MAX_U32)


class _FileListBuilder:
    """
    Accumulates the flat entry list for one walk of a source tree.

    Owns the case-insensitive path registry and the running data offset;
    a new builder is created for every build_file_list() call.
    """

    def __init__(self):
        self.plan = ArchivePlan()
        self.offset = HEADER_SIZE
        self.seen: Dict[str, str] = {}  # lowercased logical path -> logical path

    def _register(self, name: str, path: str) -> None:
        encode_name(name)
        key = path.lower()
        other = self.seen.get(key)
        if other is not None:
            raise DuplicateNameError(f"{path} conflicts with {other} (names differ only by case)")
        self.seen[key] = path

    def open_dir(self, name: str, path: str) -> None:
        self._register(name, path)
        self.plan.entries.append(PlannedEntry(name=name, path=path, kind=KIND_DIR))

    def close_dir(self, path: str) -> None:
        self.plan.entries.append(PlannedEntry(name=DIR_END, path=f"{path}/{DIR_END}", kind=KIND_DIR_END))

    def add_file(self, name: str, path: str, source: str) -> None:
        self._register(name, path)
        st = os.stat(source)
        entry = PlannedEntry(
            name=name,
            path=path,
            kind=KIND_FILE,
            size=st.st_size,
            timestamp=_clamp_timestamp(st.st_mtime),
            source=source,
        )
        if entry.size == 0:
            entry.action = ACTION_SKIP
        else:
            entry.offset = self.offset
            self.offset += entry.size
            self.plan.data_size += entry.size
        self.plan.entries.append(entry)

    def walk(self, disk_dir: str, logical_dir: str) -> None:
        for name in sorted(os.listdir(disk_dir)):
            disk_path = os.path.join(disk_dir, name)
            path = f"{logical_dir}/{name}"
            if os.path.islink(disk_path):
                continue
            if os.path.isdir(disk_path):
                self.open_dir(name, path)
                self.walk(disk_path, path)
                self.close_dir(path)
            elif os.path.isfile(disk_path):
                self.add_file(name, path, disk_path)


def check_source(source_root: str) -> str:
    """Validate the tree to archive and return its normalized path."""
    source_root = os.path.normpath(source_root)
    if not os.path.exists(source_root):
        raise ArchiveNotFoundError(f"{source_root} does not exist")
    if not os.path.isdir(source_root):
        raise SourceNotDirectoryError(f"{source_root} is not a directory")
    if os.path.basename(os.path.abspath(source_root)) != ROOT_NAME:
        raise SourceNameError(f"{source_root} must be a directory named '{ROOT_NAME}'")
    return source_root


def check_limits(plan: ArchivePlan) -> None:
    if plan.entry_count > MAX_U32:
        raise LimitExceededError(f"Too many entries: {plan.entry_count} (max {MAX_U32})")
    if plan.total_size > MAX_U32:
        raise LimitExceededError(f"Archive too large: {plan.total_size} bytes (max {MAX_U32})")


def build_file_list(source_root: str) -> ArchivePlan:
    """
    Flatten a "data" directory tree into the planned archive layout.

    Raises:
        ArchiveNotFoundError, SourceNotDirectoryError, SourceNameError
        EncodingError: If a name is too long or not ASCII
        DuplicateNameError: If two paths differ only by case
    """
    source_root = check_source(source_root)
    builder = _FileListBuilder()
    builder.open_dir(ROOT_NAME, ROOT_NAME)
    builder.walk(source_root, ROOT_NAME)
    builder.close_dir(ROOT_NAME)
    return builder.plan


def _copy_file_data(entry: PlannedEntry, out) -> None:
    remaining = entry.size
    with open(entry.source, 'rb') as src:
        while remaining > 0:
            chunk = src.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                raise VPError(f"{entry.source} shrank while archiving")
            out.write(chunk)
            remaining -= len(chunk)


def write_archive(plan: ArchivePlan, destination: str) -> None:
    """Write a validated plan to destination, removing the file if anything fails."""
    out = open(destination, 'xb')
    try:
        with out:
            out.write(b'\x00' * HEADER_SIZE)
            for entry in plan.records:
                if entry.is_file:
                    _copy_file_data(entry, out)

            table_offset = out.tell()
            for entry in plan.records:
                out.write(encode_entry(entry.offset, entry.size, entry.name, entry.timestamp))

            out.seek(0)
            out.write(encode_header(MAGIC, VERSION, table_offset, plan.entry_count))
    except BaseException:
        os.remove(destination)
        raise


def create_archive(source_root: str, destination: str, noop: bool = False) -> ArchivePlan:
    """
    Archive the "data" tree at source_root into destination.

    All validation happens before the destination is touched. With noop=True
    the plan is built and checked but nothing is written, and destination may
    already exist.

    Returns:
        The ArchivePlan, including skipped zero-byte files, for reporting.
    """
    plan = build_file_list(source_root)
    check_limits(plan)

    if noop:
        return plan

    if os.path.exists(destination):
        raise DestinationExistsError(f"{destination} already exists")

    write_archive(plan, destination)
    return plan
