"""
Reader for VP containers.

The entry table is flat: a directory record opens a directory, the records
after it are its children, and a ".." record closes it again. The reader
rebuilds logical paths from that sequence with a directory stack.
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterable, Iterator, List, Optional, Pattern, Union

from vptools.codec import HEADER_SIZE, EntryRecord, Header, decode_header, decode_table
from vptools.errors import ArchiveNotFoundError, MalformedArchiveError, NotAFileError


class EntryKind(Enum):
    FILE = 'file'
    DIRECTORY = 'directory'


@dataclass
class LogicalEntry:
    """A file or directory of an archive, with its full logical path."""
    name: str
    path: str
    kind: EntryKind
    offset: int
    size: int
    timestamp: int

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


PathFilter = Union[str, Pattern, None]


def compile_pattern(pattern: PathFilter) -> Optional[Pattern]:
    """Accept a regex string or a compiled pattern."""
    if pattern is None or isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def record_kind(record: EntryRecord) -> EntryKind:
    """
    Classify a table record that is not a ".." marker.

    Zero-size records are directories; the timestamp of a directory carries
    no meaning and is ignored.
    """
    if record.size != 0:
        return EntryKind.FILE
    return EntryKind.DIRECTORY


def check_name(index: int, name: str) -> None:
    """Reject names that would not stay a single path component."""
    if name in ('', '.') or '/' in name or '\\' in name:
        raise MalformedArchiveError(f"Entry {index}: unsafe name {name!r}")


def walk_records(records: Iterable[EntryRecord], lowercase: bool = False,
                 pattern: PathFilter = None) -> Iterator[LogicalEntry]:
    """
    Turn flat table records into LogicalEntry objects.

    The directory stack is updated for every record; the pattern only decides
    what gets yielded, so children of a filtered-out directory still get the
    right path.
    """
    regex = compile_pattern(pattern)
    stack: List[str] = []

    for index, record in enumerate(records):
        name = record.name.lower() if lowercase else record.name

        if record.is_dir_end:
            if record.size != 0:
                raise MalformedArchiveError(
                    f"Entry {index}: directory end marker has size {record.size}")
            if not stack:
                raise MalformedArchiveError(
                    f"Entry {index}: directory end marker without an open directory")
            stack.pop()
            continue

        check_name(index, record.name)
        kind = record_kind(record)
        if kind is EntryKind.DIRECTORY:
            stack.append(name)
            path = '/'.join(stack)
        else:
            path = '/'.join(stack + [name])

        if regex is not None and not regex.search(path):
            continue

        yield LogicalEntry(
            name=name,
            path=path,
            kind=kind,
            offset=record.offset,
            size=record.size,
            timestamp=record.timestamp,
        )

    if stack:
        raise MalformedArchiveError(f"Unclosed directory at end of table: {'/'.join(stack)}")


class VPFile:
    """
    An open VP container.

    Usage:
        with open_archive('data.vp') as vp:
            for entry in vp.entries(pattern=r'\\.tbl$'):
                print(entry.path)
    """

    def __init__(self, path: str, fileobj: BinaryIO, header: Header, file_size: int):
        self.path = path
        self.header = header
        self.file_size = file_size
        self._file = fileobj

    @property
    def fileobj(self) -> BinaryIO:
        return self._file

    @property
    def closed(self) -> bool:
        return self._file.closed

    def read_at(self, offset: int, size: int) -> bytes:
        self._file.seek(offset)
        return self._file.read(size)

    def read_table(self) -> bytes:
        """Return the raw entry table."""
        return self.read_at(self.header.table_offset, self.header.table_size)

    def entries(self, lowercase: bool = False, pattern: PathFilter = None) -> Iterator[LogicalEntry]:
        return iterate_entries(self, lowercase=lowercase, pattern=pattern)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> 'VPFile':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"VPFile({self.path!r}, entries={self.header.entry_count})"


def check_table_bounds(header: Header, file_size: int) -> None:
    if header.table_offset < HEADER_SIZE:
        raise MalformedArchiveError(f"Entry table offset {header.table_offset} overlaps the header")
    if header.table_offset + header.table_size > file_size:
        raise MalformedArchiveError(
            f"Entry table ({header.entry_count} entries at offset {header.table_offset}) "
            f"runs past end of file ({file_size} bytes)")


def check_entry_bounds(header: Header, entry: LogicalEntry) -> None:
    """File data must lie between the header and the entry table."""
    if entry.offset < HEADER_SIZE or entry.offset + entry.size > header.table_offset:
        raise MalformedArchiveError(
            f"{entry.path}: data at {entry.offset}+{entry.size} lies outside "
            f"the data region ({HEADER_SIZE}..{header.table_offset})")


def open_archive(path: str) -> VPFile:
    """
    Open a VP container and validate its header.

    Raises:
        ArchiveNotFoundError: If the path does not exist
        NotAFileError: If the path is not a regular file
        BadMagicError, BadVersionError: If the header is not a VP v2 header
        MalformedArchiveError: If the header is short or the table is out of bounds
    """
    if not os.path.exists(path):
        raise ArchiveNotFoundError(f"{path} does not exist")
    if not os.path.isfile(path):
        raise NotAFileError(f"{path} is not a file")

    f = open(path, 'rb')
    try:
        file_size = os.fstat(f.fileno()).st_size
        header = decode_header(f.read(HEADER_SIZE))
        check_table_bounds(header, file_size)
    except BaseException:
        f.close()
        raise

    return VPFile(path, f, header, file_size)


def iterate_entries(handle: VPFile, lowercase: bool = False,
                    pattern: PathFilter = None) -> Iterator[LogicalEntry]:
    """
    Lazily yield the logical entries of an open archive in table order.

    Each call reads the table again, so callers may seek the handle (e.g. to
    stream entry data) between items.
    """
    table = handle.read_table()
    yield from walk_records(decode_table(table, handle.header.entry_count),
                            lowercase=lowercase, pattern=pattern)
