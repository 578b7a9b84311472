"""
Fixed-width codec for the VP container header and entry records.

Format (all integers unsigned 32-bit little-endian):
- Header (16 bytes):
  - Magic tag "VPVP" (4 bytes)
  - Version, always 2
  - Absolute offset of the entry table
  - Number of entries in the table
- Data region: file contents back to back, starting right after the header
- Entry table (44 bytes per entry):
  - Data offset (0 for directories and ".." markers)
  - Data size (0 for directories and ".." markers)
  - Name, null padded to 32 bytes (31 significant ASCII bytes)
  - Modification time in Unix seconds (0 for directories)
"""

import struct
from dataclasses import dataclass

from vptools.errors import BadMagicError, BadVersionError, EncodingError, MalformedArchiveError

MAGIC = b'VPVP'
VERSION = 2

HEADER_STRUCT = struct.Struct('<4sIII')  # magic, version, table offset, entry count
ENTRY_STRUCT = struct.Struct('<II32sI')  # offset, size, name, timestamp
HEADER_SIZE = HEADER_STRUCT.size
ENTRY_SIZE = ENTRY_STRUCT.size

NAME_FIELD_SIZE = 32
MAX_NAME_LEN = NAME_FIELD_SIZE - 1
MAX_U32 = 0xFFFFFFFF

# Name of the end-of-directory marker record
DIR_END = '..'


@dataclass
class Header:
    """Decoded container header."""
    magic: bytes
    version: int
    table_offset: int
    entry_count: int

    @property
    def table_size(self) -> int:
        return self.entry_count * ENTRY_SIZE


@dataclass
class EntryRecord:
    """One raw record of the entry table."""
    offset: int
    size: int
    name: str
    timestamp: int

    @property
    def is_dir_end(self) -> bool:
        return self.name == DIR_END


def encode_header(tag: bytes, version: int, table_offset: int, entry_count: int) -> bytes:
    """Encode a 16-byte container header."""
    return HEADER_STRUCT.pack(tag, version, table_offset, entry_count)


def decode_header(data: bytes) -> Header:
    """
    Decode a container header.

    Raises:
        MalformedArchiveError: If fewer than 16 bytes are given
        BadMagicError: If the tag is not "VPVP"
        BadVersionError: If the version is not 2
    """
    if len(data) < HEADER_SIZE:
        raise MalformedArchiveError(f"Header too short: {len(data)} bytes")

    magic, version, table_offset, entry_count = HEADER_STRUCT.unpack_from(data, 0)
    if magic != MAGIC:
        raise BadMagicError(f"Bad magic {magic!r}, expected {MAGIC!r}")
    if version != VERSION:
        raise BadVersionError(f"Unsupported version: {version}")

    return Header(magic=magic, version=version, table_offset=table_offset, entry_count=entry_count)


def encode_name(name: str) -> bytes:
    """Validate an entry name and return its ASCII bytes (without padding)."""
    try:
        raw = name.encode('ascii')
    except UnicodeEncodeError:
        raise EncodingError(f"Name is not ASCII: {name!r}") from None

    if not raw:
        raise EncodingError("Name is empty")
    if b'\x00' in raw:
        raise EncodingError(f"Name contains a null byte: {name!r}")
    if len(raw) > MAX_NAME_LEN:
        raise EncodingError(f"Name longer than {MAX_NAME_LEN} characters: {name}")
    return raw


def encode_entry(offset: int, size: int, name: str, timestamp: int) -> bytes:
    """Encode a 44-byte entry record. The name is null padded to 32 bytes."""
    # struct pads '32s' with nulls
    return ENTRY_STRUCT.pack(offset, size, encode_name(name), timestamp)


def decode_entry(data: bytes, pos: int = 0) -> EntryRecord:
    """Decode the entry record starting at data[pos]."""
    if len(data) - pos < ENTRY_SIZE:
        raise MalformedArchiveError(f"Entry record too short: {len(data) - pos} bytes")

    offset, size, raw_name, timestamp = ENTRY_STRUCT.unpack_from(data, pos)
    raw_name = raw_name.split(b'\x00', 1)[0]
    # latin-1 never fails; archives from other tools may carry high bytes
    return EntryRecord(offset=offset, size=size, name=raw_name.decode('latin-1'), timestamp=timestamp)


def decode_table(data: bytes, entry_count: int):
    """Yield entry_count records decoded from a raw table buffer."""
    if len(data) < entry_count * ENTRY_SIZE:
        raise MalformedArchiveError(
            f"Entry table truncated: {len(data)} bytes for {entry_count} entries")
    for i in range(entry_count):
        yield decode_entry(data, i * ENTRY_SIZE)
