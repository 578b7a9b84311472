"""
Chunked access to the bytes of a single archive entry.

Extraction, piped output and checksum computation all read entry data
through stream_entry() so peak memory stays at one chunk.
"""

import zlib
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from vptools.errors import MalformedArchiveError, NotAFileError
from vptools.reader import LogicalEntry, PathFilter, VPFile, check_entry_bounds, iterate_entries

CHUNK_SIZE = 1024 * 1024  # 1 MiB


def stream_entry(handle: VPFile, entry: LogicalEntry, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield the bytes of a file entry in chunks of at most chunk_size.

    Exactly entry.size bytes are produced, starting at entry.offset.

    Raises:
        NotAFileError: If the entry is a directory
        MalformedArchiveError: If the entry's bytes are not inside the data
            region, or the file ends before entry.size bytes
    """
    if entry.is_dir:
        raise NotAFileError(f"{entry.path} is a directory")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    check_entry_bounds(handle.header, entry)

    done = 0
    while done < entry.size:
        want = min(chunk_size, entry.size - done)
        # Seek every time: the caller may use the handle between chunks
        chunk = handle.read_at(entry.offset + done, want)
        if not chunk:
            raise MalformedArchiveError(
                f"{entry.path}: data ends after {done} of {entry.size} bytes")
        done += len(chunk)
        yield chunk


def entry_crc32(handle: VPFile, entry: LogicalEntry, chunk_size: int = CHUNK_SIZE) -> int:
    """Compute the CRC32 of an entry's data."""
    crc = 0
    for chunk in stream_entry(handle, entry, chunk_size):
        crc = zlib.crc32(chunk, crc)
    return crc & 0xFFFFFFFF


def read_entry(handle: VPFile, entry: LogicalEntry) -> bytes:
    """Read a whole entry into memory."""
    return b''.join(stream_entry(handle, entry))


@dataclass
class PipeResult:
    written: int = 0
    broken_pipe: bool = False


def pipe_entries(handle: VPFile, out: BinaryIO, pattern: PathFilter = None,
                 lowercase: bool = False, chunk_size: int = CHUNK_SIZE) -> PipeResult:
    """
    Write the data of every matching file entry to out, in table order.

    A closed downstream pipe stops the output quietly and is flagged in the
    result so the caller can detach its stdout.
    """
    result = PipeResult()
    try:
        for entry in iterate_entries(handle, lowercase=lowercase, pattern=pattern):
            if not entry.is_file:
                continue
            for chunk in stream_entry(handle, entry, chunk_size):
                out.write(chunk)
                result.written += len(chunk)
        out.flush()
    except BrokenPipeError:
        result.broken_pipe = True
    return result
