"""
Async read-only access to the files of a VP archive by logical path.

The table is loaded once with aiofiles; file data is read on demand.
All reads go through one task at a time; this is a convenience for async
callers, not a concurrent reader.
"""

import io
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import aiofiles

from vptools.codec import HEADER_SIZE, Header, decode_header, decode_table
from vptools.errors import ArchiveNotFoundError, MalformedArchiveError, NotAFileError
from vptools.reader import LogicalEntry, check_entry_bounds, check_table_bounds, walk_records
from vptools.streamer import CHUNK_SIZE


class VPArchiveFile(io.BytesIO):
    """The data of one archive entry as an in-memory binary file."""

    def __init__(self, entry: LogicalEntry, data: bytes):
        super().__init__(data)
        self.entry = entry

    @property
    def name(self) -> str:
        return self.entry.path

    def __len__(self) -> int:
        return self.entry.size

    def __repr__(self) -> str:
        return f"VPArchiveFile({self.entry.path!r}, size={self.entry.size})"


class VPArchive:
    """
    Async class to read files from a VP archive as if it were a folder.

    Usage:
        archive = VPArchive('missions.vp')
        await archive.init()

        async with archive.open('data/missions/sm1-01.fs2') as f:
            for line in f:
                print(line)

        async for chunk in archive.iter_chunks('data/movies/intro.mve'):
            out.write(chunk)
    """

    def __init__(self, archive_path: str, lowercase: bool = False):
        self._path = archive_path
        self._lowercase = lowercase
        self.header: Optional[Header] = None
        self._entries: Dict[str, LogicalEntry] = {}  # file path -> entry
        self._folders: Dict[str, List[str]] = {}  # folder path -> file names
        self._initialized = False

    @property
    def path(self) -> str:
        return self._path

    async def init(self) -> None:
        """Read the header and entry table. Must be called before anything else."""
        if self._initialized:
            return

        if not os.path.exists(self._path):
            raise ArchiveNotFoundError(f"{self._path} does not exist")
        if not os.path.isfile(self._path):
            raise NotAFileError(f"{self._path} is not a file")

        async with aiofiles.open(self._path, 'rb') as f:
            header = decode_header(await f.read(HEADER_SIZE))
            check_table_bounds(header, os.path.getsize(self._path))
            await f.seek(header.table_offset)
            table = await f.read(header.table_size)

        for entry in walk_records(decode_table(table, header.entry_count), lowercase=self._lowercase):
            if entry.is_dir:
                self._folders.setdefault(entry.path, [])
            else:
                self._entries[entry.path] = entry
                folder = entry.path.rsplit('/', 1)[0]
                self._folders.setdefault(folder, []).append(entry.name)

        self.header = header
        self._initialized = True

    def _check_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Archive not initialized. Call init() first.")

    def _key(self, path: str) -> str:
        return path.lower() if self._lowercase else path

    def list_folders(self) -> List[str]:
        """List all folders in the archive, in table order."""
        self._check_initialized()
        return list(self._folders.keys())

    def list_files(self, folder: Optional[str] = None) -> List[str]:
        """
        List files in the archive.

        Args:
            folder: If provided, list file names in this folder only.
                    If None, list all files with full paths.
        """
        self._check_initialized()
        if folder is not None:
            return list(self._folders.get(self._key(folder), []))
        return list(self._entries.keys())

    def exists(self, path: str) -> bool:
        self._check_initialized()
        return self._key(path) in self._entries

    def entry(self, path: str) -> LogicalEntry:
        self._check_initialized()
        try:
            return self._entries[self._key(path)]
        except KeyError:
            raise FileNotFoundError(f"File not found in archive: {path}") from None

    async def iter_chunks(self, path: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the data of a file in chunks of at most chunk_size bytes."""
        entry = self.entry(path)
        check_entry_bounds(self.header, entry)
        async with aiofiles.open(self._path, 'rb') as f:
            done = 0
            while done < entry.size:
                await f.seek(entry.offset + done)
                chunk = await f.read(min(chunk_size, entry.size - done))
                if not chunk:
                    raise MalformedArchiveError(
                        f"{entry.path}: data ends after {done} of {entry.size} bytes")
                done += len(chunk)
                yield chunk

    @asynccontextmanager
    async def open(self, path: str):
        """
        Open a file from the archive.

        Yields:
            VPArchiveFile holding the file data, closed again on exit.

        Raises:
            FileNotFoundError: If the file doesn't exist in the archive.
            MalformedArchiveError: If the entry's data is out of bounds.
        """
        entry = self.entry(path)
        chunks = [chunk async for chunk in self.iter_chunks(path)]
        with VPArchiveFile(entry, b''.join(chunks)) as f:
            yield f

    async def read_file(self, path: str) -> bytes:
        """Read and return the entire file content."""
        async with self.open(path) as f:
            return f.getvalue()
