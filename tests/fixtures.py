"""Sample data shared by the test modules."""

import os
from typing import Dict, Iterable, Tuple

from vptools.codec import HEADER_SIZE, MAGIC, VERSION, encode_entry, encode_header
from vptools.writer import create_archive

# data
# ├── emptydir
# ├── emptyfile
# ├── testdir
# │   ├── a.txt
# │   ├── b.txt
# │   └── c.txt
# └── testfile
SAMPLE_FILES = {
    'emptyfile': (b'', 1671306572),
    'testfile': (b'test file\n', 1671306526),
    'testdir/a.txt': (b'a\n', 1671306647),
    'testdir/b.txt': (b'b\n', 1671306650),
    'testdir/c.txt': (b'c\n', 1671306654),
}

SAMPLE_PATHS = [
    'data',
    'data/emptydir',
    'data/testdir',
    'data/testdir/a.txt',
    'data/testdir/b.txt',
    'data/testdir/c.txt',
    'data/testfile',
]


def write_tree(data_dir: str, files: Dict[str, bytes], mtime: int = 1671306000) -> str:
    """Create files (logical path below data/ -> content) under data_dir."""
    os.makedirs(data_dir, exist_ok=True)
    for rel, content in files.items():
        path = os.path.join(data_dir, *rel.split('/'))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(content)
        os.utime(path, (mtime, mtime))
    return data_dir


def make_sample_tree(base: str) -> str:
    """Build the sample tree under base and return the path of its data directory."""
    data_dir = os.path.join(base, 'data')
    os.makedirs(os.path.join(data_dir, 'emptydir'), exist_ok=True)
    for rel, (content, mtime) in SAMPLE_FILES.items():
        write_tree(data_dir, {rel: content}, mtime=mtime)
    return data_dir


def make_sample_vp(base: str, name: str = 'testvp.vp') -> str:
    vp_path = os.path.join(base, name)
    create_archive(make_sample_tree(os.path.join(base, 'src')), vp_path)
    return vp_path


def make_vp(base: str, name: str, files: Dict[str, bytes]) -> str:
    """
    Build an archive holding files, keyed by path relative to data/,
    e.g. {'maps/a.dds': b'...'}.
    """
    src = os.path.join(base, f"{name}.src", 'data')
    write_tree(src, files)
    vp_path = os.path.join(base, name)
    create_archive(src, vp_path)
    return vp_path


Record = Tuple[int, int, str, int]  # offset, size, name, timestamp


def write_raw_vp(path: str, records: Iterable[Record], data: bytes = b'',
                 magic: bytes = MAGIC, version: int = VERSION) -> str:
    """Write a container with a hand-made table, for malformed-input tests."""
    records = list(records)
    table = b''.join(encode_entry(*r) for r in records)
    with open(path, 'wb') as f:
        f.write(encode_header(magic, version, HEADER_SIZE + len(data), len(records)))
        f.write(data)
        f.write(table)
    return path
