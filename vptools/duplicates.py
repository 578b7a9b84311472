"""
Find files that override or shadow each other across a set of VP archives.

Archives are given in load order: an engine loading them in that order uses
the first copy of a file it finds and ignores later ones.

Files are matched on (path type, file name), where the path type is the
first two directory levels under "data" (three for a few voice/ and players/
subdirectories). Within a match:
- the same logical path in a later archive is an override
- a different logical path is a shadow, which may hide content by accident

Checksum mode instead reports files with the same name, size and CRC32 as
identical, wherever they live.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from vptools.errors import ArchiveNotFoundError, SourceNotDirectoryError
from vptools.reader import LogicalEntry, open_archive
from vptools.streamer import entry_crc32

VP_EXTENSION = '.vp'
ROOT_NAME = 'data'

# Second and third path segments under data/ that form their own path type
PATH_TYPE_PREFIXES = frozenset({
    ('voice', 'briefing'),
    ('voice', 'command_briefings'),
    ('voice', 'debriefing'),
    ('voice', 'personas'),
    ('voice', 'special'),
    ('voice', 'training'),
    ('players', 'images'),
    ('players', 'squads'),
    ('players', 'single'),
    ('players', 'multi'),
    ('players', 'presets'),
})

MatchKey = Tuple[str, str]  # (path type, file name)


def path_type(path: str) -> str:
    """
    Classify a directory path.

    >>> path_type('data/maps/old')
    'data/maps'
    >>> path_type('data/voice/briefing/mission1')
    'data/voice/briefing'
    """
    parts = path.split('/')
    if parts[0] != ROOT_NAME:
        return ''
    if len(parts) == 1:
        return ROOT_NAME
    if len(parts) >= 3 and (parts[1], parts[2]) in PATH_TYPE_PREFIXES:
        return '/'.join(parts[:3])
    return '/'.join(parts[:2])


def entry_dir(path: str) -> str:
    return path.rsplit('/', 1)[0] if '/' in path else ''


@dataclass
class Occurrence:
    """A file of one archive, as seen during the scan."""
    container: str
    path: str
    name: str
    size: int
    seq: int
    entry: LogicalEntry
    crc: Optional[int] = None


@dataclass
class Override:
    container: str
    path: str
    overridden: List[str]

    def to_line(self) -> str:
        return f"override {self.container}::{self.path}::{':'.join(self.overridden)}"


@dataclass
class Shadow:
    container: str
    path: str
    shadow_path: str
    containers: List[str]

    def to_line(self) -> str:
        return f"shadow {self.container}::{self.path}::{self.shadow_path}::{':'.join(self.containers)}"


@dataclass
class Identical:
    path: str
    members: List[Tuple[str, str]]  # (container, path)

    @property
    def containers(self) -> List[str]:
        return [container for container, _ in self.members]

    def to_line(self) -> str:
        rendered = [container if p == self.path else f"{container}:{p}" for container, p in self.members]
        return f"identical {self.path}::{', '.join(rendered)}"


@dataclass
class DuplicateIndex:
    """Cross-archive index built once per run."""
    order: List[str] = field(default_factory=list)
    sources: Dict[str, str] = field(default_factory=dict)  # label -> archive path
    keys: Dict[MatchKey, List[Occurrence]] = field(default_factory=dict)
    first_seen: Dict[str, int] = field(default_factory=dict)  # logical path -> seq
    scanned: int = 0

    def add(self, container: str, entry: LogicalEntry) -> None:
        ptype = path_type(entry_dir(entry.path))
        if not ptype:
            return
        seq = self.scanned
        self.scanned += 1
        occurrence = Occurrence(container=container, path=entry.path, name=entry.name,
                                size=entry.size, seq=seq, entry=entry)
        self.keys.setdefault((ptype, entry.name), []).append(occurrence)
        self.first_seen.setdefault(entry.path, seq)


def _unique(items: Iterable[str]) -> List[str]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def discover_containers(search_dir: str) -> List[str]:
    """Return the .vp files of search_dir, sorted by name."""
    if not os.path.exists(search_dir):
        raise ArchiveNotFoundError(f"{search_dir} does not exist")
    if not os.path.isdir(search_dir):
        raise SourceNotDirectoryError(f"{search_dir} is not a directory")

    names = sorted(n for n in os.listdir(search_dir)
                   if n.lower().endswith(VP_EXTENSION) and os.path.isfile(os.path.join(search_dir, n)))
    return [os.path.join(search_dir, n) for n in names]


def container_label(path: str, base_dir: Optional[str]) -> str:
    if base_dir is None:
        return path
    return os.path.relpath(path, base_dir)


def scan_containers(containers: Sequence[str], base_dir: Optional[str] = None,
                    lowercase: bool = True) -> DuplicateIndex:
    """Read every archive's file entries, in load order, into a DuplicateIndex."""
    index = DuplicateIndex()
    for source in containers:
        label = container_label(source, base_dir)
        index.order.append(label)
        index.sources[label] = source
        with open_archive(source) as vp:
            for entry in vp.entries(lowercase=lowercase):
                if entry.is_file:
                    index.add(label, entry)
    return index


def candidates(index: DuplicateIndex, ignore: Iterable[str] = ()) -> List[List[Occurrence]]:
    """
    Occurrence lists whose key appears in more than one archive.

    A key found only in ignored archives is dropped.
    """
    ignore = set(ignore)
    found = []
    for occurrences in index.keys.values():
        containers = _unique(o.container for o in occurrences)
        if len(containers) < 2:
            continue
        if all(c in ignore for c in containers):
            continue
        found.append(occurrences)
    return found


def resolve_load_order(index: DuplicateIndex, ignore: Iterable[str] = ()) -> List[object]:
    """Build Override and Shadow records, ordered by first appearance of their path."""
    results: List[Tuple[int, object]] = []

    for occurrences in candidates(index, ignore):
        first = occurrences[0]
        groups: Dict[str, List[str]] = {}  # logical path -> containers
        for o in occurrences:
            members = groups.setdefault(o.path, [])
            if o.container not in members:
                members.append(o.container)

        overridden = [c for c in groups[first.path] if c != first.container]
        if overridden:
            results.append((index.first_seen[first.path],
                            Override(first.container, first.path, overridden)))

        for path, members in groups.items():
            if path == first.path:
                continue
            results.append((index.first_seen[path],
                            Shadow(first.container, first.path, path, members)))

    results.sort(key=lambda item: item[0])
    return [record for _, record in results]


def _compute_checksums(index: DuplicateIndex, pending: List[Occurrence]) -> None:
    by_container: Dict[str, List[Occurrence]] = {}
    for o in pending:
        by_container.setdefault(o.container, []).append(o)

    for label in index.order:
        occurrences = by_container.get(label)
        if not occurrences:
            continue
        with open_archive(index.sources[label]) as vp:
            for o in occurrences:
                o.crc = entry_crc32(vp, o.entry)


def resolve_checksums(index: DuplicateIndex, ignore: Iterable[str] = ()) -> List[Identical]:
    """Build Identical records from same-name, same-size, same-CRC32 files."""
    pending: List[Occurrence] = []
    for occurrences in candidates(index, ignore):
        by_size: Dict[int, List[Occurrence]] = {}
        for o in occurrences:
            by_size.setdefault(o.size, []).append(o)
        for same_size in by_size.values():
            if len(same_size) > 1:
                pending.extend(same_size)

    _compute_checksums(index, pending)

    groups: Dict[Tuple[str, int], List[Occurrence]] = {}
    for o in sorted(pending, key=lambda o: o.seq):
        groups.setdefault((o.name, o.crc), []).append(o)

    results = []
    for members in groups.values():
        if len(members) < 2:
            continue
        first = members[0]
        results.append(Identical(first.path, [(o.container, o.path) for o in members]))
    return results


def find_duplicates(containers: Sequence[str], ignore: Iterable[str] = (), checksum: bool = False,
                    base_dir: Optional[str] = None, lowercase: bool = True) -> List[object]:
    """
    Compare archives given in load order.

    Args:
        containers: Archive paths, highest priority first
        ignore: Archive labels whose duplicates alone are not worth reporting
        checksum: Report identical content instead of overrides and shadows
        base_dir: Archives are labelled relative to this directory when given
        lowercase: Compare names case-insensitively

    Returns:
        Override and Shadow records, or Identical records in checksum mode.
    """
    index = scan_containers(containers, base_dir=base_dir, lowercase=lowercase)
    if checksum:
        return resolve_checksums(index, ignore)
    return resolve_load_order(index, ignore)


def find_duplicates_in_dir(search_dir: str, ignore: Iterable[str] = (), checksum: bool = False,
                           lowercase: bool = True) -> List[object]:
    """Compare the .vp files of a directory, loaded in name order."""
    containers = discover_containers(search_dir)
    return find_duplicates(containers, ignore=ignore, checksum=checksum,
                           base_dir=search_dir, lowercase=lowercase)
