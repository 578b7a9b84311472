#!/usr/bin/env python3
"""
Command line front end for VP archives.

Usage:
  python vp.py list <archive> [-r REGEX] [-l] [-v | -V]
  python vp.py extract <archive> [-C ROOT] [-r REGEX] [-l] [-n] [-f]
  python vp.py pipe <archive> [-r REGEX] [-l]
  python vp.py cat <archive> <path> [-l]
  python vp.py create <data_dir> <archive> [-n] [-v | -V]
  python vp.py dups [-d DIR] [-i VP ...] [-c] [archive ...]
"""

import argparse
import asyncio
import os
import re
import sys
import time
from typing import List, Optional

from vptools.archive import VPArchive
from vptools.duplicates import find_duplicates, find_duplicates_in_dir
from vptools.errors import VPError
from vptools.extract import ACTION_ERROR, extract_archive
from vptools.reader import open_archive
from vptools.streamer import pipe_entries
from vptools.writer import ACTION_SKIP, KIND_DIR_END, create_archive

RULE_PATH = '-' * 35


def _display_path(entry) -> str:
    return f"{entry.path}/" if entry.is_dir else entry.path


def _format_time(timestamp: int):
    """Return (date, time) strings, blank for a zero timestamp."""
    if not timestamp:
        return '', ''
    t = time.localtime(timestamp)
    return time.strftime('%Y-%m-%d', t), time.strftime('%H:%M:%S', t)


def _detail_row(size, offset, timestamp: int, path: str) -> str:
    date, clock = _format_time(timestamp)
    return f"{size:>10}  {offset:>10}  {date:>10}  {clock:>8}  {path}"


def cmd_list(args: argparse.Namespace) -> int:
    with open_archive(args.archive) as vp:
        entries = vp.entries(lowercase=args.lowercase, pattern=args.regex)

        if not (args.verbose or args.very_verbose):
            for entry in entries:
                print(_display_path(entry))
            return 0

        if args.very_verbose:
            print(f"Archive: {args.archive}")
            print(f"{'Size':>7}{'Offset':>13}{'Date':>11}{'Time':>11}    Path")
            print(f"{'-' * 10}  {'-' * 10}  {'-' * 10}  {'-' * 8}  {RULE_PATH}")

        total = 0
        count = 0
        for entry in entries:
            count += 1
            if entry.is_dir:
                print(_detail_row('', '', 0, _display_path(entry)))
                continue
            total += entry.size
            offset = entry.offset if args.very_verbose else ''
            print(_detail_row(entry.size, offset, entry.timestamp, entry.path))

        if args.very_verbose:
            print(f"{'-' * 10}  {' ' * 32}  {RULE_PATH}")
            print(f"{total:>10}  {' ' * 32}  {count} files")
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    status = 0
    with open_archive(args.archive) as vp:
        for result in extract_archive(vp, root=args.root, pattern=args.regex, lowercase=args.lowercase,
                                      noop=args.noop, overwrite=args.overwrite):
            path = _display_path(result.entry)
            if result.action == ACTION_ERROR:
                status = 1
                print(f"{'error':>10}    {result.error}")
                print(f"{'':>10}    -> skipping {path}")
            else:
                print(f"{result.action:>10}    {path}")
    return status


def cmd_pipe(args: argparse.Namespace) -> int:
    with open_archive(args.archive) as vp:
        sys.stdout.flush()
        result = pipe_entries(vp, sys.stdout.buffer, pattern=args.regex, lowercase=args.lowercase)

    if result.broken_pipe:
        # Python flushes stdout again at exit; point it at devnull so that
        # flush doesn't complain about the closed pipe.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    return 0


async def _cat(archive_path: str, path: str, lowercase: bool) -> None:
    archive = VPArchive(archive_path, lowercase=lowercase)
    await archive.init()
    async for chunk in archive.iter_chunks(path):
        sys.stdout.buffer.write(chunk)
    sys.stdout.buffer.flush()


def cmd_cat(args: argparse.Namespace) -> int:
    sys.stdout.flush()
    asyncio.run(_cat(args.archive, args.path, args.lowercase))
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    plan = create_archive(args.source, args.archive, noop=args.noop)
    shown = [e for e in plan.entries if e.kind != KIND_DIR_END]

    if args.very_verbose:
        print(f" Action{'Size':>10}{'Offset':>13}{'Date':>11}{'Time':>11}    Path")
        rule = f"{'-' * 8}  {'-' * 10}  {'-' * 10}  {'-' * 10}  {'-' * 8}  {RULE_PATH}"
        print(rule)
        for entry in shown:
            path = _display_path(entry)
            if entry.is_dir:
                print(f"{entry.action:<8}  {_detail_row('', '', 0, path)}")
            else:
                print(f"{entry.action:<8}  {_detail_row(entry.size, entry.offset, entry.timestamp, path)}")
        print(rule)
        archived = sum(1 for e in shown if e.archived)
        print(f"{'':<8}  {plan.data_size:>10}  {' ' * 32}  {archived} files")
    elif args.verbose:
        for entry in shown:
            print(f"{entry.action:<8}  {_display_path(entry)}")

    if not args.noop:
        skipped = sum(1 for e in shown if e.action == ACTION_SKIP)
        print(f"Archived {plan.entry_count} entries to {args.archive} ({plan.total_size} bytes)"
              + (f", skipped {skipped} empty file(s)" if skipped else ''))
    return 0


def cmd_dups(args: argparse.Namespace) -> int:
    if args.archives:
        results = find_duplicates(args.archives, ignore=args.ignore, checksum=args.checksum,
                                  lowercase=not args.case_sensitive)
    else:
        results = find_duplicates_in_dir(args.dir, ignore=args.ignore, checksum=args.checksum,
                                         lowercase=not args.case_sensitive)
    for record in results:
        print(record.to_line())
    return 0


def build_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='vp', description="Read, write and compare VP archives")
    parser.add_argument('--debug', action='store_true', help="Show a traceback on errors")
    sub = parser.add_subparsers(dest='command', required=True)

    def add_filters(p):
        p.add_argument('archive', help="VP archive")
        p.add_argument('-r', '--regex', default=None, help="Only entries whose path matches REGEX")
        p.add_argument('-l', '--lowercase', action='store_true', help="Lowercase entry names")

    p = sub.add_parser('list', help="List archive contents")
    add_filters(p)
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true', help="Show sizes and dates")
    verbosity.add_argument('-V', '--very-verbose', action='store_true', help="Also show offsets and totals")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser('extract', help="Extract archive contents")
    add_filters(p)
    p.add_argument('-C', '--root', default='.', help="Directory to extract into (default: .)")
    p.add_argument('-n', '--noop', action='store_true', help="Report what would happen, write nothing")
    p.add_argument('-f', '--overwrite', action='store_true', help="Overwrite existing files")
    p.set_defaults(func=cmd_extract)

    p = sub.add_parser('pipe', help="Write matching files to stdout")
    add_filters(p)
    p.set_defaults(func=cmd_pipe)

    p = sub.add_parser('cat', help="Write one file, looked up by path, to stdout")
    p.add_argument('archive', help="VP archive")
    p.add_argument('path', help="Logical path, e.g. data/tables/ships.tbl")
    p.add_argument('-l', '--lowercase', action='store_true', help="Look the path up case-insensitively")
    p.set_defaults(func=cmd_cat)

    p = sub.add_parser('create', help="Create an archive from a directory named 'data'")
    p.add_argument('source', help="Directory to archive (must be named 'data')")
    p.add_argument('archive', help="Archive to create")
    p.add_argument('-n', '--noop', action='store_true', help="Validate and report, write nothing")
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true', help="Show each entry")
    verbosity.add_argument('-V', '--very-verbose', action='store_true', help="Show each entry with details")
    p.set_defaults(func=cmd_create)

    p = sub.add_parser('dups', help="Find overriding and shadowed files across archives")
    p.add_argument('archives', nargs='*', help="Archives in load order (default: *.vp in --dir)")
    p.add_argument('-d', '--dir', default='.', help="Directory to search for .vp files (default: .)")
    p.add_argument('-i', '--ignore', action='append', default=[], metavar='VP',
                   help="Don't report duplicates found only in these archives (repeatable)")
    p.add_argument('-c', '--checksum', action='store_true', help="Report identical content by CRC32")
    p.add_argument('--case-sensitive', action='store_true', help="Compare names case-sensitively")
    p.set_defaults(func=cmd_dups)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)
    try:
        return args.func(args)
    except (VPError, OSError, re.error) as e:
        if args.debug:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
