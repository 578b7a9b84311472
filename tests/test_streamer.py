import io
import os
import tempfile
import unittest
import zlib

from fixtures import make_sample_vp, write_raw_vp
from vptools.errors import MalformedArchiveError, NotAFileError
from vptools.reader import open_archive
from vptools.streamer import entry_crc32, pipe_entries, read_entry, stream_entry


class BrokenPipe(io.RawIOBase):
    def writable(self):
        return True

    def write(self, b):
        raise BrokenPipeError(32, 'Broken pipe')


class TestStreamEntry(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.vp = open_archive(make_sample_vp(self.tmp.name))
        self.entries = {e.path: e for e in self.vp.entries()}

    def tearDown(self):
        self.vp.close()
        self.tmp.cleanup()

    def test_small_chunks(self):
        chunks = list(stream_entry(self.vp, self.entries['data/testfile'], chunk_size=3))
        self.assertEqual([len(c) for c in chunks], [3, 3, 3, 1])
        self.assertEqual(b''.join(chunks), b'test file\n')

    def test_chunk_larger_than_entry(self):
        # b.txt is followed by c.txt and testfile in the data region
        chunks = list(stream_entry(self.vp, self.entries['data/testdir/b.txt']))
        self.assertEqual(chunks, [b'b\n'])

    def test_never_yields_more_than_size(self):
        for entry in self.entries.values():
            if entry.is_file:
                for chunk_size in (1, 2, 7, 1 << 20):
                    total = sum(len(c) for c in stream_entry(self.vp, entry, chunk_size))
                    self.assertEqual(total, entry.size)

    def test_directory(self):
        with self.assertRaises(NotAFileError):
            list(stream_entry(self.vp, self.entries['data/testdir']))

    def test_interleaved_with_iteration(self):
        contents = [read_entry(self.vp, e) for e in self.vp.entries(pattern=r'\.txt$')]
        self.assertEqual(contents, [b'a\n', b'b\n', b'c\n'])

    def test_crc32(self):
        self.assertEqual(entry_crc32(self.vp, self.entries['data/testfile']), zlib.crc32(b'test file\n'))


class TestTruncatedData(unittest.TestCase):
    def test_data_region_too_short(self):
        with tempfile.TemporaryDirectory() as tmp:
            # 'big' claims 100 bytes but only 4 follow the header
            path = write_raw_vp(os.path.join(tmp, 'trunc.vp'),
                                [(0, 0, 'data', 0), (16, 100, 'big', 1), (0, 0, '..', 0)],
                                data=b'abcd')
            with open_archive(path) as vp:
                entry = [e for e in vp.entries() if e.is_file][0]
                with self.assertRaises(MalformedArchiveError):
                    read_entry(vp, entry)

    def test_entry_does_not_read_table_bytes(self):
        with tempfile.TemporaryDirectory() as tmp:
            # 5 bytes fit in the file, but only because the table follows
            path = write_raw_vp(os.path.join(tmp, 'over.vp'),
                                [(0, 0, 'data', 0), (16, 5, 'over', 1), (0, 0, '..', 0)],
                                data=b'abcd')
            with open_archive(path) as vp:
                entry = [e for e in vp.entries() if e.is_file][0]
                with self.assertRaises(MalformedArchiveError):
                    list(stream_entry(vp, entry))

    def test_entry_inside_header(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = write_raw_vp(os.path.join(tmp, 'hdr.vp'),
                                [(0, 0, 'data', 0), (4, 4, 'hdr', 1), (0, 0, '..', 0)],
                                data=b'abcd')
            with open_archive(path) as vp:
                entry = [e for e in vp.entries() if e.is_file][0]
                with self.assertRaises(MalformedArchiveError):
                    entry_crc32(vp, entry)


class TestPipeEntries(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.vp = open_archive(make_sample_vp(self.tmp.name))

    def tearDown(self):
        self.vp.close()
        self.tmp.cleanup()

    def test_single_file(self):
        out = io.BytesIO()
        result = pipe_entries(self.vp, out, pattern='testfile')
        self.assertEqual(out.getvalue(), b'test file\n')
        self.assertEqual(result.written, 10)
        self.assertFalse(result.broken_pipe)

    def test_multiple_files(self):
        out = io.BytesIO()
        pipe_entries(self.vp, out, pattern=r'\.txt$')
        self.assertEqual(out.getvalue(), b'a\nb\nc\n')

    def test_broken_pipe_is_quiet(self):
        result = pipe_entries(self.vp, BrokenPipe())
        self.assertTrue(result.broken_pipe)
        self.assertEqual(result.written, 0)


if __name__ == '__main__':
    unittest.main()
