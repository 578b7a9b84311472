import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

import vp
from fixtures import make_sample_tree, make_sample_vp, make_vp


def run(*argv):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        status = vp.main(list(argv))
    return status, out.getvalue(), err.getvalue()


class TestCLI(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = self.tmp.name

    def tearDown(self):
        self.tmp.cleanup()

    def test_list(self):
        status, out, _ = run('list', make_sample_vp(self.dir))
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), [
            'data/', 'data/emptydir/', 'data/testdir/',
            'data/testdir/a.txt', 'data/testdir/b.txt', 'data/testdir/c.txt', 'data/testfile',
        ])

    def test_list_very_verbose_totals(self):
        vp_path = make_sample_vp(self.dir)
        status, out, _ = run('list', '-V', vp_path)
        lines = out.splitlines()
        self.assertEqual(lines[0], f"Archive: {vp_path}")
        self.assertTrue(lines[-1].startswith(f"{16:>10}  "))
        self.assertTrue(lines[-1].endswith('7 files'))
        self.assertIn('data/testdir/a.txt', lines[6])
        self.assertTrue(lines[6].startswith(f"{2:>10}  {16:>10}  "))

    def test_list_very_verbose_columns(self):
        _, out, _ = run('list', '-V', make_sample_vp(self.dir))
        lines = out.splitlines()
        self.assertEqual(lines[1], "   Size       Offset       Date       Time    Path")
        self.assertEqual(lines[-2], f"{'-' * 10}{' ' * 36}{'-' * 35}")
        self.assertEqual(lines[-1], f"        16{' ' * 36}7 files")

    def test_create_very_verbose_columns(self):
        src = make_sample_tree(self.dir)
        _, out, _ = run('create', src, os.path.join(self.dir, 'out.vp'), '--noop', '-V')
        lines = out.splitlines()
        rule = f"{'-' * 8}  {'-' * 10}  {'-' * 10}  {'-' * 10}  {'-' * 8}  {'-' * 35}"
        self.assertEqual(lines[0], " Action      Size       Offset       Date       Time    Path")
        self.assertEqual(lines[1], rule)
        self.assertEqual(lines[-2], rule)
        self.assertEqual(lines[-1], f"{' ' * 18}16{' ' * 36}7 files")

    def test_bad_regex(self):
        status, out, err = run('list', make_sample_vp(self.dir), '-r', '(')
        self.assertEqual(status, 1)
        self.assertEqual(out, '')
        self.assertTrue(err.startswith('Error: '))

    def test_cat(self):
        vp_path = make_sample_vp(self.dir)
        out = io.TextIOWrapper(io.BytesIO())
        with redirect_stdout(out):
            status = vp.main(['cat', vp_path, 'data/testdir/b.txt'])
        self.assertEqual(status, 0)
        self.assertEqual(out.buffer.getvalue(), b'b\n')

    def test_cat_missing_path(self):
        status, out, err = run('cat', make_sample_vp(self.dir), 'data/nope.txt')
        self.assertEqual(status, 1)
        self.assertEqual(err.strip(), "Error: File not found in archive: data/nope.txt")

    def test_extract_noop(self):
        vp_path = make_sample_vp(self.dir)
        root = os.path.join(self.dir, 'out')
        status, out, _ = run('extract', vp_path, '-C', root, '--noop')
        self.assertEqual(status, 0)
        self.assertEqual(out, (
            "    create    data/\n"
            "    create    data/emptydir/\n"
            "    create    data/testdir/\n"
            "   extract    data/testdir/a.txt\n"
            "   extract    data/testdir/b.txt\n"
            "   extract    data/testdir/c.txt\n"
            "   extract    data/testfile\n"
        ))
        self.assertFalse(os.path.exists(root))

    def test_extract_conflict(self):
        vp_path = make_sample_vp(self.dir)
        root = os.path.join(self.dir, 'out')
        os.makedirs(os.path.join(root, 'data', 'testfile'))
        status, out, _ = run('extract', vp_path, '-C', root, '-r', 'testfile')
        self.assertEqual(status, 1)
        target = os.path.join(root, 'data', 'testfile')
        self.assertEqual(out, (
            f"     error    {target}/ exists but is not a file\n"
            f"              -> skipping data/testfile\n"
        ))

    def test_create_verbose_noop(self):
        src = make_sample_tree(self.dir)
        status, out, _ = run('create', src, os.path.join(self.dir, 'out.vp'), '--noop', '-v')
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), [
            'archive   data/',
            'archive   data/emptydir/',
            'skip      data/emptyfile',
            'archive   data/testdir/',
            'archive   data/testdir/a.txt',
            'archive   data/testdir/b.txt',
            'archive   data/testdir/c.txt',
            'archive   data/testfile',
        ])
        self.assertFalse(os.path.exists(os.path.join(self.dir, 'out.vp')))

    def test_create(self):
        src = make_sample_tree(self.dir)
        dest = os.path.join(self.dir, 'out.vp')
        status, out, _ = run('create', src, dest)
        self.assertEqual(status, 0)
        self.assertTrue(os.path.isfile(dest))
        self.assertIn('skipped 1 empty file(s)', out)

    def test_dups(self):
        vps = os.path.join(self.dir, 'vps')
        os.makedirs(vps)
        make_vp(vps, 'vp0.vp', {'a.txt': b'a'})
        make_vp(vps, 'vp1.vp', {'a.txt': b'a'})
        _, out, _ = run('dups', '-d', vps)
        self.assertEqual(out, 'override vp0.vp::data/a.txt::vp1.vp\n')
        _, out, _ = run('dups', '-d', vps, '--checksum')
        self.assertEqual(out, 'identical data/a.txt::vp0.vp, vp1.vp\n')
        _, out, _ = run('dups', '-d', vps, '-i', 'vp0.vp', '-i', 'vp1.vp')
        self.assertEqual(out, '')

    def test_error_message(self):
        status, out, err = run('list', os.path.join(self.dir, 'missing.vp'))
        self.assertEqual(status, 1)
        self.assertEqual(out, '')
        self.assertEqual(err.strip(), f"Error: {os.path.join(self.dir, 'missing.vp')} does not exist")

    def test_debug_reraises(self):
        with self.assertRaises(FileNotFoundError):
            run('--debug', 'list', os.path.join(self.dir, 'missing.vp'))


if __name__ == '__main__':
    unittest.main()
