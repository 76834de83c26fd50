# Copyright Red Hat
#
# tests/sift/test_entry.py - FileEntry tests.
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest

from fsift import SiftParseError
from fsift.sift.columns import Column
from fsift.sift.entry import (
    FileEntry,
    compare_entries,
    mode_str_to_file_type,
    path_base,
    path_dir,
    path_ext,
    sort_entries,
)

from ._util import make_entry


class TestPathHelpers(unittest.TestCase):
    def test_path_base(self):
        self.assertEqual(path_base("a/b/c.txt"), "c.txt")
        self.assertEqual(path_base("a/b/"), "b")
        self.assertEqual(path_base("c"), "c")
        self.assertEqual(path_base(""), ".")
        self.assertEqual(path_base("///"), "/")

    def test_path_dir(self):
        self.assertEqual(path_dir("a/b/c"), "a/b")
        self.assertEqual(path_dir("c"), ".")
        self.assertEqual(path_dir("a/b/"), "a/b")
        self.assertEqual(path_dir("/c"), "/")
        self.assertEqual(path_dir("./a/../b/c"), "b")

    def test_path_ext(self):
        self.assertEqual(path_ext("a/b.tar.gz"), ".gz")
        self.assertEqual(path_ext("a.d/file"), "")
        self.assertEqual(path_ext("file"), "")
        self.assertEqual(path_ext(".bashrc"), ".bashrc")

    def test_mode_str_to_file_type(self):
        self.assertEqual(mode_str_to_file_type("-rw-r--r--"), "f")
        self.assertEqual(mode_str_to_file_type("drwxr-xr-x"), "d")
        self.assertEqual(mode_str_to_file_type("Lrwxrwxrwx"), "L")
        self.assertEqual(mode_str_to_file_type("Dcrw-rw-rw-"), "c")
        self.assertEqual(mode_str_to_file_type("Drw-rw----"), "b")
        self.assertEqual(mode_str_to_file_type("prw-r--r--"), "p")
        self.assertEqual(mode_str_to_file_type("Srwxr-xr-x"), "S")


class TestFileEntry(unittest.TestCase):
    def test_absent_values(self):
        entry = FileEntry()
        self.assertEqual(entry.get_string(Column.PATH), ("", False))
        self.assertEqual(entry.get_numeric(Column.SIZE), (0, False))
        self.assertFalse(entry.bool_or_false(Column.MATCHED))
        self.assertEqual(entry.numeric_or_zero(Column.SIZE), 0)

    def test_derived_from_path(self):
        entry = make_entry(path="a/b/c.txt")
        self.assertEqual(entry.get_string(Column.BASE), ("c.txt", True))
        self.assertEqual(entry.get_string(Column.DIR), ("a/b", True))
        self.assertEqual(entry.get_string(Column.EXT), (".txt", True))
        self.assertEqual(entry.get_numeric(Column.DEPTH), (2, True))

    def test_derived_values_are_stored(self):
        entry = make_entry(path="a/b/c.txt")
        self.assertFalse(entry.has(Column.BASE))
        entry.get_string(Column.BASE)
        self.assertTrue(entry.has(Column.BASE))

    def test_ext_from_base(self):
        entry = make_entry(base="archive.zip")
        self.assertEqual(entry.get_string(Column.EXT), (".zip", True))

    def test_filetype_from_modestr(self):
        entry = make_entry(modestr="drwxr-xr-x")
        self.assertEqual(entry.get_string(Column.FILETYPE), ("d", True))

    def test_mtime_mstamp(self):
        entry = make_entry(mstamp=0)
        self.assertEqual(entry.get_string(Column.MTIME), ("1970-01-01T00:00:00Z", True))
        entry = make_entry(mtime="2021-01-01T00:00:00Z")
        self.assertEqual(entry.get_numeric(Column.MSTAMP), (1609459200, True))
        entry = make_entry(mtime="1970-01-01T01:00:00+01:00")
        self.assertEqual(entry.get_numeric(Column.MSTAMP), (0, True))

    def test_bad_mtime_not_derived(self):
        entry = make_entry(mtime="bad")
        self.assertEqual(entry.get_numeric(Column.MSTAMP), (0, False))

    def test_membership(self):
        entry = make_entry(side=True, matched=0)
        self.assertEqual(entry.get_string(Column.MEMBERSHIP), (">!", True))
        entry.set_bool(Column.MATCHED, True)
        self.assertEqual(entry.get_string(Column.MEMBERSHIP), (">=", True))
        self.assertFalse(entry.has(Column.MEMBERSHIP))
        entry = make_entry(side=False, matched=1)
        self.assertEqual(entry.get_string(Column.MEMBERSHIP), ("<=", True))
        entry.set_bool(Column.MATCHED, False)
        self.assertEqual(entry.get_string(Column.MEMBERSHIP), ("<!", True))

    def test_membership_needs_side_and_matched(self):
        entry = make_entry(side=True)
        self.assertEqual(entry.get_string(Column.MEMBERSHIP), ("", False))

    def test_type_errors(self):
        entry = make_entry(path="a", size=1)
        with self.assertRaises(TypeError):
            entry.get_string(Column.SIZE)
        with self.assertRaises(TypeError):
            entry.get_numeric(Column.PATH)
        with self.assertRaises(TypeError):
            entry.set_numeric(Column.PATH, 1)
        with self.assertRaises(TypeError):
            entry.set_string(Column.SIZE, "1")
        with self.assertRaises(TypeError):
            entry.set_numeric(Column.SIZE, "1")

    def test_set_numeric_range(self):
        entry = FileEntry()
        entry.set_numeric(Column.SIZE, 2**63 - 1)
        with self.assertRaises(OverflowError):
            entry.set_numeric(Column.SIZE, 2**63)

    def test_set_bool(self):
        entry = FileEntry()
        entry.set_bool(Column.SIDE, True)
        self.assertEqual(entry.get_numeric(Column.SIDE), (1, True))
        self.assertEqual(entry.get_bool(Column.SIDE), (True, True))

    def test_parse_and_set(self):
        entry = FileEntry()
        entry.parse_and_set(Column.PATH, "foo")
        entry.parse_and_set(Column.SIZE, "1,024")
        self.assertEqual(entry.get_string(Column.PATH), ("foo", True))
        self.assertEqual(entry.get_numeric(Column.SIZE), (1024, True))

    def test_parse_and_set_bad_number(self):
        entry = FileEntry()
        with self.assertRaises(SiftParseError):
            entry.parse_and_set(Column.SIZE, "xx")
        self.assertFalse(entry.has(Column.SIZE))

    def test_parse_and_set_ignores_dynamic(self):
        entry = FileEntry()
        entry.parse_and_set(Column.MATCHED, "1")
        self.assertFalse(entry.has(Column.MATCHED))

    def test_to_dict(self):
        entry = make_entry(path="x", size=3)
        self.assertEqual(
            entry.to_dict([Column.PATH, Column.SIZE, Column.USER]),
            {"path": "x", "size": 3, "user": None},
        )

    def test_equality(self):
        self.assertEqual(make_entry(path="x", size=3), make_entry(path="x", size=3))
        self.assertNotEqual(make_entry(path="x", size=3), make_entry(path="x"))


class TestCompareEntries(unittest.TestCase):
    def test_compare(self):
        a = make_entry(path="a", size=1)
        b = make_entry(path="b", size=2)
        self.assertEqual(compare_entries(a, b, [Column.SIZE]), (-1, True))
        self.assertEqual(compare_entries(b, a, [Column.SIZE]), (1, True))
        self.assertEqual(compare_entries(a, a, [Column.SIZE, Column.PATH]), (0, True))

    def test_compare_precedence(self):
        a = make_entry(path="b", size=1)
        b = make_entry(path="a", size=1)
        self.assertEqual(compare_entries(a, b, [Column.SIZE, Column.PATH]), (1, True))

    def test_compare_inverse(self):
        a = make_entry(size=1)
        b = make_entry(size=2)
        self.assertEqual(
            compare_entries(a, b, [Column.SIZE], inverse=[Column.SIZE]), (1, True)
        )

    def test_compare_nulls(self):
        a = make_entry(path="a")
        b = make_entry(path="a", size=2)
        self.assertEqual(compare_entries(a, b, [Column.SIZE]), (-1, False))
        self.assertEqual(compare_entries(b, a, [Column.SIZE]), (1, False))
        self.assertEqual(compare_entries(a, a, [Column.USER]), (0, False))

    def test_sort_entries_stable(self):
        entries = [
            make_entry(path="c", size=2),
            make_entry(path="a", size=1),
            make_entry(path="b", size=2),
        ]
        got = sort_entries(entries, [Column.SIZE])
        self.assertEqual([e.get_string(Column.PATH)[0] for e in got], ["a", "c", "b"])
        # Input is not reordered
        self.assertEqual(entries[0].get_string(Column.PATH)[0], "c")

    def test_sort_entries_inverse(self):
        entries = [make_entry(size=1), make_entry(size=3), make_entry(size=2)]
        got = sort_entries(entries, [Column.SIZE], inverse=[Column.SIZE])
        self.assertEqual([e.numeric_or_zero(Column.SIZE) for e in got], [3, 2, 1])

    def test_sort_entries_null_callback(self):
        results = []
        entries = [make_entry(size=1), make_entry(), make_entry(size=2)]
        got = sort_entries(entries, [Column.SIZE], null_callback=results.append)
        self.assertFalse(got[0].has(Column.SIZE))
        self.assertIn(False, results)
