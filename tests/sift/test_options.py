# Copyright Red Hat
#
# tests/sift/test_options.py - SiftOptions and ColumnSelector tests.
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from argparse import Namespace

from fsift import SiftColumnError
from fsift.sift.columns import Column
from fsift.sift.options import (
    DEFAULT_KEY_COLUMNS,
    DEFAULT_OUTPUT_COLUMNS,
    ColumnSelector,
    SiftOptions,
)


class TestSiftOptions(unittest.TestCase):
    def test_SiftOptions__str__(self):
        opts = SiftOptions(md5=True, prefilter=("size>0", "base*=*.c"))
        s = str(opts)
        self.assertIn("md5=True", s)
        self.assertIn("prefilter=size>0 base*=*.c", s)

    def test_defaults(self):
        opts = SiftOptions()
        self.assertEqual(opts.out_zone, "UTC")
        self.assertIsNone(opts.output)
        self.assertFalse(opts.has_left)
        self.assertFalse(opts.has_right)
        self.assertEqual(opts.membership_codes, "")

    def test_membership_codes(self):
        self.assertEqual(SiftOptions(membership="lr").membership_codes, "lr")
        self.assertEqual(SiftOptions(membership="lr", diff=True).membership_codes, "LR")

    def test_from_cmd_args(self):
        """Test initialization from argparse Namespace."""
        args = Namespace(
            columns=["+5"],
            md5=True,
            roots_left=["a", "b"],
            roots_right=[],
            out_zone=None,
            verbosity=2,
            unknown_arg="ignored",
        )
        opts = SiftOptions.from_cmd_args(args)

        self.assertEqual(opts.columns, ("+5",))
        self.assertTrue(opts.md5)
        self.assertEqual(opts.roots_left, ("a", "b"))
        self.assertTrue(opts.has_left)
        self.assertFalse(opts.has_right)
        self.assertEqual(opts.verbosity, 2)
        # Unset arguments keep their defaults
        self.assertEqual(opts.out_zone, "UTC")
        self.assertEqual(opts.prefilter, ())
        self.assertFalse(opts.xdev)


class TestColumnSelector(unittest.TestCase):
    def test_defaults(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS)
        self.assertEqual(sel.columns, list(DEFAULT_OUTPUT_COLUMNS))
        self.assertEqual(str(sel), "modestr,size,mtime,path")
        self.assertEqual(
            str(ColumnSelector(DEFAULT_KEY_COLUMNS)), "path,size,mtime,modestr"
        )

    def test_replace(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update("sp")
        self.assertEqual(sel.columns, [Column.SIZE, Column.PATH])

    def test_append(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update("+5")
        self.assertEqual(
            sel.columns,
            [Column.MODESTR, Column.SIZE, Column.MTIME, Column.MD5, Column.PATH],
        )

    def test_append_at_position(self):
        sel = ColumnSelector(DEFAULT_KEY_COLUMNS).update("+md5", 0)
        self.assertEqual(sel.columns[0], Column.MD5)

    def test_append_skips_present(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update("+sp")
        self.assertEqual(sel.columns, list(DEFAULT_OUTPUT_COLUMNS))

    def test_replace_then_append(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update_all(["sp", "+u"])
        self.assertEqual(sel.columns, [Column.SIZE, Column.USER, Column.PATH])

    def test_bare_append_selects_defaults(self):
        sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update("+")
        self.assertEqual(sel.columns, list(DEFAULT_OUTPUT_COLUMNS))

    def test_inverse(self):
        sel = ColumnSelector(allow_inverse=True).update("/sp")
        self.assertEqual(sel.columns, [Column.SIZE, Column.PATH])
        self.assertEqual(sel.inverse, [Column.SIZE])

    def test_inverse_not_allowed(self):
        with self.assertRaises(SiftColumnError) as ctx:
            ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update("/sp")
        self.assertIn("may not contain inverse markers", str(ctx.exception))

    def test_bad_column(self):
        with self.assertRaises(SiftColumnError):
            ColumnSelector().update("w")
