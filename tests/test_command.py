# Copyright Red Hat
#
# tests/test_command.py - CLI layer tests
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
from io import StringIO
import tempfile
import logging
import os

log = logging.getLogger()

import fsift
import fsift.command as command
from fsift.sift import SIFTER_FILE_HEADER

from tests import MockArgs
from tests.sift._util import TEST_TREE, make_tree


class CommandTestsBase(unittest.TestCase):
    def get_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``fsift`` command.

        :returns: A list of command arguments.
        """
        return [os.path.join(os.getcwd(), "bin/fsift")]

    def get_debug_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``fsift`` command, with verbose logging and debug enabled.

        :returns: A list of command arguments.
        """
        return self.get_main_args() + ["-vv", "--debug=all"]

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        fsift.set_debug_mask(0)
        fsift_log = logging.getLogger("fsift")
        fsift_log.handlers.clear()
        fsift_log.setLevel(logging.NOTSET)


class CommandTestsSimple(CommandTestsBase):
    """
    Test command interfaces
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def test_split_roots(self):
        self.assertEqual(command.split_roots([]), ([], []))
        self.assertEqual(command.split_roots(["a", "b"]), (["a", "b"], []))
        self.assertEqual(command.split_roots([":", "b"]), ([], ["b"]))
        self.assertEqual(
            command.split_roots(["a", ":", "b", ":", "c"]), (["a"], ["b", "c"])
        )

    def test_set_debug_none(self):
        args = MockArgs()
        command.set_debug(args.debug)
        self.assertEqual(fsift.get_debug_mask(), 0)

    def test_set_debug_single(self):
        from fsift import get_debug_mask, FSIFT_DEBUG_COMMAND

        args = MockArgs()
        args.debug = "command"
        command.set_debug(args.debug)
        self.assertEqual(get_debug_mask(), FSIFT_DEBUG_COMMAND)

    def test_set_debug_list(self):
        from fsift import get_debug_mask, FSIFT_DEBUG_ALL

        args = MockArgs()
        args.debug = "columns,filter,analyze,snapshot,scan,output,command"
        command.set_debug(args.debug)
        self.assertEqual(get_debug_mask(), FSIFT_DEBUG_ALL)

    def test_set_debug_all(self):
        from fsift import get_debug_mask, FSIFT_DEBUG_ALL

        args = MockArgs()
        args.debug = "all"
        command.set_debug(args.debug)
        self.assertEqual(get_debug_mask(), FSIFT_DEBUG_ALL)

    def test_set_debug_single_bad(self):
        args = MockArgs()
        args.debug = "nosuch"
        with self.assertRaises(ValueError):
            command.set_debug(args.debug)

    def test_setup_logging(self):
        args = MockArgs()
        command.setup_logging(args)
        self.assertEqual(logging.getLogger("fsift").level, logging.WARNING)
        args.verbose = 1
        command.setup_logging(args)
        self.assertEqual(logging.getLogger("fsift").level, logging.INFO)
        args.verbose = 2
        command.setup_logging(args)
        fsift_log = logging.getLogger("fsift")
        self.assertEqual(fsift_log.level, logging.DEBUG)
        self.assertEqual(len(fsift_log.handlers), 1)
        self.assertIsInstance(fsift_log.handlers[0], fsift.OutputAwareHandler)

    def test_main_version(self):
        args = self.get_debug_main_args()
        args += ["--version"]
        with patch("sys.stdout", new_callable=StringIO):
            with self.assertRaises(SystemExit):
                command.main(args)

    def test_main_bad_option(self):
        args = self.get_main_args()
        args += ["--nosuch-option"]
        with patch("sys.stderr", new_callable=StringIO):
            with self.assertRaises(SystemExit) as cm:
                command.main(args)
        self.assertEqual(cm.exception.code, 2)

    def test_main_bad_debug(self):
        args = self.get_main_args()
        args += ["--debug=nosuch", "."]
        with patch("sys.stdout", new_callable=StringIO) as stdout:
            self.assertEqual(command.main(args), 2)
        self.assertIn("Unknown debug option: nosuch", stdout.getvalue())

    def test_main_help_lists_columns(self):
        args = self.get_main_args()
        args += ["--help"]
        with patch("sys.stdout", new_callable=StringIO) as stdout:
            with self.assertRaises(SystemExit):
                command.main(args)
        self.assertIn("COLUMNS codes", stdout.getvalue())
        self.assertIn("md5", stdout.getvalue())


class CommandTests(CommandTestsBase):
    """
    Test command interfaces with a scanned tree
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = self._tmpdir.name
        make_tree(self.root, TEST_TREE)

    def tearDown(self):
        self._tmpdir.cleanup()
        super().tearDown()

    def _path(self, *parts):
        return os.path.join(self.root, *parts)

    def _main(self, args):
        with patch("sys.stdout", new_callable=StringIO) as stdout, patch(
            "sys.stderr", new_callable=StringIO
        ) as stderr:
            status = command.main(self.get_main_args() + args)
        return status, stdout.getvalue(), stderr.getvalue()

    def test_main_plain(self):
        status, out, _ = self._main(
            ["-p", "-R", "-c", "p", "-s", "p", self._path("1")]
        )
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["  x/a", "  x/c", "  y/b", "  y/c"])

    def test_main_plain0(self):
        status, out, _ = self._main(["-0", "-R", "-c", "sp", self._path("2")])
        self.assertEqual(status, 0)
        self.assertEqual(out, "2\x00e\x00")

    def test_main_header(self):
        status, out, _ = self._main(["-c", "p", self._path("2")])
        self.assertEqual(status, 0)
        lines = out.splitlines()
        self.assertEqual(lines[0], SIFTER_FILE_HEADER)
        self.assertEqual(lines[1], f"| Command line: -c p {self._path('2')}")
        self.assertIn("| Columns: path", lines)

    def test_main_diff(self):
        status, out, _ = self._main(
            [
                "-p",
                "-R",
                "-c",
                "mp",
                "-k",
                "ps",
                "-d",
                "-s",
                "p",
                self._path("1", "x"),
                ":",
                self._path("1", "y"),
            ]
        )
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["  <!  a", "  >!  b"])

    def test_main_intermixed(self):
        status, out, _ = self._main(
            [
                self._path("1", "x"),
                "-p",
                ":",
                "-R",
                self._path("1", "y"),
                "-c",
                "mp",
                "-k",
                "ps",
                "-m",
                "lr",
                "-s",
                "mp",
            ]
        )
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["  <=  c", "  >=  c"])

    def test_prefilter_base_match_order(self):
        parser = command._build_parser("fsift")
        cmd_args = parser.parse_intermixed_args(
            ["-e", "or", "-e", "p=a", "-b", "x", "-e", "p=c", "."]
        )
        self.assertEqual(cmd_args.prefilter, ["or", "p=a", "base*=*x*", "p=c"])

    def test_main_prefilter_base_match_order(self):
        status, out, _ = self._main(
            [
                "-p",
                "-R",
                "-c",
                "p",
                "-e",
                "or",
                "-b",
                "a",
                "-e",
                "base=b",
                "-e",
                "path*=y/*",
                self._path("1"),
            ]
        )
        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["  y/b"])

    def test_main_verify(self):
        status, _, err = self._main(
            ["-p", "-R", "-Y", "-k", "ps", self._path("1", "x"), ":", self._path("1")]
        )
        self.assertEqual(status, 1)
        self.assertIn("--verify was specified", err)

    def test_main_verify_passes(self):
        status, _, err = self._main(
            [
                "-p",
                "-R",
                "-Y",
                "-k",
                "p",
                self._path("1", "x"),
                ":",
                self._path("1", "x"),
            ]
        )
        self.assertEqual(status, 0)
        self.assertEqual(err, "")

    def test_main_snapshot_file(self):
        snap = self._path("snap.fsift.zst")
        status, out, _ = self._main(["-R", "-o", snap, self._path("1")])
        self.assertEqual(status, 0)
        self.assertEqual(out, "")
        self.assertTrue(os.path.exists(snap))

        status, out, _ = self._main(["-p", "-c", "sp", "-s", "p", snap])
        self.assertEqual(status, 0)
        self.assertEqual(
            out.splitlines(), ["  1  x/a", "  3  x/c", "  2  y/b", "  3  y/c"]
        )

    def test_main_missing_root(self):
        status, _, err = self._main(["-p", self._path("noexist")])
        self.assertEqual(status, 2)
        self.assertIn("Can't get file information", err)

    def test_main_bad_column(self):
        status, _, err = self._main(["-p", "-c", "w", self._path("2")])
        self.assertEqual(status, 2)
        self.assertIn("Command failed:", err)

    def test_main_bad_column_debug(self):
        args = ["--debug=all", "-p", "-c", "w", self._path("2")]
        status, _, err = self._main(args)
        self.assertEqual(status, 2)
        self.assertIn("Command failed:", err)

    def test__sift_cmd(self):
        args = MockArgs()
        args.roots_left = [self._path("2")]
        args.roots_right = []
        args.columns = ["p"]
        args.regular_only = True
        args.plain = True
        with patch("sys.stdout", new_callable=StringIO) as stdout:
            self.assertEqual(command._sift_cmd(args), 0)
        self.assertEqual(stdout.getvalue(), "  e\n")
