# Copyright Red Hat
#
# tests/test_output.py - OutputWriter and TermControl tests
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import MagicMock, patch
from io import BytesIO, StringIO, TextIOWrapper
import threading
import curses

from fsift.output import (
    DEFAULT_COLUMNS,
    MSG_ERROR,
    MSG_NORMAL,
    OutputWriter,
    TermControl,
)


class TestTermControl(unittest.TestCase):
    def test_term_control_default_stream(self):
        """Test TermControl when stream is None"""
        tc = TermControl()
        self.assertIsNotNone(tc)

    def test_term_control_no_tty(self):
        """Test TermControl when stream is not a TTY."""
        mock_stream = MagicMock()
        mock_stream.isatty.return_value = False

        tc = TermControl(term_stream=mock_stream)

        # attributes should be empty strings
        self.assertEqual(tc.BOL, "")
        self.assertEqual(tc.CLEAR_EOL, "")
        self.assertIsNone(tc.columns)

    def test_term_control_curses_error(self):
        """Test TermControl handles curses setup errors gracefully."""
        mock_stream = MagicMock()
        mock_stream.isatty.return_value = True

        with patch("fsift.output.curses") as mock_curses:
            mock_curses.setupterm.side_effect = curses.error("Curses error")

            tc = TermControl(term_stream=mock_stream)
            self.assertEqual(tc.BOL, "")
            self.assertIsNone(tc.columns)


class TestOutputWriter(unittest.TestCase):
    def _writer(self, **kwargs):
        kwargs.setdefault("threaded", False)
        kwargs.setdefault("show_status", False)
        return OutputWriter(stream=StringIO(), err_stream=StringIO(), **kwargs)

    def test_out_and_error(self):
        writer = self._writer()
        writer.out("one")
        writer.error("Error: bad")
        writer.out("two")
        writer.shutdown()
        self.assertEqual(writer.stream.getvalue(), "one\ntwo\n")
        self.assertEqual(writer.err_stream.getvalue(), "Error: bad\n")

    def test_line_separator(self):
        writer = self._writer(line_separator="\x00")
        writer.out("a")
        writer.out("b")
        writer.error("e")
        self.assertEqual(writer.stream.getvalue(), "a\x00b\x00")
        # Errors are always newline terminated
        self.assertEqual(writer.err_stream.getvalue(), "e\n")

    def test_verbosity(self):
        writer = self._writer(verbosity=0)
        writer.out("normal")
        writer.out("verbose", 1)
        self.assertEqual(writer.stream.getvalue(), "normal\n")

        writer = self._writer(verbosity=-2)
        writer.out("normal")
        self.assertEqual(writer.stream.getvalue(), "")

    def test_message_kinds(self):
        writer = self._writer()
        writer.message(MSG_NORMAL, "data")
        writer.message(MSG_ERROR, "oops")
        self.assertEqual(writer.stream.getvalue(), "data\n")
        self.assertEqual(writer.err_stream.getvalue(), "oops\n")

    def test_status_hidden(self):
        writer = self._writer()
        writer.out_temp("Scanning...")
        writer.shutdown()
        self.assertEqual(writer.err_stream.getvalue(), "")

    def test_status_erased(self):
        writer = self._writer(show_status=True)
        writer.out_temp("Scanning")
        writer.out("line")
        self.assertEqual(writer.err_stream.getvalue(), "Scanning\r        \r")
        self.assertEqual(writer.stream.getvalue(), "line\n")

    def test_status_erased_on_shutdown(self):
        writer = self._writer(show_status=True)
        writer.out_temp("abc")
        writer.shutdown()
        self.assertEqual(writer.err_stream.getvalue(), "abc\r   \r")

    def test_show_status_default_not_tty(self):
        writer = OutputWriter(stream=StringIO(), err_stream=StringIO())
        self.assertFalse(writer.show_status)
        self.assertEqual(writer.display_width, DEFAULT_COLUMNS)

    def test_truncate_message(self):
        writer = self._writer()
        self.assertEqual(writer.truncate_message("short"), "short")
        msg = "a" * 50 + "b" * 50
        truncated = writer.truncate_message(msg)
        self.assertEqual(len(truncated), 79)
        self.assertTrue(truncated.startswith("a" * 38 + "..."))
        self.assertTrue(truncated.endswith("b" * 38))

    def test_threaded(self):
        writer = self._writer(threaded=True, queue_size=2)
        writer.start()
        self.assertTrue(writer.running)
        for i in range(100):
            writer.out(f"line {i}")
            if i == 50:
                writer.error("halfway")
        writer.shutdown()
        self.assertFalse(writer.running)
        self.assertEqual(
            writer.stream.getvalue().splitlines(), [f"line {i}" for i in range(100)]
        )
        self.assertEqual(writer.err_stream.getvalue(), "halfway\n")

    def test_start_not_threaded(self):
        writer = self._writer()
        writer.start()
        self.assertFalse(writer.running)
        writer.shutdown()

    def test_broken_pipe(self):
        stream = MagicMock()
        stream.write.side_effect = BrokenPipeError()
        writer = OutputWriter(
            stream=stream, err_stream=StringIO(), threaded=False, show_status=False
        )
        writer.out("lost")
        self.assertTrue(writer.broken_pipe)
        # Later output to the broken stream is discarded
        writer.out("dropped")
        self.assertEqual(stream.write.call_count, 1)

    def test_unencodable_line_threaded(self):
        buf = BytesIO()
        writer = OutputWriter(
            stream=TextIOWrapper(buf, encoding="utf-8"),
            err_stream=StringIO(),
            show_status=False,
        )
        writer.start()
        writer.out("bad\udcffname")
        # More lines than the queue holds
        for i in range(60):
            writer.out(f"line {i}")
        writer.shutdown()
        self.assertFalse(writer.running)
        lines = buf.getvalue().decode("utf-8").splitlines()
        self.assertEqual(lines[0], "bad\\udcffname")
        self.assertEqual(lines[1:], [f"line {i}" for i in range(60)])
        self.assertEqual(writer.write_errors, 1)
        self.assertIn("surrogates not allowed", writer.last_write_error)

    def test_write_error_keeps_draining(self):
        class FailingStream(StringIO):
            def write(self, s):
                if s.startswith("fail"):
                    raise OSError(5, "Input/output error")
                return super().write(s)

        writer = OutputWriter(
            stream=FailingStream(), err_stream=StringIO(), show_status=False
        )
        writer.start()
        writer.out("fail")
        writer.out("after")
        writer.error("an error")
        writer.shutdown()
        self.assertEqual(writer.stream.getvalue(), "after\n")
        self.assertEqual(writer.err_stream.getvalue(), "an error\n")
        self.assertEqual(writer.write_errors, 1)
        self.assertIn("Input/output error", writer.last_write_error)

    def test_shutdown_after_worker_exit(self):
        writer = self._writer(threaded=True)
        writer.thread = threading.Thread(target=lambda: None)
        writer.thread.start()
        writer.thread.join()
        writer._queue.put((MSG_NORMAL, "queued"))
        writer._queue.put((MSG_ERROR, "queued error"))
        self.assertFalse(writer.running)
        writer.shutdown()
        self.assertIsNone(writer.thread)
        self.assertEqual(writer.stream.getvalue(), "queued\n")
        self.assertEqual(writer.err_stream.getvalue(), "queued error\n")
