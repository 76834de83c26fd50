# Copyright Red Hat
#
# fsift/output.py - File Sifter terminal output and status lines
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and background output writer.

All output produced during a run (data lines, error messages and transient
status lines) is funnelled through an ``OutputWriter``. In threaded mode a
single worker thread consumes a bounded queue so that the producer is
throttled if the terminal cannot keep up, and transient status lines are
rate limited.
"""
from typing import Optional, TextIO, Tuple, Union
import threading
import logging
import curses
import signal
import queue
import time
import sys
import os

from fsift import (
    FSIFT_SUBSYSTEM_OUTPUT,
    register_output_writer,
    unregister_output_writer,
    in_writer_thread,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_output(msg, *args, **kwargs):
    """A wrapper for output subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_OUTPUT}, **kwargs)


#: Default number of columns if not detected from terminal.
DEFAULT_COLUMNS = 80

#: Console widths outside this range are replaced by ``DEFAULT_COLUMNS``.
MIN_COLUMNS = 5
MAX_COLUMNS = 1000

#: Maximum number of queued messages before producers block.
DEFAULT_QUEUE_SIZE = 50

#: Minimum interval between transient status line updates.
STATUS_INTERVAL = 0.1

#: A normal output line.
MSG_NORMAL = 0
#: A transient status line on the console.
MSG_TEMP = 1
#: An error or warning line on the console.
MSG_ERROR = 2

_SHUTDOWN = object()


class TermControl:
    """
    A class for portable terminal control.

    Uses the curses package to set up the control sequences needed to
    rewrite the current line of the terminal, and to look up the terminal
    width.

    Inspired by and adapted from:

      https://code.activestate.com/recipes/475116-using-terminfo-for-portable-color-output-cursor-co/

      Copyright Edward Loper and released under the PSF license.

    If the terminal doesn't support a given action, then the value of
    the corresponding instance variable will be set to ''.
    """

    # Cursor movement:
    BOL: str = ""  #: Move the cursor to the beginning of the line

    # Deletion:
    CLEAR_EOL: str = ""  #: Clear to the end of the line.

    # Terminal size:
    columns: Optional[int] = None  #: Terminal width

    _STRING_CAPABILITIES = "BOL:cr CLEAR_EOL:el".split()

    def __init__(self, term_stream: Optional[TextIO] = None):
        """
        Initialize terminal capabilities and size information.

        If the output stream is not a tty or terminal setup fails,
        the instance will have no terminal capabilities.

        :param term_stream: Output stream to probe for capabilities.
        :type term_stream: ``Optional[TextIO]``
        """
        if term_stream is None:
            term_stream = sys.stderr

        self.term_stream = term_stream

        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return

        # Attempting to catch curses.error raises 'TypeError: catching classes
        # that do not inherit from BaseException is not allowed' even though
        # it claims to inherit from builtins.Exception.
        try:
            curses.setupterm(fd=term_stream.fileno())
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            return  # pragma: no cover

        self.columns = curses.tigetnum("cols")

        for capability in self._STRING_CAPABILITIES:
            (attr, cap_name) = capability.split(":")
            setattr(self, attr, self._tigetstr(cap_name) or "")

    def _tigetstr(self, cap_name):
        # String capabilities can include "delays" of the form "$<2>".
        # For any modern terminal, we should be able to just ignore
        # these, so strip them out.
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]


def _sane_width(width: Optional[int]) -> int:
    if width is None or width < MIN_COLUMNS or width > MAX_COLUMNS:
        return DEFAULT_COLUMNS
    return width


def _flush_with_broken_pipe_guard(stream: TextIO) -> bool:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    On a broken pipe the stream's file descriptor is redirected to
    ``os.devnull`` so that later writes and the interpreter's own flush at
    exit do not fail again.

    :param stream: The stream to flush.
    :type stream: TextIO
    :returns: ``False`` if the pipe was broken.
    :rtype: ``bool``
    """
    if stream is None or not hasattr(stream, "flush"):
        return True
    try:
        stream.flush()
    except BrokenPipeError:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        return False
    return True


class OutputWriter:
    """
    Serialise all output for a run through a single writer.

    Normal lines go to ``stream`` followed by ``line_separator``; error
    lines and transient status lines go to ``err_stream``. A transient
    status line is erased before any permanent line is written, and is
    truncated in the middle to fit the console width.

    A line that cannot be encoded for its stream is written with
    backslash escapes instead; such failures are counted in
    ``write_errors``.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        err_stream: Optional[TextIO] = None,
        verbosity: int = 0,
        line_separator: str = "\n",
        threaded: bool = True,
        show_status: Optional[bool] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        """
        Initialise a new ``OutputWriter``.

        :param stream: Stream for normal output (default ``sys.stdout``).
        :param err_stream: Stream for errors and status (default
                           ``sys.stderr``).
        :param verbosity: Messages with a level above this are discarded.
        :param line_separator: Terminator for normal output lines.
        :param threaded: ``True`` to write from a background thread once
                         ``start()`` has been called.
        :param show_status: Show transient status lines; ``None`` shows
                            them only when ``err_stream`` is a tty.
        :param queue_size: Maximum number of queued messages.
        """
        self.stream = stream or sys.stdout
        self.err_stream = err_stream or sys.stderr
        self.verbosity = verbosity
        self.line_separator = line_separator
        self.threaded = threaded
        if show_status is None:
            isatty = getattr(self.err_stream, "isatty", None)
            show_status = bool(isatty and isatty())
        self.show_status = show_status
        self.thread: Optional[threading.Thread] = None
        self.broken_pipe = False
        self.write_errors = 0
        self.last_write_error: Optional[str] = None
        self._queue: "queue.Queue[Union[object, Tuple[int, str]]]" = queue.Queue(
            queue_size
        )
        self._cur_temp_width = 0
        self._resized = False
        self._old_sigwinch = None
        self._term = TermControl(self.err_stream) if self.show_status else None
        self.display_width = _sane_width(self._term.columns if self._term else None)

    @property
    def running(self) -> bool:
        """``True`` while the worker thread is accepting messages."""
        return self.thread is not None and self.thread.is_alive()

    def start(self):
        """
        Start the worker thread (threaded mode only).
        """
        if not self.threaded or self.running:
            return
        self._install_sigwinch()
        self.thread = threading.Thread(
            target=self._run, name="fsift-output", daemon=True
        )
        self.thread.start()
        register_output_writer(self)
        _log_debug_output("Started output thread (width=%d)", self.display_width)

    def shutdown(self):
        """
        Flush all queued messages and stop the worker thread. Must be
        called for every started writer.
        """
        if self.running:
            unregister_output_writer(self)
            self._put(_SHUTDOWN)
            self.thread.join()
            self._restore_sigwinch()
            _log_debug_output("Stopped output thread")
        elif self.thread is not None:
            # The worker exited early: write what it left behind.
            unregister_output_writer(self)
            self._restore_sigwinch()
            _log_debug_output("Output thread exited before shutdown")
            self._drain_queue()
        self._erase_temp()
        self.thread = None
        self._flush(self.stream)
        self._flush(self.err_stream)

    def message(self, kind: int, text: str):
        """
        Queue a message of the given kind, or write it immediately if no
        worker thread is running.

        :param kind: One of ``MSG_NORMAL``, ``MSG_TEMP`` or ``MSG_ERROR``.
        :param text: The text to write, without a line terminator.
        """
        if self.running and not in_writer_thread(self):
            self._put((kind, text))
        else:
            self._dispatch(kind, text)

    def out(self, text: str, verbosity: int = -1):
        """Write a normal output line if ``verbosity`` permits."""
        if self.verbosity >= verbosity:
            self.message(MSG_NORMAL, text)

    def out_temp(self, text: str, verbosity: int = 0):
        """Show a transient status line if ``verbosity`` permits."""
        if self.verbosity >= verbosity and self.show_status:
            self.message(MSG_TEMP, text)

    def error(self, text: str):
        """Write an error or warning line to the error stream."""
        self.message(MSG_ERROR, text)

    def truncate_message(self, msg: str) -> str:
        """
        Truncate ``msg`` to fit in the current console width by replacing
        characters in the middle with ``...``.
        """
        half = self.display_width // 2 - 2
        if len(msg) >= self.display_width:
            return msg[:half] + "..." + msg[len(msg) - half :]
        return msg

    def _flush(self, stream: TextIO):
        if not _flush_with_broken_pipe_guard(stream):
            self.broken_pipe = True

    def _record_write_error(self, err: Exception):
        self.write_errors += 1
        self.last_write_error = str(err)
        _log_debug_output("Output write failed: %s", err)

    def _write(self, stream: TextIO, text: str):
        if self.broken_pipe and stream is self.stream:
            return
        try:
            stream.write(text)
        except BrokenPipeError:
            self.broken_pipe = True
            self._flush(stream)
        except UnicodeEncodeError as err:
            self._record_write_error(err)
            encoding = getattr(stream, "encoding", None) or "utf-8"
            self._write(
                stream, text.encode(encoding, "backslashreplace").decode(encoding)
            )

    def _put(self, item):
        while True:
            try:
                self._queue.put(item, timeout=STATUS_INTERVAL)
                return
            except queue.Full:
                if self.running:
                    continue
            # The worker is gone and will never make room.
            self._drain_queue()
            if item is not _SHUTDOWN:
                self._dispatch(*item)
            return

    def _dispatch(self, kind: int, text: str):
        if kind == MSG_TEMP:
            self._emit_temp(text)
        else:
            self._write_line(kind, text)

    def _drain_queue(self):
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is _SHUTDOWN:
                continue
            kind, text = item
            if kind != MSG_TEMP:
                self._write_line(kind, text)

    def _erase_temp(self):
        if not self._cur_temp_width:
            return
        if self._term and self._term.BOL and self._term.CLEAR_EOL:
            self._write(self.err_stream, self._term.BOL + self._term.CLEAR_EOL)
        else:
            self._write(self.err_stream, "\r" + " " * self._cur_temp_width + "\r")
        self._cur_temp_width = 0

    def _emit_temp(self, text: str):
        self._erase_temp()
        if not text:
            self._flush(self.err_stream)
            return
        text = self.truncate_message(text)
        self._write(self.err_stream, text)
        self._flush(self.err_stream)
        self._cur_temp_width = len(text)

    def _write_line(self, kind: int, text: str):
        self._erase_temp()
        if kind == MSG_ERROR:
            self._flush(self.stream)
            self._write(self.err_stream, text + "\n")
            self._flush(self.err_stream)
        else:
            self._write(self.stream, text + self.line_separator)

    def _refresh_width(self):
        self._resized = False
        try:
            width = os.get_terminal_size(self.err_stream.fileno()).columns
        except (AttributeError, OSError, ValueError):
            return
        self.display_width = _sane_width(width)
        _log_debug_output("Console width changed to %d", self.display_width)

    def _on_sigwinch(self, _signum, _frame):
        self._resized = True

    def _install_sigwinch(self):
        if not self.show_status or not hasattr(signal, "SIGWINCH"):
            return
        if threading.current_thread() is not threading.main_thread():
            return
        self._old_sigwinch = signal.signal(signal.SIGWINCH, self._on_sigwinch)

    def _restore_sigwinch(self):
        if self._old_sigwinch is not None:
            signal.signal(signal.SIGWINCH, self._old_sigwinch)
            self._old_sigwinch = None

    def _run(self):
        pending: Optional[str] = None
        deadline: Optional[float] = None
        while True:
            if deadline is not None and time.monotonic() >= deadline:
                deadline = None
                if pending is not None:
                    self._guarded(self._emit_temp, pending)
                    pending = None
            timeout = None
            if deadline is not None:
                timeout = max(0.0, deadline - time.monotonic())
            elif self._queue.empty():
                self._flush(self.stream)
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                continue
            if item is _SHUTDOWN:
                self._erase_temp()
                return
            if self._resized:
                self._refresh_width()
            kind, text = item
            if kind == MSG_TEMP:
                if deadline is None:
                    self._guarded(self._emit_temp, text)
                    deadline = time.monotonic() + STATUS_INTERVAL
                else:
                    pending = text
            else:
                self._guarded(self._write_line, kind, text)
                pending = None

    def _guarded(self, func, *args):
        # Keep draining the queue after a failed write.
        try:
            func(*args)
        except (OSError, ValueError) as err:
            self._record_write_error(err)


__all__ = [
    "DEFAULT_COLUMNS",
    "DEFAULT_QUEUE_SIZE",
    "STATUS_INTERVAL",
    "MSG_NORMAL",
    "MSG_TEMP",
    "MSG_ERROR",
    "TermControl",
    "OutputWriter",
]
