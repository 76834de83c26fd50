# Copyright Red Hat
#
# fsift/sift/sifter.py - File Sifter run pipeline
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
The file sifter run pipeline: ingest roots, analyse matches, filter, sort
and write the results.
"""
from typing import List, Optional, Set, TextIO
from datetime import datetime, timezone
import logging
import stat
import sys
import os

from fsift import (
    FSIFT_SUBSYSTEM_COMMAND,
    MAX_ERROR_MESSAGES,
    SiftArgumentError,
    SiftError,
    SiftParseError,
    SiftSystemError,
    format_number,
    parse_time_zone,
)
from fsift.output import OutputWriter

from .analyze import MatchAnalyzer, Stats, stats_size
from .columns import Column
from .entry import FileEntry, sort_entries
from .filters import (
    Filter,
    FilterOp,
    compile_filters,
    evaluate_filter,
    filter_columns,
    parse_filter,
)
from .options import (
    DEFAULT_KEY_COLUMNS,
    DEFAULT_OUTPUT_COLUMNS,
    MEMBERSHIP_CODES,
    ColumnSelector,
    SiftOptions,
    base_match_filter,
)
from .snapshot import (
    SNAPSHOT_ENCODING,
    SNAPSHOT_ERRORS,
    SnapshotReader,
    SnapshotWriter,
    detect_snapshot_file,
    open_snapshot,
)
from .treewalk import TreeWalker

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_COMMAND}, **kwargs)


#: Exit status for a run that recorded no errors
EXIT_OK = 0
#: Exit status for a run that recorded errors
EXIT_ERRORS = 1
#: Exit status for a fatal configuration or input error
EXIT_FATAL = 2

_DIGEST_OPTIONS = (
    ("md5", Column.MD5),
    ("sha1", Column.SHA1),
    ("sha256", Column.SHA256),
    ("sha512", Column.SHA512),
)

_ANALYSIS_COLUMNS = (Column.MATCHED, Column.REDUNDANCY, Column.REDUNIDX)


def use_snapshot_encoding(stream: TextIO) -> TextIO:
    """
    Switch a standard stream to the snapshot file encoding so that file
    names that are not valid UTF-8 pass through unchanged.

    :param stream: A text stream, normally ``sys.stdin`` or ``sys.stdout``.
    :type stream: ``TextIO``
    :returns: ``stream``.
    :rtype: ``TextIO``
    """
    reconfigure = getattr(stream, "reconfigure", None)
    if reconfigure is None:
        return stream
    try:
        reconfigure(encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS)
    except (OSError, ValueError) as err:
        _log_debug_command("Can't reconfigure stream %r: %s", stream, err)
    return stream


def membership_filters(codes: str) -> List[Filter]:
    """
    Build post-filter items selecting the membership codes in ``codes``:
    one ``membership=`` test per code, ORed together.

    :param codes: One or more of ``l``, ``r``, ``L`` and ``R``.
    :type codes: ``str``
    :returns: Filter items for ``compile_filters()``.
    :rtype: ``List[Filter]``
    :raises: ``SiftArgumentError`` for an unknown code.
    """
    filts = []
    for code in codes:
        if code not in MEMBERSHIP_CODES:
            raise SiftArgumentError(
                "--membership filter codes must be one or more of [lrLR]"
            )
        filts.append(
            Filter(
                op=FilterOp.EQ,
                column=Column.MEMBERSHIP,
                value=MEMBERSHIP_CODES[code],
            )
        )
    ors = [Filter(op=FilterOp.OR) for _ in range(len(filts) - 1)]
    return ors + filts


class Sifter:
    """
    State for one file sifter run.

    All options are validated and compiled when the ``Sifter`` is
    created; ``run()`` then scans or loads each root, analyses and
    filters the entries and writes the output.
    """

    def __init__(
        self,
        options: SiftOptions,
        writer: Optional[OutputWriter] = None,
        stdin: Optional[TextIO] = None,
    ):
        """
        Initialise a new ``Sifter``.

        :param options: The options for this run.
        :type options: ``SiftOptions``
        :param writer: The output writer to use; by default a threaded
                       writer for standard output (or the ``output`` file)
                       is created by ``run()``.
        :type writer: ``Optional[OutputWriter]``
        :param stdin: The stream read for the ``-`` root; by default
                      ``sys.stdin`` switched to the snapshot encoding.
        :type stdin: ``Optional[TextIO]``
        :raises: ``SiftError`` if any option is invalid.
        """
        self.options = options
        self.writer = writer
        self.stdin = stdin
        self._output_file: Optional[TextIO] = None

        self.entries: List[FileEntry] = []
        self.scan_stats = Stats("Scanned:")
        self.index_stats = Stats("Indexed:")
        self.unmatched_stats = Stats("Unmatched:")
        self.matching_stats = Stats("Matching:")
        self.output_stats = Stats("Output:")
        self.warning_count = 0
        self.warning_messages: List[str] = []
        self.error_count = 0
        self.error_messages: List[str] = []
        self.null_error_count = 0
        self.start_time: Optional[datetime] = None
        self.cur_side = False

        self.roots_left = list(options.roots_left)
        self.roots_right = list(options.roots_right)
        if not self.roots_left and not self.roots_right:
            self.roots_left = ["."]

        self.output_tz = parse_time_zone(options.out_zone)
        self._configure_columns()
        self._configure_filters()

        self.needed: Set[Column] = set(self.out_columns)
        self.needed.update(self.sort_columns)
        self.needed.update(self.key_columns)
        self.needed.update(filter_columns(self.prefilter))
        self.needed.update(filter_columns(self.postfilter))
        if options.has_right:
            self.needed.update((Column.MATCHED, Column.SIDE))

        self.walker = TreeWalker(
            self.needed,
            self._accept_scanned,
            follow_links=options.follow_links,
            regular_only=options.regular_only,
            xdev=options.xdev,
            excludes=options.exclude,
            on_error=self.on_error,
            on_warning=self.on_warning,
            status=self._status,
        )
        _log_debug_command("Initialised Sifter with options:\n%s", options)

    def _configure_columns(self):
        options = self.options
        out_sel = ColumnSelector(DEFAULT_OUTPUT_COLUMNS).update_all(options.columns)
        sort_sel = ColumnSelector(allow_inverse=True).update_all(options.sort)
        key_sel = ColumnSelector(DEFAULT_KEY_COLUMNS).update_all(options.key)

        if options.has_left and options.has_right:
            out_sel.update("+membership", 0)
        for name, col in _DIGEST_OPTIONS:
            if getattr(options, name):
                out_sel.update(f"+{col.long_name}", -1)
                key_sel.update(f"+{col.long_name}", 0)

        self.out_columns: List[Column] = out_sel.columns
        self.sort_columns: List[Column] = sort_sel.columns
        self.sort_inverse: List[Column] = sort_sel.inverse
        self.key_columns: List[Column] = key_sel.columns

    def _configure_filters(self):
        options = self.options
        pre_items = [parse_filter(text) for text in options.prefilter]
        pre_items.extend(
            parse_filter(base_match_filter(pat)) for pat in options.base_match
        )
        post_items = [parse_filter(text) for text in options.postfilter]
        post_items.extend(membership_filters(options.membership_codes))
        self.prefilter: Optional[Filter] = compile_filters(pre_items)
        self.postfilter: Optional[Filter] = compile_filters(post_items)

    @property
    def evaluated_columns(self) -> List[Column]:
        """The columns evaluated for this run, in column id order."""
        return sorted(self.needed)

    def needs(self, col: Column) -> bool:
        """Return ``True`` if ``col`` is evaluated in this run."""
        return col in self.needed

    def on_error(self, msg: str):
        """
        Record an error, and write it to the error stream.

        :param msg: The error message.
        :type msg: ``str``
        """
        text = f"Error: {msg}"
        if self.writer:
            self.writer.error(text)
        self.error_count += 1
        if len(self.error_messages) < MAX_ERROR_MESSAGES:
            self.error_messages.append(text)

    def on_warning(self, msg: str):
        """
        Record a warning, and write it to the error stream.

        :param msg: The warning message.
        :type msg: ``str``
        """
        text = f"Warning: {msg}"
        if self.writer:
            self.writer.error(text)
        self.warning_count += 1
        if len(self.warning_messages) < MAX_ERROR_MESSAGES:
            self.warning_messages.append(text)

    def check_null_compare(self, not_null: bool):
        """
        Count a comparison that involved an absent value, unless null
        comparisons are being ignored.
        """
        if not not_null and not self.options.ignore_nulls:
            self.null_error_count += 1

    def _status(self, text: str):
        if self.writer:
            self.writer.out_temp(text)

    def _index(self, entry: FileEntry, size: int) -> bool:
        self.scan_stats.update(self.cur_side, size)
        match, not_null = evaluate_filter(self.prefilter, entry)
        self.check_null_compare(not_null)
        if match:
            self.index_stats.update(self.cur_side, size)
            self.entries.append(entry)
        return match

    def _accept_scanned(
        self, entry: FileEntry, size: int, prune_check: bool, path: str
    ) -> bool:
        if prune_check:
            match, not_null = evaluate_filter(self.prefilter, entry, prune_check=True)
            self.check_null_compare(not_null)
            return match
        match = self._index(entry, size)
        self._status(
            f"Scan({self.scan_stats.total_size // 1000000}MB "
            f"in {self.scan_stats.total_count}) {path}"
        )
        return match

    def load_snapshot(self, lines):
        """
        Load the entries of a snapshot, applying the pre-filter.

        :param lines: An iterable of snapshot lines.
        :raises: ``SiftParseError`` if the snapshot structure is invalid.
        """
        reader = SnapshotReader(self.on_error)
        for entry in reader.read(lines):
            if self.needs(Column.SIDE):
                entry.set_bool(Column.SIDE, self.cur_side)
            self._index(entry, stats_size(entry))

    def process_root(self, path: str):
        """
        Ingest one root: ``-`` reads a snapshot from standard input, a
        regular file starting with the snapshot header is loaded as a
        snapshot, and any other path is scanned.

        :param path: The root path.
        :type path: ``str``
        :raises: ``SiftError`` if the root cannot be read.
        """
        if path == "-":
            try:
                stdin = self.stdin or use_snapshot_encoding(sys.stdin)
                self.load_snapshot(stdin)
            except SiftParseError as err:
                raise SiftParseError(
                    f"Can't parse FSIFT content from stdin: {err}"
                ) from err
            return

        try:
            root_stat = os.stat(path) if self.options.follow_links else os.lstat(path)
        except OSError as err:
            raise SiftSystemError(f"Can't get file information: {err}") from err

        if not stat.S_ISDIR(root_stat.st_mode):
            is_snapshot = False
            if not self.options.no_detect and stat.S_ISREG(root_stat.st_mode):
                is_snapshot = detect_snapshot_file(path)
            if is_snapshot:
                _log_debug_command("Loading snapshot file %s", path)
                try:
                    with open_snapshot(path) as fp:
                        self.load_snapshot(fp)
                except OSError as err:
                    raise SiftSystemError(f"Can't open file: {err}") from err
                except SiftParseError as err:
                    raise SiftParseError(f"Can't parse FSIFT file: {err}") from err
                return

        self.walker.scan_root(path, root_stat, self.cur_side)

    def analyze(self):
        """
        Run match analysis over the loaded entries.
        """
        self._status(f"Analyzing... {len(self.entries)} files")
        analyzer = MatchAnalyzer(
            self.key_columns,
            need_redundancy=self.needs(Column.REDUNDANCY),
            need_redun_idx=self.needs(Column.REDUNIDX),
            verify=self.options.verify,
            null_callback=self.check_null_compare,
        )
        result = analyzer.analyze(self.entries)
        self.matching_stats = result.matched_stats
        self.unmatched_stats = result.unmatched_stats
        # Key order is kept only as the tie order for a later sort.
        if self.sort_columns:
            self.entries = result.entries
        if result.verify_failed:
            self.on_error(
                "At least one entry on the left was unmatched (--verify was specified)"
            )

    def calc_summary_info(self) -> List[List[str]]:
        """
        Build the statistics table shown in the footer. The first row is
        the header; every cell is right aligned to its column's width.

        :returns: The table rows.
        :rtype: ``List[List[str]]``
        """
        has_left = bool(self.roots_left)
        has_right = bool(self.roots_right)
        group = self.options.group_nums

        if has_left and has_right:
            all_stats = [
                self.scan_stats,
                self.index_stats,
                self.unmatched_stats,
                self.matching_stats,
                self.output_stats,
            ]
        else:
            all_stats = [self.scan_stats, self.index_stats, self.output_stats]

        header = ["STATISTICS:"]
        table = [[bucket.name] for bucket in all_stats]
        if has_left:
            if has_right:
                header.extend(("L:Count", "L:Size"))
            else:
                header.extend(("Count", "Size"))
            for row, bucket in zip(table, all_stats):
                row.append(format_number(bucket.left_count, group))
                row.append(format_number(bucket.left_size, group))
        if has_right:
            header.extend(("R:Count", "R:Size"))
            for row, bucket in zip(table, all_stats):
                row.append(format_number(bucket.right_count, group))
                row.append(format_number(bucket.right_size, group))
        table.insert(0, header)

        widths = [max(len(row[i]) for row in table) for i in range(len(header))]
        return [[cell.rjust(widths[i]) for i, cell in enumerate(row)] for row in table]

    def _open_output(self) -> Optional[TextIO]:
        if not self.options.output:
            return None
        try:
            self._output_file = open_snapshot(self.options.output, "w")
        except OSError as err:
            raise SiftSystemError(f"Error opening output file: {err}") from err
        return self._output_file

    def _start_writer(self):
        line_separator = "\x00" if self.options.plain0 else "\n"
        stream = self._open_output()
        if self.writer is None:
            self.writer = OutputWriter(
                stream=stream or use_snapshot_encoding(sys.stdout),
                verbosity=self.options.verbosity,
                line_separator=line_separator,
            )
        else:
            if stream is not None:
                self.writer.stream = stream
            self.writer.verbosity = self.options.verbosity
            self.writer.line_separator = line_separator
        self.writer.start()

    def shutdown(self):
        """
        Flush and stop the output writer and close any output file.
        """
        if self.writer:
            self.writer.shutdown()
        if self._output_file is not None:
            self._output_file.close()
            self._output_file = None

    def _filter_entries(
        self, snapshot: SnapshotWriter, widths: List[int]
    ) -> List[FileEntry]:
        self._status(f"Filtering and formatting... {len(self.entries)}")
        filtered = []
        for entry in self.entries:
            match, not_null = evaluate_filter(self.postfilter, entry)
            self.check_null_compare(not_null)
            if not match:
                continue
            filtered.append(entry)
            if not self.options.summary_only:
                snapshot.update_widths(widths, entry, self.out_columns)
        return filtered

    def _run(self):
        options = self.options
        snapshot = SnapshotWriter(
            self.writer.out,
            group_numerics=options.group_nums,
            output_tz=self.output_tz,
            plain=options.plain,
            plain0=options.plain0,
            json_out=options.json_out,
        )
        self.start_time = datetime.now(timezone.utc)
        snapshot.header(
            options.command_line,
            os.getcwd(),
            self.key_columns,
            self.sort_columns,
            self.evaluated_columns,
            self.start_time,
            self.out_columns,
        )

        for side, roots in ((False, self.roots_left), (True, self.roots_right)):
            for path in roots:
                self._status(f"Processing root... '{path}'")
                self.cur_side = side
                self.process_root(path)

        if any(self.needs(col) for col in _ANALYSIS_COLUMNS):
            self.analyze()

        widths = snapshot.initial_widths(self.out_columns)
        filtered = self._filter_entries(snapshot, widths)

        if self.sort_columns:
            self._status(f"Sorting... ({len(filtered)} entries)")
            filtered = sort_entries(
                filtered,
                self.sort_columns,
                self.sort_inverse,
                null_callback=self.check_null_compare,
            )

        if self.null_error_count > 0:
            self.on_error(
                f"Comparison of a NULL value attempted {self.null_error_count} time(s)"
            )

        if not options.summary_only:
            for entry in filtered:
                if not options.json_out:
                    self.output_stats.update(
                        entry.bool_or_false(Column.SIDE), stats_size(entry)
                    )
                snapshot.row(entry, self.out_columns, widths)

        end_time = datetime.now(timezone.utc)
        snapshot.footer(
            end_time,
            end_time - self.start_time,
            self.calc_summary_info(),
            warnings=self.warning_messages,
            warning_count=self.warning_count,
            errors=self.error_messages,
            error_count=self.error_count,
        )

    def run(self) -> int:
        """
        Run the sifter: write the header, ingest every root, analyse,
        filter, sort and write the entries and the footer.

        :returns: ``EXIT_OK`` if no errors were recorded, ``EXIT_ERRORS``
                  if any were (including output lines that could not be
                  written), or ``EXIT_FATAL`` if a root could not be read.
        :rtype: ``int``
        :raises: ``SiftSystemError`` if the output file cannot be opened.
        """
        self._start_writer()
        status = EXIT_OK
        try:
            self._run()
        except SiftError as err:
            self.on_error(str(err))
            status = EXIT_FATAL
        finally:
            self.shutdown()
        if self.writer.write_errors:
            self.on_error(
                f"Failed to write {self.writer.write_errors} output line(s): "
                f"{self.writer.last_write_error}"
            )
        if status == EXIT_OK and self.error_count:
            status = EXIT_ERRORS
        return status


__all__ = [
    "EXIT_ERRORS",
    "EXIT_FATAL",
    "EXIT_OK",
    "Sifter",
    "membership_filters",
    "use_snapshot_encoding",
]
