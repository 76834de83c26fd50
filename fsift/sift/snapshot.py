# Copyright Red Hat
#
# fsift/sift/snapshot.py - File Sifter snapshot file format
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Reading and writing of file sifter snapshot files.

A snapshot is a line oriented text file. The first line is the magic
header ``SIFTER_FILE_HEADER``. Lines beginning with ``|`` are directives;
the ``| Columns: ...`` directive names the columns of the data lines that
follow it. Data lines hold one escaped field per column separated by
unescaped spaces:

- a field holding an empty string is written ``\\-``;
- an absent (null) field is written ``\\~``;
- in every column but the last, backslashes and spaces are escaped with a
  backslash; in the last column only backslashes are escaped, so paths
  containing spaces stay readable.

Snapshots may be compressed with zstd (``.zst``) or xz (``.xz``).
"""
from typing import (
    Callable,
    IO,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    TextIO,
    Tuple,
)
from datetime import datetime, timedelta, timezone, tzinfo
import logging
import json
import lzma
import io
import re

try:
    import zstandard as zstd

    _HAVE_ZSTD = True
except ModuleNotFoundError:
    _HAVE_ZSTD = False

from fsift import (
    FSIFT_SUBSYSTEM_SNAPSHOT,
    SiftColumnError,
    SiftParseError,
    SiftSystemError,
    format_mtime,
    format_number,
    format_rfc3339,
    parse_mtime,
)

from .columns import Column, format_column_names, parse_columns_directive
from .entry import FileEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_snapshot(msg, *args, **kwargs):
    """A wrapper for snapshot subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_SNAPSHOT}, **kwargs)


#: Magic first line identifying a snapshot file.
SIFTER_FILE_HEADER = "| File Sifter output file - V1 |"

#: Escaped form of an empty string.
EMPTY_FIELD = "\\-"
#: Escaped form of an absent value.
NULL_FIELD = "\\~"

#: Command lines longer than this are truncated in the header.
MAX_COMMAND_LINE = 500

#: Text encoding of snapshot files; undecodable bytes in paths round trip.
SNAPSHOT_ENCODING = "utf-8"
SNAPSHOT_ERRORS = "surrogateescape"

#: Compression types by file name extension
_COMPRESSION_EXTENSIONS = {
    ".zst": "zstd",
    ".xz": "lzma",
}

# A field delimiter: a space not preceded by a backslash.
_DELIMITER_RE = re.compile(r"[^\\] ", re.DOTALL)

_UNESCAPE_RE = re.compile(r"\\(.)")


def escape_field(text: str, not_null: bool = True, last_col: bool = False) -> str:
    """
    Escape a field value for writing to a snapshot.

    :param text: The field value.
    :param not_null: ``False`` to encode an absent value.
    :param last_col: ``True`` if this is the last column of the row.
    :returns: The escaped field.
    :rtype: ``str``
    """
    if not not_null:
        return NULL_FIELD
    if text == "":
        return EMPTY_FIELD
    text = text.replace("\\", "\\\\")
    if last_col:
        return text
    return text.replace(" ", "\\ ")


def unescape_field(text: str, last_col: bool = False) -> Tuple[str, bool]:
    """
    Remove escapes from a snapshot field.

    :param text: The escaped field.
    :param last_col: ``True`` if this is the last column of the row.
    :returns: A tuple ``(value, not_null)``; ``not_null`` is ``False`` for
              an encoded absent value.
    :rtype: ``Tuple[str, bool]``
    """
    if "\\" not in text:
        return text, True
    if text == EMPTY_FIELD:
        return "", True
    if text == NULL_FIELD:
        return "", False
    if last_col:
        return text, True
    return _UNESCAPE_RE.sub(r"\1", text), True


def _strip_eol(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def format_field(
    entry: FileEntry,
    col: Column,
    width: int = -1,
    last_col: bool = False,
    group_numerics: bool = False,
    output_tz: Optional[tzinfo] = timezone.utc,
) -> str:
    """
    Format one field of an entry for output.

    Numeric values are rendered in decimal (optionally with grouped
    digits), ``mtime`` values are converted to ``output_tz`` and the result
    is escaped. If ``width`` is not negative the field is padded to
    ``width`` characters: numbers are right aligned, text is left aligned.

    :param entry: The entry to format.
    :param col: The column to format.
    :param width: Minimum field width, or ``-1`` for no padding.
    :param last_col: ``True`` if this is the last column of the row.
    :param group_numerics: Group digits with commas.
    :param output_tz: Zone for ``mtime`` values; ``None`` for local time.
    :returns: The formatted field.
    :rtype: ``str``
    """
    if col.numeric:
        value, present = entry.get_numeric(col)
        text = format_number(value, group_numerics) if present else ""
    else:
        text, present = entry.get_string(col)
        if present and col == Column.MTIME and output_tz is not timezone.utc:
            stamp = parse_mtime(text)
            if stamp is not None:
                text = format_mtime(stamp, output_tz) or text
    text = escape_field(text, present, last_col)
    if width < 0:
        return text
    if col.numeric:
        return text.rjust(width)
    return text.ljust(width)


def open_snapshot(path: str, mode: str = "r") -> TextIO:
    """
    Open a snapshot file for reading (``"r"``) or writing (``"w"``) as
    text, compressing or decompressing according to the file name
    extension (``.zst`` or ``.xz``).

    :param path: The snapshot file path.
    :type path: ``str``
    :param mode: ``"r"`` or ``"w"``.
    :type mode: ``str``
    :returns: A text stream.
    :rtype: ``TextIO``
    :raises: ``SiftSystemError`` if zstd support is needed but not
             available; ``OSError`` if the file cannot be opened.
    """
    if mode not in ("r", "w"):
        raise ValueError(f"Invalid snapshot file mode: {mode}")

    compress = None
    for ext, compression in _COMPRESSION_EXTENSIONS.items():
        if path.endswith(ext):
            compress = compression

    if compress is None:
        return open(
            path, mode, encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS, newline=""
        )

    binary_mode = mode + "b"
    stream: IO[bytes]
    if compress == "zstd":
        if not _HAVE_ZSTD:
            raise SiftSystemError(
                f"Cannot open zstd compressed snapshot {path}: "
                "zstd support not available"
            )
        fp = open(path, binary_mode)  # pylint: disable=consider-using-with
        try:
            if mode == "r":
                stream = zstd.ZstdDecompressor().stream_reader(fp, closefd=True)
            else:
                stream = zstd.ZstdCompressor().stream_writer(fp, closefd=True)
        except BaseException:
            fp.close()
            raise
    else:
        stream = lzma.LZMAFile(filename=path, mode=binary_mode)

    _log_debug_snapshot("Opened %s compressed snapshot %s (%s)", compress, path, mode)
    return io.TextIOWrapper(
        stream, encoding=SNAPSHOT_ENCODING, errors=SNAPSHOT_ERRORS, newline=""
    )


def _decompress_errors() -> Tuple[type, ...]:
    if _HAVE_ZSTD:
        return (lzma.LZMAError, zstd.ZstdError)
    return (lzma.LZMAError,)


def detect_snapshot_file(path: str) -> bool:
    """
    Return ``True`` if the file at ``path`` begins with the snapshot magic
    header. Files that cannot be read or decompressed are not snapshots.

    :param path: The path to check.
    :type path: ``str``
    :rtype: ``bool``
    """
    try:
        with open_snapshot(path) as fp:
            head = fp.read(len(SIFTER_FILE_HEADER))
    except (OSError, EOFError, SiftSystemError, *_decompress_errors()) as err:
        _log_debug_snapshot("Not detecting %s as a snapshot: %s", path, err)
        return False
    return head == SIFTER_FILE_HEADER


class SnapshotReader:
    """
    Streaming parser for snapshot text.

    Errors in individual rows are reported to ``on_error`` and parsing
    continues: a row whose field delimiters cannot be found is dropped, and
    a field whose value cannot be parsed is left unset.
    """

    def __init__(self, on_error: Optional[Callable[[str], None]] = None):
        """
        Initialise a new ``SnapshotReader``.

        :param on_error: Called with a message for each recoverable error.
        """
        self.on_error = on_error or _log_error
        self.columns: List[Column] = []
        self.line_number = 0

    def _parse_row(self, line: str) -> Optional[FileEntry]:
        entry = FileEntry()
        ncols = len(self.columns)
        for i, col in enumerate(self.columns):
            line = line.lstrip(" ")
            last_col = i == ncols - 1
            if last_col:
                end = len(line)
            else:
                match = _DELIMITER_RE.search(line)
                if not match:
                    self.on_error("Could not find delimiter in FSIFT file")
                    return None
                end = match.start() + 1
            text, not_null = unescape_field(line[:end], last_col)
            line = line[end:]
            if not not_null:
                continue
            try:
                entry.parse_and_set(col, text)
            except SiftParseError as err:
                self.on_error(f"Parse error in FSIFT file: {err}")
        return entry

    def read(self, lines: Iterable[str]) -> Iterator[FileEntry]:
        """
        Parse snapshot lines, yielding one ``FileEntry`` per data row.

        :param lines: An iterable of lines, such as an open text stream.
        :returns: An iterator over the parsed entries.
        :raises: ``SiftParseError`` if a data row appears before any
                 Columns directive, or a Columns directive names an unknown
                 column.
        """
        for line in lines:
            self.line_number += 1
            line = _strip_eol(line)
            if line.startswith("|"):
                try:
                    columns = parse_columns_directive(line)
                except SiftColumnError as err:
                    raise SiftParseError(
                        f"Bad Columns directive at line {self.line_number}: {err}"
                    ) from err
                if columns is not None:
                    _log_debug_snapshot(
                        "Snapshot columns: %s", format_column_names(columns)
                    )
                    self.columns = columns
                continue
            if not line:
                continue
            if not self.columns:
                raise SiftParseError("No column names were defined before data entries")
            entry = self._parse_row(line)
            if entry is not None:
                yield entry


def load_snapshot(
    lines: Iterable[str], on_error: Optional[Callable[[str], None]] = None
) -> List[FileEntry]:
    """
    Parse all data rows of a snapshot into a list of entries.
    """
    return list(SnapshotReader(on_error).read(lines))


class SnapshotWriter:
    """
    Format file entries, headers and footers as snapshot text.

    Every output line is passed, without a terminator, to ``emit``.
    """

    def __init__(
        self,
        emit: Callable[[str], None],
        group_numerics: bool = False,
        output_tz: Optional[tzinfo] = timezone.utc,
        plain: bool = False,
        plain0: bool = False,
        json_out: bool = False,
    ):
        """
        Initialise a new ``SnapshotWriter``.

        :param emit: Callable receiving each output line.
        :param group_numerics: Group digits of numeric values with commas.
        :param output_tz: Zone for time stamps; ``None`` for local time.
        :param plain: Omit header and footer.
        :param plain0: Like ``plain`` but separate fields with NUL and do
                       not pad fields.
        :param json_out: Write entries as a JSON array.
        """
        self.emit = emit
        self.group_numerics = group_numerics
        self.output_tz = output_tz
        self.plain = plain or plain0
        self.plain0 = plain0
        self.json_out = json_out
        self.separator = "\x00" if plain0 else "  "
        self.indent = "" if plain0 else "  "
        self._json_pending: Optional[str] = None

    def _directive(self, text: str = ""):
        self.emit(f"| {text}" if text else "|")

    def _time(self, when: datetime) -> str:
        return format_rfc3339(when.astimezone(self.output_tz))

    def header(
        self,
        command_line: str,
        cwd: str,
        key_columns: Sequence[Column],
        sort_columns: Sequence[Column],
        evaluated_columns: Sequence[Column],
        start_time: datetime,
        out_columns: Sequence[Column],
    ):
        """
        Write the snapshot header: the magic line, run information
        directives and the Columns directive.
        """
        if self.plain:
            return
        if self.json_out:
            self.emit("[")
            return
        if len(command_line) > MAX_COMMAND_LINE:
            command_line = command_line[:MAX_COMMAND_LINE] + " ..."
        self.emit(SIFTER_FILE_HEADER)
        self._directive(f"Command line: {command_line}")
        self._directive(f"Current working directory: {cwd}")
        self._directive(f"Compare keys: {format_column_names(key_columns)}")
        if sort_columns:
            self._directive(f"Sort keys: {format_column_names(sort_columns)}")
        self._directive(f"Evaluated columns: {format_column_names(evaluated_columns)}")
        self._directive(f"Run start time: {self._time(start_time)}")
        self._directive()
        self._directive(f"Columns: {format_column_names(out_columns)}")
        self._directive()

    def field(self, entry: FileEntry, col: Column, width: int, last_col: bool) -> str:
        """Format one field using this writer's settings."""
        return format_field(
            entry,
            col,
            width=width,
            last_col=last_col,
            group_numerics=self.group_numerics,
            output_tz=self.output_tz,
        )

    def update_widths(
        self, widths: List[int], entry: FileEntry, columns: Sequence[Column]
    ):
        """
        Widen ``widths`` to fit the fields of ``entry``. The last column is
        never padded, and nothing is padded in plain0 or JSON mode.
        """
        if self.plain0 or self.json_out:
            return
        for i, col in enumerate(columns[:-1]):
            widths[i] = max(widths[i], len(self.field(entry, col, -1, False)))

    @staticmethod
    def initial_widths(columns: Sequence[Column]) -> List[int]:
        """Return starting widths for ``columns`` (all ``-1``)."""
        return [-1] * len(columns)

    def row(self, entry: FileEntry, columns: Sequence[Column], widths: Sequence[int]):
        """Write one data row."""
        if self.json_out:
            self._json_row(entry, columns)
            return
        ncols = len(columns)
        fields = [
            self.field(entry, col, widths[i], i == ncols - 1 or self.plain0)
            for i, col in enumerate(columns)
        ]
        self.emit(self.indent + self.separator.join(fields))

    def rows(self, entries: Sequence[FileEntry], columns: Sequence[Column]):
        """
        Write a data row for each of ``entries``, padding each column to
        the widest value it holds.
        """
        widths = self.initial_widths(columns)
        for entry in entries:
            self.update_widths(widths, entry, columns)
        for entry in entries:
            self.row(entry, columns, widths)

    def _json_row(self, entry: FileEntry, columns: Sequence[Column]):
        # Entries are separated by commas: hold each one until the next.
        if self._json_pending is not None:
            self._emit_json(self._json_pending + ",")
        self._json_pending = json.dumps(
            entry.to_dict(columns), indent=4, sort_keys=True, ensure_ascii=False
        )

    def _emit_json(self, text: str):
        for line in text.split("\n"):
            self.emit("    " + line)

    def footer(
        self,
        end_time: datetime,
        elapsed: timedelta,
        summary: Sequence[Sequence[str]],
        warnings: Sequence[str] = (),
        warning_count: int = 0,
        errors: Sequence[str] = (),
        error_count: int = 0,
    ):
        """
        Write the snapshot footer: run times, the statistics table and
        any recorded warnings and errors.
        """
        if self.json_out and self._json_pending is not None:
            self._emit_json(self._json_pending)
            self._json_pending = None
        if self.plain:
            return
        if self.json_out:
            self.emit("]")
            return
        self._directive()
        self._directive(f"Run end time: {self._time(end_time)}")
        self._directive(f"Elapsed time: {elapsed}")
        self._directive()
        for line in summary:
            self._directive("  ".join(line))
        self._messages(warnings, warning_count, "WARNINGS")
        self._messages(errors, error_count, "ERRORS")

    def _messages(self, messages: Sequence[str], count: int, kind: str):
        if count <= 0:
            return
        self._directive()
        self._directive(f"*** {kind} ENCOUNTERED DURING RUN:")
        self._directive()
        for msg in messages:
            self._directive(msg)
        if len(messages) < count:
            self._directive(
                f"Limit reached; {count - len(messages)} more error(s) not printed"
            )


__all__ = [
    "SIFTER_FILE_HEADER",
    "EMPTY_FIELD",
    "NULL_FIELD",
    "escape_field",
    "unescape_field",
    "format_field",
    "open_snapshot",
    "detect_snapshot_file",
    "SnapshotReader",
    "load_snapshot",
    "SnapshotWriter",
]
