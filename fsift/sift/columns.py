# Copyright Red Hat
#
# fsift/sift/columns.py - File Sifter column registry
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Column registry for file sifter entries.

Every attribute that a ``FileEntry`` may carry is described by a
``Column``: a stable integer identity with a one character short name, a
long name, a help string and ``numeric`` / ``dynamic`` flags. The set of
columns is closed and defined once in ``_COLUMN_DEFS``.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple
from enum import IntEnum
import logging
import re

from fsift import FSIFT_SUBSYSTEM_COLUMNS, SiftColumnError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_columns(msg, *args, **kwargs):
    """A wrapper for columns subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_COLUMNS}, **kwargs)


#: Marker prefix for inverse (descending) columns in a column list.
INVERSE_MARKER = "/"

_COLUMNS_DIRECTIVE_RE = re.compile(r"^\|\s*Columns:\s+([\w,]+)\s*$", re.ASCII)


class Column(IntEnum):
    """
    Enum of all attribute columns known to the file sifter.
    """

    PATH = 0
    BASE = 1
    EXT = 2
    DIR = 3
    DEPTH = 4
    SIZE = 5
    MTIME = 6
    MSTAMP = 7
    DEVICE = 8
    SIDE = 9
    MATCHED = 10
    MEMBERSHIP = 11
    REDUNDANCY = 12
    REDUNIDX = 13
    MODESTR = 14
    FILETYPE = 15
    UID = 16
    GID = 17
    USER = 18
    GROUP = 19
    NLINKS = 20
    MIMETYPE = 21
    CRC32 = 22
    SHA1 = 23
    SHA256 = 24
    SHA512 = 25
    MD5 = 26

    @property
    def short_name(self) -> str:
        """The one character name of this column."""
        return _COLUMN_DEFS[self].short_name

    @property
    def long_name(self) -> str:
        """The long name of this column."""
        return _COLUMN_DEFS[self].long_name

    @property
    def help(self) -> str:
        """The help text for this column."""
        return _COLUMN_DEFS[self].help

    @property
    def numeric(self) -> bool:
        """``True`` if values of this column are 64-bit integers."""
        return _COLUMN_DEFS[self].numeric

    @property
    def dynamic(self) -> bool:
        """``True`` if this column is computed during match analysis."""
        return _COLUMN_DEFS[self].dynamic

    def __str__(self):
        return self.long_name


@dataclass(frozen=True)
class ColumnDef:
    """
    Static definition of a single column.
    """

    #: The column identity
    column: Column
    #: One character name
    short_name: str
    #: Long name
    long_name: str
    #: Help text
    help: str
    #: Values are 64-bit signed integers
    numeric: bool = False
    #: Computed during analysis; never read from or written to snapshots
    dynamic: bool = False


# Definitions in help text order.
_COLUMN_TABLE = (
    ColumnDef(
        Column.PATH, "p", "path", "The path of this file relative to the given root"
    ),
    ColumnDef(Column.BASE, "b", "base", "The base name of this file"),
    ColumnDef(Column.EXT, "x", "ext", "The extension of this filename, if any"),
    ColumnDef(Column.DIR, "D", "dir", "The directory part of the 'path' field"),
    ColumnDef(
        Column.DEPTH,
        "d",
        "depth",
        "How many subdirectories this file is below its root",
        numeric=True,
    ),
    ColumnDef(
        Column.SIZE,
        "s",
        "size",
        "Regular files: size in bytes. Dirs: cumulative size; Other: 0",
        numeric=True,
    ),
    ColumnDef(Column.MTIME, "t", "mtime", "Modification time as a string"),
    ColumnDef(
        Column.MSTAMP,
        "T",
        "mstamp",
        "Modification time as seconds since the Unix epoch",
        numeric=True,
    ),
    ColumnDef(
        Column.MODESTR,
        "o",
        "modestr",
        "Mode and permission bits as a human readable string",
    ),
    ColumnDef(
        Column.FILETYPE,
        "f",
        "filetype",
        "The type of this file: f=regular, d=dir, etc.",
    ),
    ColumnDef(Column.UID, "U", "uid", "The user ID of this file's owner", numeric=True),
    ColumnDef(Column.GID, "G", "gid", "The group ID of this file", numeric=True),
    ColumnDef(Column.USER, "u", "user", "The user name of this file's owner"),
    ColumnDef(Column.GROUP, "g", "group", "The group name of this file"),
    ColumnDef(
        Column.NLINKS,
        "L",
        "nlinks",
        "The number of hard links to this file",
        numeric=True,
    ),
    ColumnDef(
        Column.DEVICE,
        "V",
        "device",
        "The ID of the device containing this file",
        numeric=True,
    ),
    ColumnDef(
        Column.MIMETYPE,
        "y",
        "mimetype",
        "The MIME type of this file's content, as detected by libmagic",
    ),
    ColumnDef(
        Column.SIDE,
        "S",
        "side",
        "The 'side' of this file's root: '0'=left '1'=right",
        numeric=True,
        dynamic=True,
    ),
    ColumnDef(
        Column.MATCHED,
        "M",
        "matched",
        "True if this file matches any file from the *other* side",
        numeric=True,
        dynamic=True,
    ),
    ColumnDef(
        Column.MEMBERSHIP,
        "m",
        "membership",
        "Visual representation of 'side' and 'matched' columns",
        dynamic=True,
    ),
    ColumnDef(
        Column.REDUNDANCY,
        "r",
        "redundancy",
        "Count of files matching this file on *this* side",
        numeric=True,
        dynamic=True,
    ),
    ColumnDef(
        Column.REDUNIDX,
        "I",
        "redunidx",
        "Ordinal of this file amongst equivalents on *this* side",
        numeric=True,
        dynamic=True,
    ),
    ColumnDef(Column.CRC32, "3", "crc32", "The CRC32 digest of this file"),
    ColumnDef(Column.SHA1, "1", "sha1", "The SHA1 digest of this file"),
    ColumnDef(Column.SHA256, "2", "sha256", "The SHA256 digest of this file"),
    ColumnDef(Column.SHA512, "A", "sha512", "The SHA512 digest of this file"),
    ColumnDef(Column.MD5, "5", "md5", "The MD5 digest of this file"),
)

_COLUMN_DEFS = {cdef.column: cdef for cdef in _COLUMN_TABLE}

_NAME_TO_COLUMN = {}
for _cdef in _COLUMN_TABLE:
    _NAME_TO_COLUMN[_cdef.short_name] = _cdef.column
    _NAME_TO_COLUMN[_cdef.long_name] = _cdef.column
del _cdef


@dataclass
class ColumnSpec:
    """
    A parsed column list: the columns in order and the subset of them that
    was marked inverse (descending).
    """

    #: Columns in the order given
    columns: List[Column] = field(default_factory=list)
    #: Columns marked with the inverse prefix
    inverse: List[Column] = field(default_factory=list)


def lookup_column(name: str) -> Column:
    """
    Look up a column by short or long name.

    :param name: The short or long column name.
    :type name: ``str``
    :returns: The matching column.
    :rtype: ``Column``
    :raises: ``SiftColumnError`` if no column has this name.
    """
    try:
        return _NAME_TO_COLUMN[name]
    except KeyError as err:
        raise SiftColumnError(f"Bad column name '{name}'") from err


def is_numeric(col: int) -> bool:
    """Return ``True`` if ``col`` is a known numeric column."""
    cdef = _COLUMN_DEFS.get(col)
    return cdef is not None and cdef.numeric


def is_dynamic(col: int) -> bool:
    """Return ``True`` if ``col`` is a known dynamic column."""
    cdef = _COLUMN_DEFS.get(col)
    return cdef is not None and cdef.dynamic


def column_help() -> List[Tuple[str, str, str]]:
    """
    Return ``(short_name, long_name, help)`` for every column, in the order
    columns are presented to users.
    """
    return [(cdef.short_name, cdef.long_name, cdef.help) for cdef in _COLUMN_TABLE]


def column_help_lines() -> List[str]:
    """
    Return formatted help lines for every column.
    """
    return ["%s %-12s %s" % entry for entry in column_help()]


def parse_column_spec(text: str) -> ColumnSpec:
    """
    Parse a column list specification.

    A list containing no commas that is not itself a long column name is
    a string of single character short names (``"stp"`` is equivalent to
    ``"size,mtime,path"``). Otherwise the list is split on commas. In
    either form a ``/`` marks the following column as inverse.

    :param text: The column list to parse.
    :type text: ``str``
    :returns: The parsed columns and inverse markers.
    :rtype: ``ColumnSpec``
    :raises: ``SiftColumnError`` if any column name is not known.
    """
    spec = ColumnSpec()
    if not text:
        return spec

    if "," not in text and text.lstrip(INVERSE_MARKER) not in _NAME_TO_COLUMN:
        inverse = False
        for char in text:
            if char == INVERSE_MARKER:
                inverse = True
                continue
            col = lookup_column(char)
            spec.columns.append(col)
            if inverse:
                spec.inverse.append(col)
            inverse = False
        if inverse:
            raise SiftColumnError(f"Bad column name '{INVERSE_MARKER}'")
        _log_debug_columns("Parsed short column list '%s': %s", text, spec)
        return spec

    for token in text.split(","):
        inverse = token.startswith(INVERSE_MARKER)
        if inverse:
            token = token[len(INVERSE_MARKER) :]
        col = lookup_column(token)
        spec.columns.append(col)
        if inverse:
            spec.inverse.append(col)
    _log_debug_columns("Parsed column list '%s': %s", text, spec)
    return spec


def parse_column_list(text: str, allow_inverse: bool = False) -> List[Column]:
    """
    Parse a column list, returning the columns in order.

    :param text: The column list to parse.
    :type text: ``str``
    :param allow_inverse: ``True`` if inverse markers are permitted.
    :type allow_inverse: ``bool``
    :returns: The list of columns.
    :rtype: ``List[Column]``
    :raises: ``SiftColumnError`` for unknown names, or for inverse markers
             when ``allow_inverse`` is ``False``.
    """
    spec = parse_column_spec(text)
    if spec.inverse and not allow_inverse:
        raise SiftColumnError(
            f"This columns list may not contain inverse markers: '{text}'"
        )
    return spec.columns


def parse_columns_directive(line: str) -> Optional[List[Column]]:
    """
    Parse a ``| Columns: ...`` snapshot directive.

    :param line: A directive line from a snapshot file.
    :type line: ``str``
    :returns: The list of columns, or ``None`` if ``line`` is not a
              columns directive.
    :raises: ``SiftColumnError`` if the directive names an unknown column.
    """
    match = _COLUMNS_DIRECTIVE_RE.match(line)
    if not match:
        return None
    return parse_column_list(match.group(1))


def format_column_names(cols: Iterable[Column]) -> str:
    """
    Return a comma separated list of long column names.
    """
    return ",".join(col.long_name for col in cols)


def insert_column(cols: List[Column], index: int, col: Column) -> List[Column]:
    """
    Insert ``col`` into ``cols`` at ``index``.

    A negative index counts from the end of the list so that ``-1``
    inserts before the last element. The index is clamped to the bounds of
    the list.

    :param cols: The column list to modify.
    :param index: Insertion position.
    :param col: The column to insert.
    :returns: The modified list.
    """
    if index < 0:
        index = len(cols) + index
    index = max(0, min(index, len(cols)))
    cols.insert(index, col)
    return cols


__all__ = [
    "Column",
    "ColumnDef",
    "ColumnSpec",
    "INVERSE_MARKER",
    "lookup_column",
    "is_numeric",
    "is_dynamic",
    "column_help",
    "column_help_lines",
    "parse_column_spec",
    "parse_column_list",
    "parse_columns_directive",
    "format_column_names",
    "insert_column",
]
