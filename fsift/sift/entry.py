# Copyright Red Hat
#
# fsift/sift/entry.py - File Sifter file entries
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Sparse file attribute records and their comparison.

A ``FileEntry`` maps ``Column`` identities to ``int`` or ``str`` values.
Entries are partially populated: a column with no stored value may still be
derivable from other stored columns (for example ``base`` from ``path``).
Accessors return ``(value, present)`` pairs so that callers can distinguish
an absent ("null") value from an empty one.
"""
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from functools import cmp_to_key
import logging

from fsift import (
    INT64_MAX,
    INT64_MIN,
    format_mtime,
    parse_int64,
    parse_mtime,
)

from .columns import Column

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: A column value: numeric columns hold ``int``, all others ``str``.
FieldValue = Union[int, str]

#: Callback receiving the ``all_non_null`` result of each comparison.
NullCallback = Callable[[bool], None]

# Membership codes indexed by (side, matched).
_MEMBERSHIP_CODES = {
    (False, False): "<!",
    (False, True): "<=",
    (True, False): ">!",
    (True, True): ">=",
}

# Checked in order: a symlink to a char device is still a char device.
_FILE_TYPE_CODES = (
    ("c", "c"),
    ("D", "b"),
    ("p", "p"),
    ("L", "L"),
    ("d", "d"),
    ("S", "S"),
)


def path_base(path: str) -> str:
    """
    Return the last element of a slash separated path. Trailing slashes
    are removed before extracting the last element; an empty path gives
    ``"."`` and a path of only slashes gives ``"/"``.
    """
    if not path:
        return "."
    path = path.rstrip("/")
    if not path:
        return "/"
    return path.rsplit("/", 1)[-1]


def _clean(path: str) -> str:
    """Lexically clean a slash separated path."""
    if not path:
        return "."
    rooted = path.startswith("/")
    parts = []
    for elem in path.split("/"):
        if elem in ("", "."):
            continue
        if elem == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append(elem)
            continue
        parts.append(elem)
    cleaned = "/".join(parts)
    if rooted:
        return "/" + cleaned
    return cleaned or "."


def path_dir(path: str) -> str:
    """
    Return all but the last element of a slash separated path, cleaned.
    The directory of a bare name is ``"."``; the directory of a path with
    a trailing slash is the path itself without the slash.
    """
    return _clean(path[: path.rfind("/") + 1])


def path_ext(path: str) -> str:
    """
    Return the file name extension of a slash separated path: the suffix
    starting at the final ``.`` of the last element, or ``""``.
    """
    for i in range(len(path) - 1, -1, -1):
        if path[i] == "/":
            break
        if path[i] == ".":
            return path[i:]
    return ""


def mode_str_to_file_type(mode_str: str) -> str:
    """
    Compute a one character file type code from a mode string: ``'D'``
    (device) becomes ``'b'`` and anything not otherwise recognised is a
    regular file, ``'f'``.
    """
    for char, code in _FILE_TYPE_CODES:
        if char in mode_str:
            return code
    return "f"


class FileEntry:
    """
    A sparse, column indexed record of one file's attributes.

    Derived values are stored into the entry the first time they are
    read, with the exception of ``membership``, which depends on the
    analysis-time ``side`` and ``matched`` columns and is recomputed on
    every read.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Optional[Dict[Column, FieldValue]] = None):
        """
        Initialise a new ``FileEntry``, optionally populated from a
        mapping of columns to values.

        :param fields: Initial column values.
        :type fields: ``Optional[Dict[Column, FieldValue]]``
        """
        self._fields: Dict[Column, FieldValue] = {}
        for col, value in (fields or {}).items():
            if col.numeric:
                self.set_numeric(col, value)
            else:
                self.set_string(col, value)

    def __eq__(self, other):
        if not isinstance(other, FileEntry):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self):
        items = ", ".join(
            f"{col.long_name}={value!r}" for col, value in sorted(self._fields.items())
        )
        return f"FileEntry({items})"

    def __str__(self):
        return self.__repr__()

    @property
    def fields(self) -> Dict[Column, FieldValue]:
        """A copy of the stored (including memoized) column values."""
        return dict(self._fields)

    def has(self, col: Column) -> bool:
        """Return ``True`` if a value for ``col`` is stored in this entry."""
        return col in self._fields

    def _derive_string(self, col: Column) -> Optional[str]:
        fields = self._fields
        if col == Column.BASE:
            if Column.PATH in fields:
                return path_base(fields[Column.PATH])
        elif col == Column.DIR:
            if Column.PATH in fields:
                return path_dir(fields[Column.PATH])
        elif col == Column.EXT:
            if Column.PATH in fields:
                return path_ext(fields[Column.PATH])
            if Column.BASE in fields:
                return path_ext(fields[Column.BASE])
        elif col == Column.MEMBERSHIP:
            side, have_side = self.get_bool(Column.SIDE)
            matched, have_matched = self.get_bool(Column.MATCHED)
            if have_side and have_matched:
                return _MEMBERSHIP_CODES[(side, matched)]
        elif col == Column.FILETYPE:
            if Column.MODESTR in fields:
                return mode_str_to_file_type(fields[Column.MODESTR])
        elif col == Column.MTIME:
            stamp, present = self.get_numeric(Column.MSTAMP)
            if present:
                return format_mtime(stamp)
        return None

    def _derive_numeric(self, col: Column) -> Optional[int]:
        fields = self._fields
        if col == Column.MSTAMP:
            if Column.MTIME in fields:
                return parse_mtime(fields[Column.MTIME])
        elif col == Column.DEPTH:
            if Column.PATH in fields:
                return fields[Column.PATH].count("/")
        return None

    def get_string(self, col: Column) -> Tuple[str, bool]:
        """
        Get the value of a string column, deriving it if necessary.

        :param col: The column to read.
        :type col: ``Column``
        :returns: A ``(value, present)`` tuple; ``("", False)`` if the value
                  is absent and cannot be derived.
        :rtype: ``Tuple[str, bool]``
        :raises: ``TypeError`` if ``col`` is numeric or the stored value is
                 not a string.
        """
        if col.numeric:
            raise TypeError(f"Column '{col.long_name}' is not a string column")
        value = self._fields.get(col)
        if value is None:
            value = self._derive_string(col)
            if value is None:
                return "", False
            if col != Column.MEMBERSHIP:
                self._fields[col] = value
        elif not isinstance(value, str):
            raise TypeError(f"Column '{col.long_name}' holds a non-string value")
        return value, True

    def get_numeric(self, col: Column) -> Tuple[int, bool]:
        """
        Get the value of a numeric column, deriving it if necessary.

        :param col: The column to read.
        :type col: ``Column``
        :returns: A ``(value, present)`` tuple; ``(0, False)`` if the value
                  is absent and cannot be derived.
        :rtype: ``Tuple[int, bool]``
        :raises: ``TypeError`` if ``col`` is not numeric or the stored value
                 is not an integer.
        """
        if not col.numeric:
            raise TypeError(f"Column '{col.long_name}' is not a numeric column")
        value = self._fields.get(col)
        if value is None:
            value = self._derive_numeric(col)
            if value is None:
                return 0, False
            self._fields[col] = value
        elif isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Column '{col.long_name}' holds a non-numeric value")
        return value, True

    def get_value(self, col: Column) -> Tuple[FieldValue, bool]:
        """
        Get the value of any column as ``(value, present)``.
        """
        if col.numeric:
            return self.get_numeric(col)
        return self.get_string(col)

    def set_string(self, col: Column, value: str):
        """
        Store a string value, replacing any previous or derived value.

        :raises: ``TypeError`` if ``col`` is numeric or ``value`` is not a
                 string.
        """
        if col.numeric:
            raise TypeError(f"Column '{col.long_name}' is not a string column")
        if not isinstance(value, str):
            raise TypeError(f"Value for column '{col.long_name}' must be a string")
        self._fields[col] = value

    def set_numeric(self, col: Column, value: int):
        """
        Store a numeric value, replacing any previous or derived value.

        :raises: ``TypeError`` if ``col`` is not numeric or ``value`` is not
                 an integer; ``OverflowError`` if ``value`` does not fit in
                 a signed 64-bit integer.
        """
        if not col.numeric:
            raise TypeError(f"Column '{col.long_name}' is not a numeric column")
        if isinstance(value, bool):
            value = int(value)
        if not isinstance(value, int):
            raise TypeError(f"Value for column '{col.long_name}' must be an integer")
        if value < INT64_MIN or value > INT64_MAX:
            raise OverflowError(
                f"Value for column '{col.long_name}' out of range: {value}"
            )
        self._fields[col] = value

    def set_bool(self, col: Column, value: bool):
        """Store a boolean in a numeric column as ``1`` or ``0``."""
        self.set_numeric(col, 1 if value else 0)

    def get_bool(self, col: Column) -> Tuple[bool, bool]:
        """
        Get a numeric column as a boolean: any non-zero value is true.

        :returns: A ``(value, present)`` tuple.
        """
        value, present = self.get_numeric(col)
        return value != 0, present

    def bool_or_false(self, col: Column) -> bool:
        """Get a numeric column as a boolean, ``False`` if absent."""
        return self.get_bool(col)[0]

    def numeric_or_zero(self, col: Column) -> int:
        """Get a numeric column, ``0`` if absent."""
        return self.get_numeric(col)[0]

    def parse_and_set(self, col: Column, text: str):
        """
        Set a column from its unescaped text form. Dynamic columns are
        ignored; numeric columns are parsed as base-10 64-bit integers with
        any grouping commas removed.

        :param col: The column to set.
        :param text: The unescaped text value.
        :raises: ``SiftParseError`` if a numeric value cannot be parsed.
        """
        if col.dynamic:
            return
        if col.numeric:
            self.set_numeric(col, parse_int64(text))
        else:
            self.set_string(col, text)

    def to_dict(self, columns: Iterable[Column]) -> Dict[str, Optional[FieldValue]]:
        """
        Return a mapping of long column name to value (``None`` if absent)
        for the given columns.
        """
        result = {}
        for col in columns:
            value, present = self.get_value(col)
            result[col.long_name] = value if present else None
        return result


def compare_entries(
    a: FileEntry,
    b: FileEntry,
    columns: Iterable[Column],
    inverse: Iterable[Column] = (),
) -> Tuple[int, bool]:
    """
    Compare two entries by a list of key columns in order of precedence.

    The first column where both values are present and differ decides the
    order. If exactly one value of a column is absent, the entry with the
    absent value sorts first and the comparison stops there. Columns where
    both values are absent are skipped.

    :param a: The first entry.
    :param b: The second entry.
    :param columns: Key columns, highest precedence first.
    :param inverse: Columns whose ordering is reversed.
    :returns: A tuple ``(ordering, all_non_null)`` where ``ordering`` is
              ``-1``, ``0`` or ``1`` and ``all_non_null`` is ``False`` if
              any absent value took part in the comparison.
    :rtype: ``Tuple[int, bool]``
    """
    inverse = set(inverse)
    saw_null = False
    for col in columns:
        v1, ok1 = a.get_value(col)
        v2, ok2 = b.get_value(col)
        sign = -1 if col in inverse else 1
        if ok1 and ok2:
            if v1 != v2:
                return (1 if v1 > v2 else -1) * sign, True
        elif ok2:
            return -1 * sign, False
        elif ok1:
            return 1 * sign, False
        else:
            saw_null = True
    return 0, not saw_null


def sort_entries(
    entries: Iterable[FileEntry],
    columns: List[Column],
    inverse: Iterable[Column] = (),
    null_callback: Optional[NullCallback] = None,
) -> List[FileEntry]:
    """
    Return a new list of ``entries`` stably sorted by ``columns``.

    :param entries: The entries to sort.
    :param columns: Sort key columns, highest precedence first.
    :param inverse: Columns to sort in descending order.
    :param null_callback: Called with the ``all_non_null`` flag of every
                          comparison made.
    :returns: The sorted entries.
    """
    inverse = set(inverse)

    def _cmp(a: FileEntry, b: FileEntry) -> int:
        diff, not_null = compare_entries(a, b, columns, inverse)
        if null_callback:
            null_callback(not_null)
        return diff

    return sorted(entries, key=cmp_to_key(_cmp))


__all__ = [
    "FieldValue",
    "NullCallback",
    "FileEntry",
    "path_base",
    "path_dir",
    "path_ext",
    "mode_str_to_file_type",
    "compare_entries",
    "sort_entries",
]
