# Copyright Red Hat
#
# fsift/sift/options.py - File Sifter run options
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File sifter run options and column selection.
"""
from dataclasses import dataclass, field, fields
from typing import List, Optional, Sequence, Tuple, Union
from argparse import Namespace
import logging

from fsift import SiftColumnError

from .columns import (
    Column,
    ColumnSpec,
    format_column_names,
    insert_column,
    parse_column_spec,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Default output columns
DEFAULT_OUTPUT_COLUMNS = (Column.MODESTR, Column.SIZE, Column.MTIME, Column.PATH)
#: Default compare key columns
DEFAULT_KEY_COLUMNS = (Column.PATH, Column.SIZE, Column.MTIME, Column.MODESTR)

#: Prefix of a column list that extends the current list
APPEND_MARKER = "+"

#: Membership filter codes and the ``membership`` column values they select
MEMBERSHIP_CODES = {
    "L": "<!",
    "R": ">!",
    "l": "<=",
    "r": ">=",
}


@dataclass(frozen=True)
class SiftOptions:
    """
    File sifter run options.
    """

    #: Output column selections, applied in order
    columns: Tuple[str, ...] = field(default_factory=tuple)
    #: Sort column selections, applied in order
    sort: Tuple[str, ...] = field(default_factory=tuple)
    #: Compare key column selections, applied in order
    key: Tuple[str, ...] = field(default_factory=tuple)
    #: Add the md5 digest to the output and compare key
    md5: bool = False
    #: Add the sha1 digest to the output and compare key
    sha1: bool = False
    #: Add the sha256 digest to the output and compare key
    sha256: bool = False
    #: Add the sha512 digest to the output and compare key
    sha512: bool = False
    #: Filter expressions applied before indexing
    prefilter: Tuple[str, ...] = field(default_factory=tuple)
    #: Base name globs; each adds the prefilter ``base*=*GLOB*`` after
    #: the ``prefilter`` expressions
    base_match: Tuple[str, ...] = field(default_factory=tuple)
    #: File name globs excluding files and directory trees from scans
    exclude: Tuple[str, ...] = field(default_factory=tuple)
    #: Only index regular files while scanning
    regular_only: bool = False
    #: Follow symbolic links while scanning
    follow_links: bool = False
    #: Do not descend into directories on other file systems
    xdev: bool = False
    #: Filter expressions applied after analysis
    postfilter: Tuple[str, ...] = field(default_factory=tuple)
    #: Membership filter codes (one or more of ``lrLR``)
    membership: str = ""
    #: Show differing entries only (membership ``LR``)
    diff: bool = False
    #: Do not detect snapshot files given as roots
    no_detect: bool = False
    #: Left side roots
    roots_left: Tuple[str, ...] = field(default_factory=tuple)
    #: Right side roots
    roots_right: Tuple[str, ...] = field(default_factory=tuple)
    #: Output file path (``None`` for standard output)
    output: Optional[str] = None
    #: Report an error unless every left entry is matched on the right
    verify: bool = False
    #: Only output summary information
    summary_only: bool = False
    #: Only output entries, no header or footer
    plain: bool = False
    #: Like plain, separating all fields and lines with NUL characters
    plain0: bool = False
    #: Group digits of numeric values with commas
    group_nums: bool = False
    #: Do not report comparisons of absent values
    ignore_nulls: bool = False
    #: Output entries as JSON
    json_out: bool = False
    #: Time zone for output time stamps
    out_zone: str = "UTC"
    #: Output verbosity level
    verbosity: int = 0
    #: The command line recorded in the output header
    command_line: str = ""

    def __str__(self):
        """
        Return a human readable string representation of this
        ``SiftOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, " ".join(val) if isinstance(val, tuple) else val)
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    @property
    def has_left(self) -> bool:
        """``True`` if roots were given for the left side."""
        return bool(self.roots_left)

    @property
    def has_right(self) -> bool:
        """``True`` if roots were given for the right side."""
        return bool(self.roots_right)

    @property
    def membership_codes(self) -> str:
        """The effective membership filter codes."""
        return "LR" if self.diff else self.membership

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "SiftOptions":
        """
        Initialise SiftOptions from command line arguments.

        Construct a new ``SiftOptions`` object from the command line
        arguments in ``cmd_args``.

        :param cmd_args: The command line selection arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``SiftOptions`` instance
        :rtype: ``SiftOptions``
        """

        def get_value(name: str) -> Union[bool, int, Optional[str], Tuple[str, ...]]:
            """
            Get a value from ``cmd_args``, converting lists to tuples.

            :param name: The name of the argument.
            :type name: ``str``
            :returns: The argument converted to a tuple if appropriate.
            :rtype: ``Union[bool, int, str, Optional[str], Tuple[str, ...]]``
            """
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            return attr

        kwargs = {}
        for fld in fields(cls):
            if not hasattr(cmd_args, fld.name):
                continue
            value = get_value(fld.name)
            # Unset arguments keep their defaults
            if value is None:
                continue
            kwargs[fld.name] = value
        options = cls(**kwargs)
        _log_debug("Initialised SiftOptions from arguments: %s", repr(options))
        return options


def base_match_filter(pattern: str) -> str:
    """Return the prefilter expression that a base name glob stands for."""
    return f"base*=*{pattern}*"


class ColumnSelector:
    """
    Build a column list from a sequence of column selections.

    A selection without a leading ``+`` replaces the current list. A
    selection with a leading ``+`` adds each of its columns that is not
    already present, starting from the defaults if nothing has been
    selected yet. A bare ``+`` therefore selects the defaults.
    """

    def __init__(self, defaults: Sequence[Column] = (), allow_inverse: bool = False):
        """
        Initialise a new ``ColumnSelector``.

        :param defaults: The columns used when no selection replaces them.
        :param allow_inverse: ``True`` to permit inverse (``/``) markers.
        """
        self.defaults: List[Column] = list(defaults)
        self.allow_inverse = allow_inverse
        self._columns: Optional[List[Column]] = None
        self._inverse: List[Column] = []

    @property
    def columns(self) -> List[Column]:
        """The selected columns (the defaults if nothing was selected)."""
        if self._columns is None:
            return list(self.defaults)
        return list(self._columns)

    @property
    def inverse(self) -> List[Column]:
        """The selected columns that were marked inverse."""
        return list(self._inverse)

    def _parse(self, text: str) -> ColumnSpec:
        spec = parse_column_spec(text)
        if spec.inverse and not self.allow_inverse:
            raise SiftColumnError(
                f"This columns list may not contain inverse markers: '{text}'"
            )
        return spec

    def update(self, selection: str, posn: int = -1) -> "ColumnSelector":
        """
        Apply one column selection.

        :param selection: A column list, optionally prefixed with ``+``.
        :type selection: ``str``
        :param posn: Insertion index for appended columns; negative values
                     count from the end (``-1`` inserts before the last
                     column).
        :type posn: ``int``
        :returns: This ``ColumnSelector``.
        :raises: ``SiftColumnError`` if the selection cannot be parsed.
        """
        appending = selection.startswith(APPEND_MARKER)
        if appending:
            selection = selection[len(APPEND_MARKER) :]
        spec = self._parse(selection)
        if not appending:
            self._columns = spec.columns
            self._inverse = spec.inverse
            return self
        if self._columns is None:
            self._columns = list(self.defaults)
        for col in spec.columns:
            if col in self._columns:
                continue
            insert_column(self._columns, posn, col)
            if col in spec.inverse:
                self._inverse.append(col)
        return self

    def update_all(self, selections: Sequence[str]) -> "ColumnSelector":
        """Apply each selection in ``selections`` in order."""
        for selection in selections:
            self.update(selection)
        return self

    def __str__(self):
        return format_column_names(self.columns)


__all__ = [
    "APPEND_MARKER",
    "ColumnSelector",
    "DEFAULT_KEY_COLUMNS",
    "DEFAULT_OUTPUT_COLUMNS",
    "MEMBERSHIP_CODES",
    "SiftOptions",
    "base_match_filter",
]
