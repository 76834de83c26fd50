# Copyright Red Hat
#
# fsift/sift/filters.py - File Sifter filter expressions
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Filter expressions for selecting file entries.

A filter argument has the form ``[/]column op value`` where ``op`` is one
of ``=``, ``!=``, ``<``, ``<=``, ``>``, ``>=``, ``~=`` (regular
expression), ``!~=``, ``*=`` (glob), ``!*=``, ``.isnull`` or ``!.isnull``.
The leading ``/`` marks a pre-filter that may prune directory recursion.
The arguments ``and`` and ``or`` combine the two expressions that follow
them (forward Polish notation); all remaining top level expressions are
implicitly ANDed together.
"""
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, List, Optional, Pattern, Tuple, Union
from enum import Enum
import logging
import re

from fsift import (
    FSIFT_SUBSYSTEM_FILTER,
    SiftColumnError,
    SiftFilterError,
    SiftParseError,
    parse_int64,
)

from .columns import Column, lookup_column
from .entry import FileEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_filter(msg, *args, **kwargs):
    """A wrapper for filter subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_FILTER}, **kwargs)


# Glob pieces with special meaning: \*, \?, \[, **, *, ?, a bracketed
# character class starting with ']', and a normal bracketed class.
_GLOB_RE = re.compile(
    r"\\\*|\\\?|\\\[" r"|\*\*|\*|\?" r"|\[\^?\][^]]*\]" r"|\[\^?[^]]+\]"
)

_FILTER_ARG_RE = re.compile(
    r"\s*(/)?\s*(\w+)\s*(!?~=|!?\*=|>=|<=|>|<|!?=|!?\.isnull)(.*)",
    re.ASCII | re.DOTALL,
)


class FilterOp(Enum):
    """
    Filter operations.
    """

    EQ = "eq"
    LESS_EQ = "lesseq"
    LESS = "less"
    REGEX = "regex"
    GLOB = "glob"
    AND = "and"
    OR = "or"
    IS_NULL = "isnull"


# (op, negate) for each operator token.
_OP_TOKENS = {
    "=": (FilterOp.EQ, False),
    "!=": (FilterOp.EQ, True),
    "<": (FilterOp.LESS, False),
    "<=": (FilterOp.LESS_EQ, False),
    ">": (FilterOp.LESS_EQ, True),
    ">=": (FilterOp.LESS, True),
    "~=": (FilterOp.REGEX, False),
    "!~=": (FilterOp.REGEX, True),
    "*=": (FilterOp.GLOB, False),
    "!*=": (FilterOp.GLOB, True),
    ".isnull": (FilterOp.IS_NULL, False),
    "!.isnull": (FilterOp.IS_NULL, True),
}

_TOKEN_FOR_OP = {value: token for token, value in _OP_TOKENS.items()}

_COMPARISON_OPS = (FilterOp.EQ, FilterOp.LESS_EQ, FilterOp.LESS)


@dataclass
class Filter:
    """
    A node of a compiled filter tree: either a leaf test of one column or
    an AND/OR combinator of two child filters.
    """

    #: The operation performed by this node
    op: FilterOp
    #: The column tested (leaf nodes only)
    column: Optional[Column] = None
    #: Comparison value: ``int`` for numeric comparisons, otherwise ``str``
    value: Union[int, str, None] = None
    #: Invert the boolean result
    negate: bool = False
    #: Failing this pre-filter prunes directory recursion
    prune: bool = False
    #: Left child (AND/OR only)
    left: Optional["Filter"] = None
    #: Right child (AND/OR only)
    right: Optional["Filter"] = None
    #: Compiled pattern for REGEX and GLOB filters
    regex: Optional[Pattern] = field(default=None, compare=False, repr=False)

    @property
    def is_combinator(self) -> bool:
        """``True`` for AND and OR nodes."""
        return self.op in (FilterOp.AND, FilterOp.OR)

    def __str__(self):
        if self.is_combinator:
            if self.left is None or self.right is None:
                return self.op.value
            return f"({self.left} {self.op.value} {self.right})"
        prune = "/" if self.prune else ""
        token = _TOKEN_FOR_OP[(self.op, self.negate)]
        value = "" if self.op == FilterOp.IS_NULL else self.value
        return f"{prune}{self.column.long_name}{token}{value}"

    def evaluate(
        self, entry: FileEntry, prune_check: bool = False
    ) -> Tuple[bool, bool]:
        """
        Evaluate this filter against a file entry.

        :param entry: The entry to test.
        :type entry: ``FileEntry``
        :param prune_check: ``True`` to evaluate only pruning filters; all
                            other leaves pass.
        :type prune_check: ``bool``
        :returns: ``(passed, all_non_null)``: ``all_non_null`` is ``False``
                  if the result depended on an absent value, in which case
                  ``passed`` is also ``False``.
        :rtype: ``Tuple[bool, bool]``
        """
        if self.op == FilterOp.AND:
            match, ok = self.left.evaluate(entry, prune_check)
            if not match or not ok:
                return match and ok, ok
            return self.right.evaluate(entry, prune_check)
        if self.op == FilterOp.OR:
            match, ok = self.left.evaluate(entry, prune_check)
            if match or not ok:
                return match and ok, ok
            return self.right.evaluate(entry, prune_check)

        if prune_check and not self.prune:
            return True, True

        entry_value, present = entry.get_value(self.column)
        if self.op == FilterOp.IS_NULL:
            return (present if self.negate else not present), True
        if not present:
            return False, False

        if self.op in (FilterOp.REGEX, FilterOp.GLOB):
            match = self.regex.fullmatch(str(entry_value)) is not None
        else:
            filter_value = self.value
            if isinstance(filter_value, str) and not isinstance(entry_value, str):
                entry_value = str(entry_value)
            if filter_value == entry_value:
                diff = 0
            else:
                diff = 1 if filter_value > entry_value else -1
            if self.op == FilterOp.EQ:
                match = diff == 0
            elif self.op == FilterOp.LESS_EQ:
                match = diff >= 0
            else:
                match = diff > 0

        if self.negate:
            match = not match
        return match, True


def evaluate_filter(
    filt: Optional[Filter], entry: FileEntry, prune_check: bool = False
) -> Tuple[bool, bool]:
    """
    Evaluate an optional filter tree; an absent filter always passes.
    """
    if filt is None:
        return True, True
    return filt.evaluate(entry, prune_check)


def glob_to_regex(pattern: str) -> Pattern:
    """
    Translate a file glob pattern into an anchored regular expression.

    ``**`` matches any sequence of characters including ``/``; ``*``
    matches any sequence not containing ``/`` and ``?`` matches one
    character other than ``/``. Bracketed character classes (including
    ``^`` negation and a leading literal ``]``) and the escapes ``\\*``,
    ``\\?`` and ``\\[`` are copied verbatim. All other characters match
    literally.

    :param pattern: The glob pattern.
    :type pattern: ``str``
    :returns: The compiled regular expression.
    :rtype: ``Pattern``
    :raises: ``SiftFilterError`` if the pattern contains an invalid
             character class.
    """
    parts = []
    base = 0
    for match in _GLOB_RE.finditer(pattern):
        parts.append(re.escape(pattern[base : match.start()]))
        piece = match.group(0)
        if piece == "**":
            parts.append(".*")
        elif piece == "*":
            parts.append("[^/]*")
        elif piece == "?":
            parts.append("[^/]")
        else:
            parts.append(piece)
        base = match.end()
    parts.append(re.escape(pattern[base:]))
    regex = "^" + "".join(parts) + "$"
    try:
        return re.compile(regex)
    except re.error as err:
        raise SiftFilterError(f"Bad glob pattern '{pattern}': {err}") from err


def parse_filter(text: str) -> Filter:
    """
    Parse a single filter argument.

    :param text: The filter argument, or ``and`` / ``or``.
    :type text: ``str``
    :returns: A new leaf filter or an AND/OR marker with no children.
    :rtype: ``Filter``
    :raises: ``SiftFilterError`` if the argument cannot be parsed.
    """
    if text == "and":
        return Filter(op=FilterOp.AND)
    if text == "or":
        return Filter(op=FilterOp.OR)

    match = _FILTER_ARG_RE.match(text)
    if not match:
        raise SiftFilterError(f"Bad filter argument: '{text}'")

    prune = match.group(1) == "/"
    col_name, token, data = match.group(2, 3, 4)

    try:
        column = lookup_column(col_name)
    except SiftColumnError as err:
        raise SiftFilterError(f"Bad column name in filter: '{col_name}'") from err

    op, negate = _OP_TOKENS[token]

    regex = None
    if op == FilterOp.REGEX:
        try:
            regex = re.compile(f"^(?:{data})$")
        except re.error as err:
            raise SiftFilterError(
                f"Bad regular expression in filter '{text}': {err}"
            ) from err
    elif op == FilterOp.GLOB:
        regex = glob_to_regex(data)

    value: Union[int, str] = data
    if column.numeric and op in _COMPARISON_OPS:
        try:
            value = parse_int64(data)
        except SiftParseError as err:
            raise SiftFilterError(
                f"Bad numeric value in filter '{text}': {err}"
            ) from err

    filt = Filter(
        op=op,
        column=column,
        value=value,
        negate=negate,
        prune=prune,
        regex=regex,
    )
    _log_debug_filter("Parsed filter '%s' as %s", text, filt)
    return filt


def compile_filters(items: Iterable[Union[Filter, str]]) -> Optional[Filter]:
    """
    Compile a list of filter arguments into a single filter tree.

    Each AND/OR marker takes the two items that follow it as its left and
    right children; markers are resolved from the end of the list so that
    nested expressions are built first. Items left at the top level are
    joined, left to right, with implicit ANDs.

    :param items: Parsed ``Filter`` objects or filter argument strings.
    :returns: The root of the filter tree, or ``None`` for an empty list.
    :raises: ``SiftFilterError`` if an AND/OR marker lacks two operands.
    """
    filters: List[Filter] = [
        parse_filter(item) if isinstance(item, str) else item for item in items
    ]
    if not filters:
        return None

    # Top of the stack is the leftmost remaining item.
    stack: List[Filter] = []
    for filt in reversed(filters):
        if filt.is_combinator:
            if len(stack) < 2:
                raise SiftFilterError(
                    "Filter expression AND/OR op: not enough arguments provided"
                )
            left = stack.pop()
            right = stack.pop()
            filt = replace(filt, left=left, right=right)
        stack.append(filt)

    root = stack.pop()
    while stack:
        root = Filter(op=FilterOp.AND, left=root, right=stack.pop())
    _log_debug_filter("Compiled filter tree: %s", root)
    return root


def filter_columns(filt: Optional[Filter]) -> Iterator[Column]:
    """
    Yield the column of every leaf in a filter tree.
    """
    if filt is None:
        return
    if filt.is_combinator:
        yield from filter_columns(filt.left)
        yield from filter_columns(filt.right)
    elif filt.column is not None:
        yield filt.column


__all__ = [
    "FilterOp",
    "Filter",
    "evaluate_filter",
    "glob_to_regex",
    "parse_filter",
    "compile_filters",
    "filter_columns",
]
