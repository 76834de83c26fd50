# Copyright Red Hat
#
# fsift/sift/analyze.py - File Sifter match analysis
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Match and redundancy analysis of left and right side file entries.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from fsift import FSIFT_SUBSYSTEM_ANALYZE

from .columns import Column
from .entry import FileEntry, NullCallback, compare_entries, sort_entries

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_analyze(msg, *args, **kwargs):
    """A wrapper for analyze subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_ANALYZE}, **kwargs)


@dataclass
class Stats:
    """
    Entry counts and total sizes for one phase of a run, per side.
    """

    #: Name of this statistics bucket, e.g. "Scanned:"
    name: str = ""
    #: Left side entry count
    left_count: int = 0
    #: Left side total size in bytes
    left_size: int = 0
    #: Right side entry count
    right_count: int = 0
    #: Right side total size in bytes
    right_size: int = 0

    def update(self, side: bool, size: int):
        """
        Count one entry of ``size`` bytes on the given side.

        :param side: ``True`` for the right side.
        :param size: The entry's size contribution.
        """
        if side:
            self.right_count += 1
            self.right_size += size
        else:
            self.left_count += 1
            self.left_size += size

    @property
    def total_count(self) -> int:
        """Entry count on both sides."""
        return self.left_count + self.right_count

    @property
    def total_size(self) -> int:
        """Total size on both sides."""
        return self.left_size + self.right_size


def stats_size(entry: FileEntry) -> int:
    """
    Return the size an entry contributes to statistics: directories
    (paths ending in ``/``) count as zero bytes.
    """
    path, present = entry.get_string(Column.PATH)
    if present and path.endswith("/"):
        return 0
    return entry.numeric_or_zero(Column.SIZE)


@dataclass
class AnalysisResult:
    """
    The outcome of a ``MatchAnalyzer`` run.
    """

    #: The analysed entries, sorted by the compare key
    entries: List[FileEntry] = field(default_factory=list)
    #: Statistics for entries matched by the other side
    matched_stats: Stats = field(default_factory=lambda: Stats("Matching:"))
    #: Statistics for entries not matched by the other side
    unmatched_stats: Stats = field(default_factory=lambda: Stats("Unmatched:"))
    #: At least one left side entry was unmatched
    unmatched_left: bool = False
    #: Verify mode was requested and ``unmatched_left`` is set
    verify_failed: bool = False


class MatchAnalyzer:
    """
    Determine which entries are matched by an entry on the other side
    under a multi-column compare key, and how many equivalent entries
    exist on each side.

    Entries are sorted by the key and split into groups of adjacent
    entries that compare equal to the first entry of the group. An entry
    is matched when its group has members on both sides.
    """

    def __init__(
        self,
        key_columns: List[Column],
        need_redundancy: bool = False,
        need_redun_idx: bool = False,
        verify: bool = False,
        null_callback: Optional[NullCallback] = None,
    ):
        """
        Initialise a new ``MatchAnalyzer``.

        :param key_columns: The compare key, highest precedence first.
        :param need_redundancy: Set the ``redundancy`` column.
        :param need_redun_idx: Set the ``redunidx`` column.
        :param verify: Report a verify failure if any left side entry is
                       unmatched.
        :param null_callback: Called with the ``all_non_null`` flag of every
                              comparison made.
        """
        self.key_columns = list(key_columns)
        self.need_redundancy = need_redundancy
        self.need_redun_idx = need_redun_idx
        self.verify = verify
        self.null_callback = null_callback

    def _check_null(self, not_null: bool):
        if self.null_callback:
            self.null_callback(not_null)

    def _finish_group(self, group: List[FileEntry], result: AnalysisResult):
        left_redun = 0
        right_redun = 0
        for entry in group:
            if entry.bool_or_false(Column.SIDE):
                right_redun += 1
                ordinal = right_redun
            else:
                left_redun += 1
                ordinal = left_redun
            if self.need_redun_idx:
                entry.set_numeric(Column.REDUNIDX, ordinal)

        matched = left_redun > 0 and right_redun > 0
        for entry in group:
            entry.set_bool(Column.MATCHED, matched)
            side = entry.bool_or_false(Column.SIDE)
            if not side and not matched:
                result.unmatched_left = True
            size = stats_size(entry)
            if matched:
                result.matched_stats.update(side, size)
            else:
                result.unmatched_stats.update(side, size)
            if self.need_redundancy:
                redundancy = right_redun if side else left_redun
                entry.set_numeric(Column.REDUNDANCY, redundancy)

    def analyze(self, entries: List[FileEntry]) -> AnalysisResult:
        """
        Analyse ``entries``, setting the ``matched`` column of every entry
        (and ``redundancy`` / ``redunidx`` when requested).

        The input list is not reordered.

        :param entries: Entries from both sides.
        :type entries: ``List[FileEntry]``
        :returns: The sorted entries and match statistics.
        :rtype: ``AnalysisResult``
        """
        _log_debug_analyze(
            "Analyzing %d entries by key %s",
            len(entries),
            ",".join(col.long_name for col in self.key_columns),
        )
        result = AnalysisResult()
        result.entries = sort_entries(
            entries, self.key_columns, null_callback=self.null_callback
        )

        group: List[FileEntry] = []
        for entry in result.entries:
            if group:
                diff, not_null = compare_entries(group[0], entry, self.key_columns)
                self._check_null(not_null)
                if diff != 0:
                    self._finish_group(group, result)
                    group = []
            group.append(entry)
        if group:
            self._finish_group(group, result)

        result.verify_failed = self.verify and result.unmatched_left
        _log_debug_analyze(
            "Analysis complete: matched=%d unmatched=%d verify_failed=%s",
            result.matched_stats.total_count,
            result.unmatched_stats.total_count,
            result.verify_failed,
        )
        return result


__all__ = [
    "Stats",
    "AnalysisResult",
    "MatchAnalyzer",
    "stats_size",
]
