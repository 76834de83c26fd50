# Copyright Red Hat
#
# fsift/sift/__init__.py - File Sifter sift package
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File sifter package.

Provides file metadata indexing, filtering, match analysis and snapshot
serialization. The main entry points are ``Sifter`` and ``SiftOptions``.
"""
from .analyze import AnalysisResult, MatchAnalyzer, Stats
from .columns import Column, lookup_column, parse_column_list
from .entry import FileEntry, compare_entries, sort_entries
from .filters import Filter, FilterOp, compile_filters, evaluate_filter, parse_filter
from .options import ColumnSelector, SiftOptions
from .sifter import EXIT_ERRORS, EXIT_FATAL, EXIT_OK, Sifter
from .snapshot import (
    SIFTER_FILE_HEADER,
    SnapshotReader,
    SnapshotWriter,
    detect_snapshot_file,
    open_snapshot,
)
from .treewalk import TreeWalker, digest_file

__all__ = [
    "AnalysisResult",
    "Column",
    "ColumnSelector",
    "EXIT_ERRORS",
    "EXIT_FATAL",
    "EXIT_OK",
    "FileEntry",
    "Filter",
    "FilterOp",
    "MatchAnalyzer",
    "SIFTER_FILE_HEADER",
    "SiftOptions",
    "Sifter",
    "SnapshotReader",
    "SnapshotWriter",
    "Stats",
    "TreeWalker",
    "compare_entries",
    "compile_filters",
    "detect_snapshot_file",
    "digest_file",
    "evaluate_filter",
    "lookup_column",
    "open_snapshot",
    "parse_column_list",
    "parse_filter",
    "sort_entries",
]
