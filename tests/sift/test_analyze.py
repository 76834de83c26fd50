# Copyright Red Hat
#
# tests/sift/test_analyze.py - Match analysis tests.
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest

from fsift.sift.analyze import MatchAnalyzer, Stats, stats_size
from fsift.sift.columns import Column

from ._util import make_entry


class TestStats(unittest.TestCase):
    def test_update(self):
        stats = Stats("Scanned:")
        stats.update(False, 10)
        stats.update(False, 5)
        stats.update(True, 7)
        self.assertEqual(stats.left_count, 2)
        self.assertEqual(stats.left_size, 15)
        self.assertEqual(stats.right_count, 1)
        self.assertEqual(stats.right_size, 7)
        self.assertEqual(stats.total_count, 3)
        self.assertEqual(stats.total_size, 22)

    def test_stats_size(self):
        self.assertEqual(stats_size(make_entry(path="a", size=10)), 10)
        self.assertEqual(stats_size(make_entry(path="d/", size=100)), 0)
        self.assertEqual(stats_size(make_entry(path="a")), 0)


class TestMatchAnalyzer(unittest.TestCase):
    def _entries(self):
        return [
            make_entry(path="a", size=1, side=False),
            make_entry(path="b", size=2, side=False),
            make_entry(path="a", size=1, side=True),
            make_entry(path="c", size=3, side=True),
        ]

    def test_matched(self):
        entries = self._entries()
        result = MatchAnalyzer([Column.PATH, Column.SIZE]).analyze(entries)
        matched = [e.bool_or_false(Column.MATCHED) for e in entries]
        self.assertEqual(matched, [True, False, True, False])
        self.assertEqual(result.matched_stats.left_count, 1)
        self.assertEqual(result.matched_stats.right_count, 1)
        self.assertEqual(result.unmatched_stats.left_count, 1)
        self.assertEqual(result.unmatched_stats.left_size, 2)
        self.assertEqual(result.unmatched_stats.right_count, 1)
        self.assertEqual(result.unmatched_stats.right_size, 3)
        self.assertTrue(result.unmatched_left)
        self.assertFalse(result.verify_failed)

    def test_membership_after_analysis(self):
        entries = self._entries()
        MatchAnalyzer([Column.PATH, Column.SIZE]).analyze(entries)
        codes = [e.get_string(Column.MEMBERSHIP)[0] for e in entries]
        self.assertEqual(codes, ["<=", "<!", ">=", ">!"])

    def test_input_order_kept(self):
        entries = self._entries()
        result = MatchAnalyzer([Column.PATH]).analyze(entries)
        self.assertEqual(
            [e.get_string(Column.PATH)[0] for e in entries], ["a", "b", "a", "c"]
        )
        self.assertEqual(
            [e.get_string(Column.PATH)[0] for e in result.entries],
            ["a", "a", "b", "c"],
        )

    def test_verify(self):
        entries = self._entries()
        result = MatchAnalyzer([Column.PATH], verify=True).analyze(entries)
        self.assertTrue(result.verify_failed)

        entries = [
            make_entry(path="a", side=False),
            make_entry(path="a", side=True),
            make_entry(path="b", side=True),
        ]
        result = MatchAnalyzer([Column.PATH], verify=True).analyze(entries)
        self.assertFalse(result.unmatched_left)
        self.assertFalse(result.verify_failed)

    def test_redundancy(self):
        entries = [
            make_entry(path="x", size=5, side=False),
            make_entry(path="y", size=5, side=False),
            make_entry(path="z", size=5, side=True),
            make_entry(path="w", size=6, side=False),
        ]
        analyzer = MatchAnalyzer(
            [Column.SIZE], need_redundancy=True, need_redun_idx=True
        )
        analyzer.analyze(entries)
        redundancy = [e.numeric_or_zero(Column.REDUNDANCY) for e in entries]
        redun_idx = [e.numeric_or_zero(Column.REDUNIDX) for e in entries]
        self.assertEqual(redundancy, [2, 2, 1, 1])
        self.assertEqual(redun_idx, [1, 2, 1, 1])

    def test_redundancy_not_requested(self):
        entries = self._entries()
        MatchAnalyzer([Column.PATH]).analyze(entries)
        self.assertFalse(entries[0].has(Column.REDUNDANCY))
        self.assertFalse(entries[0].has(Column.REDUNIDX))

    def test_null_callback(self):
        results = []
        entries = [
            make_entry(path="a", side=False),
            make_entry(path="b", side=True),
        ]
        MatchAnalyzer([Column.USER], null_callback=results.append).analyze(entries)
        self.assertIn(False, results)
        # Entries with equal (absent) keys match each other
        self.assertTrue(entries[0].bool_or_false(Column.MATCHED))

    def test_empty(self):
        result = MatchAnalyzer([Column.PATH]).analyze([])
        self.assertEqual(result.entries, [])
        self.assertFalse(result.unmatched_left)
