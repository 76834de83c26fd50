# Copyright Red Hat
#
# tests/sift/_util.py - File sifter test utilities.
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
import os

from fsift.sift.columns import Column
from fsift.sift.entry import FileEntry


def make_entry(
    path=None,
    size=None,
    mstamp=None,
    modestr=None,
    side=None,
    **kwargs,
):
    """
    Factory to create FileEntry objects without touching disk. Extra
    keyword arguments name further columns by long name.
    """
    fields = {}
    if path is not None:
        fields[Column.PATH] = path
    if size is not None:
        fields[Column.SIZE] = size
    if mstamp is not None:
        fields[Column.MSTAMP] = mstamp
    if modestr is not None:
        fields[Column.MODESTR] = modestr
    if side is not None:
        fields[Column.SIDE] = 1 if side else 0
    for name, value in kwargs.items():
        fields[Column[name.upper()]] = value
    return FileEntry(fields)


def make_tree(root, files):
    """
    Create a tree of files below ``root``. ``files`` is a sequence of
    ``(rel_path, data)`` pairs; paths ending in ``/`` are directories and
    parents must precede their contents.
    """
    for rel_path, data in files:
        path = os.path.join(root, rel_path)
        if rel_path.endswith("/"):
            os.mkdir(path)
            continue
        with open(path, "w", encoding="utf8") as fp:
            fp.write(data)
        os.utime(path, (1500000000, 1500000000))


#: A small file tree used by scanning tests
TEST_TREE = (
    ("1/", ""),
    ("1/x/", ""),
    ("1/x/a", "A"),
    ("1/x/c", "CCC"),
    ("1/y/", ""),
    ("1/y/b", "BB"),
    ("1/y/c", "CCC"),
    ("1/y/d/", ""),
    ("2/", ""),
    ("2/e", "EE"),
)
