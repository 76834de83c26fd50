# Copyright Red Hat
#
# fsift/sift/treewalk.py - File Sifter file system tree walk
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File system scanning and digest calculation.
"""
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Pattern,
    Sequence,
    Set,
    Tuple,
)
from hashlib import md5, sha1, sha256, sha512
import logging
import stat
import zlib
import grp
import pwd
import os

from fsift import FSIFT_SUBSYSTEM_SCAN, format_mtime

from .columns import Column
from .entry import FileEntry, mode_str_to_file_type
from .filetypes import detect_mime_type
from .filters import glob_to_regex

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_SCAN}, **kwargs)


class _Crc32:
    """
    A CRC-32 (IEEE) digest with the ``hashlib`` update/hexdigest interface.
    """

    def __init__(self):
        self.crc = 0

    def update(self, data: bytes):
        self.crc = zlib.crc32(data, self.crc)

    def hexdigest(self) -> str:
        return f"{self.crc:08x}"


_HASH_TYPES = {
    Column.MD5: md5,
    Column.SHA1: sha1,
    Column.SHA256: sha256,
    Column.SHA512: sha512,
}

#: Digest columns in the order they are calculated
DIGEST_COLUMNS = (Column.MD5, Column.SHA1, Column.SHA256, Column.SHA512, Column.CRC32)

_READ_SIZE = 65536

_PERMISSION_CHARS = "rwxrwxrwx"

#: Callable deciding whether a scanned entry is accepted. Called with the
#: entry, its size contribution, the prune check flag and the file path.
AcceptCallback = Callable[[FileEntry, int, bool, str], bool]


def mode_to_str(mode: int) -> str:
    """
    Format a ``st_mode`` value as a mode string: file type and special
    bit letters (``d`` directory, ``L`` symlink, ``D`` device, ``p`` pipe,
    ``S`` socket, ``u`` setuid, ``g`` setgid, ``c`` character device,
    ``t`` sticky) or ``-`` if there are none, followed by the nine
    ``rwx`` permission characters.

    :param mode: A file mode from ``os.stat()``.
    :type mode: ``int``
    :returns: The mode string, e.g. ``drwxr-xr-x``.
    :rtype: ``str``
    """
    prefix = ""
    if stat.S_ISDIR(mode):
        prefix += "d"
    if stat.S_ISLNK(mode):
        prefix += "L"
    if stat.S_ISBLK(mode) or stat.S_ISCHR(mode):
        prefix += "D"
    if stat.S_ISFIFO(mode):
        prefix += "p"
    if stat.S_ISSOCK(mode):
        prefix += "S"
    if mode & stat.S_ISUID:
        prefix += "u"
    if mode & stat.S_ISGID:
        prefix += "g"
    if stat.S_ISCHR(mode):
        prefix += "c"
    if mode & stat.S_ISVTX:
        prefix += "t"
    perms = "".join(
        char if mode & (1 << (8 - i)) else "-"
        for i, char in enumerate(_PERMISSION_CHARS)
    )
    return (prefix or "-") + perms


def _new_digest(col: Column):
    if col == Column.CRC32:
        return _Crc32()
    return _HASH_TYPES[col](usedforsecurity=False)


def _hash_stream(fp, col: Column) -> str:
    hasher = _new_digest(col)
    for chunk in iter(lambda: fp.read(_READ_SIZE), b""):
        hasher.update(chunk)
    return hasher.hexdigest()


def digest_file(path: str, col: Column) -> str:
    """
    Calculate a digest of the content of the file at ``path``.

    :param path: The path to the file to read.
    :type path: ``str``
    :param col: The digest column: md5, sha1, sha256, sha512 or crc32.
    :type col: ``Column``
    :returns: The lower case hexadecimal digest.
    :rtype: ``str``
    :raises: ``OSError`` if the file cannot be read; ``KeyError`` if
             ``col`` is not a digest column.
    """
    if col not in DIGEST_COLUMNS:
        raise KeyError(f"Not a digest column: {col.long_name}")
    with open(path, "rb") as fp:
        return _hash_stream(fp, col)


def _join(root: str, rel_path: str) -> str:
    return os.path.normpath(os.path.join(root, rel_path))


def _same_file(st_a: os.stat_result, st_b: os.stat_result) -> bool:
    return (st_a.st_dev, st_a.st_ino) == (st_b.st_dev, st_b.st_ino)


class TreeWalker:
    """
    Scan file system roots into ``FileEntry`` objects.

    Every entry created during a scan is offered to the ``accept``
    callback, which applies pre-filtering and records accepted entries.
    Sub-directories are first offered as a prune check (``prune_check``
    set to ``True``); a directory whose prune check is rejected is not
    descended.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        needed: Iterable[Column],
        accept: AcceptCallback,
        follow_links: bool = False,
        regular_only: bool = False,
        xdev: bool = False,
        excludes: Sequence[str] = (),
        on_error: Optional[Callable[[str], None]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        status: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialise a new ``TreeWalker``.

        :param needed: The columns evaluated for this run; file system
                       columns not in this set are not filled in.
        :param accept: Callback deciding whether to accept each entry.
        :param follow_links: Use ``stat()`` rather than ``lstat()`` and
                             descend into symbolic links to directories.
        :param regular_only: Only offer regular files to ``accept`` and
                             omit directory entries.
        :param xdev: Do not descend into directories on other devices.
        :param excludes: File name glob patterns to skip.
        :param on_error: Called with each error message.
        :param on_warning: Called with each warning message.
        :param status: Called with transient progress messages.
        :raises: ``SiftFilterError`` if an exclude pattern is invalid.
        """
        self.needed: Set[Column] = set(needed)
        self.accept = accept
        self.follow_links = follow_links
        self.regular_only = regular_only
        self.xdev = xdev
        self.excludes: List[Pattern] = [glob_to_regex(pat) for pat in excludes]
        self.on_error = on_error or _log_error
        self.on_warning = on_warning or _log_warn
        self.status = status
        self.side = False
        self._fs_columns = sorted(self.needed)
        self._indexed: List[Tuple[FileEntry, str]] = []
        self._user_names: Dict[int, Optional[str]] = {}
        self._group_names: Dict[int, Optional[str]] = {}
        self.digest_count = 0
        self.digest_bytes = 0

    def _stat(self, path: str) -> os.stat_result:
        if self.follow_links:
            return os.stat(path)
        return os.lstat(path)

    def _user_name(self, uid: int) -> Optional[str]:
        if uid not in self._user_names:
            try:
                self._user_names[uid] = pwd.getpwuid(uid).pw_name
            except KeyError as err:
                self.on_error(f"Could not get user name for UID {uid} :{err}")
                self._user_names[uid] = None
        return self._user_names[uid]

    def _group_name(self, gid: int) -> Optional[str]:
        if gid not in self._group_names:
            try:
                self._group_names[gid] = grp.getgrgid(gid).gr_name
            except KeyError as err:
                self.on_error(f"Could not get group name for GID {gid} :{err}")
                self._group_names[gid] = None
        return self._group_names[gid]

    # pylint: disable=too-many-branches
    def _fill_columns(self, entry: FileEntry, st: os.stat_result, path: str):
        for col in self._fs_columns:
            if col in (Column.MTIME, Column.MSTAMP):
                stamp = st.st_mtime_ns // 1_000_000_000
                if col == Column.MSTAMP:
                    entry.set_numeric(col, stamp)
                else:
                    mtime = format_mtime(stamp)
                    if mtime is not None:
                        entry.set_string(col, mtime)
            elif col == Column.SIDE:
                entry.set_bool(col, self.side)
            elif col == Column.DEVICE:
                entry.set_numeric(col, st.st_dev)
            elif col == Column.NLINKS:
                entry.set_numeric(col, st.st_nlink)
            elif col == Column.UID:
                entry.set_numeric(col, st.st_uid)
            elif col == Column.GID:
                entry.set_numeric(col, st.st_gid)
            elif col == Column.USER:
                name = self._user_name(st.st_uid)
                if name is not None:
                    entry.set_string(col, name)
            elif col == Column.GROUP:
                name = self._group_name(st.st_gid)
                if name is not None:
                    entry.set_string(col, name)
            elif col == Column.MODESTR:
                entry.set_string(col, mode_to_str(st.st_mode))
            elif col == Column.FILETYPE:
                entry.set_string(col, mode_str_to_file_type(mode_to_str(st.st_mode)))
            elif col == Column.MIMETYPE:
                mime_type = detect_mime_type(path)
                if mime_type is not None:
                    entry.set_string(col, mime_type)

    def process_file(
        self,
        root: str,
        rel_path: str,
        prune_check: bool = False,
        entry_path: Optional[str] = None,
    ) -> Tuple[Optional[FileEntry], int]:
        """
        Create an entry for the file at ``root/rel_path`` and offer it to
        the ``accept`` callback.

        :param root: The scan root.
        :param rel_path: The path relative to ``root``.
        :param prune_check: ``True`` if this is a directory prune check.
        :param entry_path: Override for the entry's ``path`` value.
        :returns: A tuple ``(entry, size)`` where ``entry`` is ``None`` if
                  the file could not be examined or was rejected, and
                  ``size`` is the file's size contribution (zero for
                  non-regular or rejected files).
        :rtype: ``Tuple[Optional[FileEntry], int]``
        """
        rel_path = os.path.normpath(rel_path) if rel_path else "."
        path = _join(root, rel_path)
        try:
            st = self._stat(path)
        except OSError as err:
            self.on_error(f"Can't get info about file: {err}")
            return None, 0

        if entry_path is None:
            entry_path = rel_path
        if stat.S_ISDIR(st.st_mode) and not entry_path.endswith("/"):
            entry_path += "/"
        size = st.st_size if stat.S_ISREG(st.st_mode) else 0

        entry = FileEntry()
        entry.set_string(Column.PATH, entry_path)
        entry.set_numeric(Column.SIZE, size)
        self._fill_columns(entry, st, path)

        if not self.accept(entry, size, prune_check, path):
            return None, 0
        if not prune_check:
            self._indexed.append((entry, path))
        return entry, size

    def _excluded(self, name: str) -> bool:
        return any(regex.match(name) for regex in self.excludes)

    def scan_dir_tree(
        self, root: str, rel_path: str, chain: List[os.stat_result]
    ) -> int:
        """
        Recursively scan the directory ``root/rel_path``.

        :param root: The scan root.
        :param rel_path: The directory path relative to ``root``.
        :param chain: Stat results of the directories being scanned, from
                      the root down; the last item is this directory.
        :returns: The cumulative size of the accepted entries in the tree.
        :rtype: ``int``
        """
        size = 0
        device = chain[-1].st_dev
        dir_path = _join(root, rel_path)
        try:
            names = sorted(os.listdir(dir_path))
        except OSError as err:
            self.on_error(f"Could not read directory: {err}")
            return size

        for name in names:
            if self._excluded(name):
                _log_debug_scan("Excluding %s", _join(dir_path, name))
                continue
            new_rel_path = _join(rel_path, name)
            new_path = _join(root, new_rel_path)
            try:
                st = self._stat(new_path)
            except OSError as err:
                self.on_error(f"Can't get info about file: {err}")
                continue

            if stat.S_ISDIR(st.st_mode) and (not self.xdev or st.st_dev == device):
                if any(_same_file(st, parent) for parent in chain):
                    self.on_warning(f"Found circular symlink reference at: {new_path}")
                    continue
                entry, _ = self.process_file(root, new_rel_path, prune_check=True)
                if entry is None:
                    _log_debug_scan("Pruned directory %s", new_path)
                    continue
                chain.append(st)
                try:
                    size += self.scan_dir_tree(root, new_rel_path, chain)
                finally:
                    chain.pop()
            elif not self.regular_only or stat.S_ISREG(st.st_mode):
                _, file_size = self.process_file(root, new_rel_path)
                size += file_size

        if not self.regular_only:
            entry, _ = self.process_file(root, rel_path)
            if entry is not None:
                entry.set_numeric(Column.SIZE, size)
        return size

    def _calc_digest(self, col: Column, entry: FileEntry, path: str):
        try:
            st = self._stat(path)
        except OSError as err:
            self.on_error(f"Can't get file information: {err}")
            return
        if not stat.S_ISREG(st.st_mode):
            # Not absent, so comparisons do not count as null compares.
            entry.set_string(col, "")
            return
        try:
            fp = open(path, "rb")  # pylint: disable=consider-using-with
        except OSError as err:
            self.on_error(f"Can't open file for reading: {err}")
            return
        with fp:
            try:
                entry.set_string(col, _hash_stream(fp, col))
            except OSError as err:
                self.on_error(f"Can't read file for digest calculation: {err}")
                return
        self.digest_count += 1
        self.digest_bytes += entry.numeric_or_zero(Column.SIZE)
        if self.status:
            self.status(
                f"{col.long_name}({self.digest_bytes // 1000000}MB "
                f"in {self.digest_count}) {path}"
            )

    def calc_digests(self, indexed: Sequence[Tuple[FileEntry, str]]):
        """
        Calculate the needed digest columns for ``(entry, path)`` pairs.
        Non-regular files get empty digests.
        """
        for col in DIGEST_COLUMNS:
            if col not in self.needed:
                continue
            _log_debug_scan(
                "Calculating %s digests for %d entries", col.long_name, len(indexed)
            )
            for entry, path in indexed:
                self._calc_digest(col, entry, path)

    def scan_root(
        self, path: str, root_stat: os.stat_result, side: bool = False
    ) -> List[FileEntry]:
        """
        Scan one root: a directory tree, or a single file whose entry
        path is its base name. Digests are calculated for the accepted
        entries once the scan is complete.

        :param path: The root path.
        :type path: ``str``
        :param root_stat: The stat result for ``path``.
        :type root_stat: ``os.stat_result``
        :param side: ``True`` for a right side root.
        :type side: ``bool``
        :returns: The accepted entries, in scan order.
        :rtype: ``List[FileEntry]``
        """
        self.side = side
        self._indexed = []
        _log_debug_scan("Scanning root %s (side=%s)", path, side)
        if stat.S_ISDIR(root_stat.st_mode):
            self.scan_dir_tree(path, ".", [root_stat])
        else:
            base = os.path.basename(os.path.normpath(path))
            self.process_file(path, "", entry_path=base)
        indexed = self._indexed
        self._indexed = []
        self.calc_digests(indexed)
        return [entry for entry, _ in indexed]


__all__ = [
    "AcceptCallback",
    "DIGEST_COLUMNS",
    "TreeWalker",
    "digest_file",
    "mode_to_str",
]
