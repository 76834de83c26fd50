# Copyright Red Hat
#
# fsift/sift/filetypes.py - File Sifter file content types
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File content type detection support.
"""
from typing import Optional
import logging
import magic

from fsift import FSIFT_SUBSYSTEM_SCAN

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_scan(msg, *args, **kwargs):
    """A wrapper for scan subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_SCAN}, **kwargs)


# c9s magic does not have magic.error
if hasattr(magic, "error"):
    _MAGIC_ERRORS = (magic.error, OSError, ValueError)
else:
    _MAGIC_ERRORS = (OSError, ValueError)


def detect_mime_type(path: str) -> Optional[str]:
    """
    Detect the MIME type of a file's content using libmagic.

    :param path: The path to the file to inspect.
    :type path: ``str``
    :returns: The detected MIME type, or ``None`` if detection failed.
    :rtype: ``Optional[str]``
    """
    try:
        fm = magic.detect_from_filename(path)
    except _MAGIC_ERRORS as err:
        _log_debug_scan("Error detecting MIME type for %s: %s", path, err)
        return None
    mime_type = fm.mime_type
    return mime_type or None


__all__ = [
    "detect_mime_type",
]
