# Copyright Red Hat
#
# fsift/_fsift.py - File Sifter global definitions
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level fsift package.
"""
from typing import Optional, TextIO, TYPE_CHECKING
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import threading
import logging
import weakref
import sys
import re

if TYPE_CHECKING:
    from .output import OutputWriter

_log = logging.getLogger("fsift")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Fsift debugging subsystem mask
FSIFT_DEBUG_COLUMNS = 1
FSIFT_DEBUG_FILTER = 2
FSIFT_DEBUG_ANALYZE = 4
FSIFT_DEBUG_SNAPSHOT = 8
FSIFT_DEBUG_SCAN = 16
FSIFT_DEBUG_OUTPUT = 32
FSIFT_DEBUG_COMMAND = 64
FSIFT_DEBUG_ALL = (
    FSIFT_DEBUG_COLUMNS
    | FSIFT_DEBUG_FILTER
    | FSIFT_DEBUG_ANALYZE
    | FSIFT_DEBUG_SNAPSHOT
    | FSIFT_DEBUG_SCAN
    | FSIFT_DEBUG_OUTPUT
    | FSIFT_DEBUG_COMMAND
)

# Fsift debugging subsystem names
FSIFT_SUBSYSTEM_COLUMNS = "fsift.columns"
FSIFT_SUBSYSTEM_FILTER = "fsift.filter"
FSIFT_SUBSYSTEM_ANALYZE = "fsift.analyze"
FSIFT_SUBSYSTEM_SNAPSHOT = "fsift.snapshot"
FSIFT_SUBSYSTEM_SCAN = "fsift.scan"
FSIFT_SUBSYSTEM_OUTPUT = "fsift.output"
FSIFT_SUBSYSTEM_COMMAND = "fsift.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    FSIFT_DEBUG_COLUMNS: FSIFT_SUBSYSTEM_COLUMNS,
    FSIFT_DEBUG_FILTER: FSIFT_SUBSYSTEM_FILTER,
    FSIFT_DEBUG_ANALYZE: FSIFT_SUBSYSTEM_ANALYZE,
    FSIFT_DEBUG_SNAPSHOT: FSIFT_SUBSYSTEM_SNAPSHOT,
    FSIFT_DEBUG_SCAN: FSIFT_SUBSYSTEM_SCAN,
    FSIFT_DEBUG_OUTPUT: FSIFT_SUBSYSTEM_OUTPUT,
    FSIFT_DEBUG_COMMAND: FSIFT_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

# Registry of active output writers: uses a WeakSet so we don't prevent
# garbage collection.
_active_writers: weakref.WeakSet = weakref.WeakSet()

#: Maximum number of error (or warning) messages kept for the run summary.
MAX_ERROR_MESSAGES = 50

#: Range of values accepted by numeric columns.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INT64_RE = re.compile(r"^[+-]?[0-9]+$")

_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(\.\d+)?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)

_OFFSET_RE = re.compile(r"^([+-])(\d{1,2}):(\d{2})$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``fsift`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    fsift_log = logging.getLogger("fsift")

    for handler in fsift_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``fsift`` package.

    :param mask: the logical OR of the ``FSIFT_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > FSIFT_DEBUG_ALL:
        raise ValueError(f"Invalid fsift debug mask: {mask}")

    enabled_subsystems = []
    for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items():
        if mask & flag:
            enabled_subsystems.append(subsystem_name)

    fsift_log = logging.getLogger("fsift")
    for handler in fsift_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_output_writer(writer: "OutputWriter"):
    """Register an output writer for log coordination."""
    _active_writers.add(writer)


def unregister_output_writer(writer: "OutputWriter"):
    """Unregister an output writer."""
    _active_writers.discard(writer)


def route_log_output(stream: TextIO, msg: str) -> bool:
    """
    Hand a formatted log message to an active output writer that owns
    ``stream`` so that it is serialised with the writer's own output and
    never overwrites a transient status line.

    :param stream: The stream the log message is destined for.
    :type stream: ``TextIO``
    :param msg: The formatted log message.
    :type msg: ``str``
    :returns: ``True`` if a writer accepted the message.
    :rtype: ``bool``
    """
    for writer in list(_active_writers):
        if writer.err_stream is stream and writer.running:
            writer.error(msg)
            return True
    return False


class OutputAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active ``OutputWriter``
    instances.

    Records destined for a stream owned by a running writer are queued
    through that writer; otherwise they are written directly.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            if route_log_output(self.stream, msg):
                return
            self.stream.write(msg + "\n")
            self.stream.flush()
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Fsift exception types
#


class SiftError(Exception):
    """
    Base class for file sifter errors.
    """


class SiftColumnError(SiftError):
    """
    An unknown column name, or a column list that is not valid in the
    context it was used.
    """


class SiftFilterError(SiftError):
    """
    A filter expression could not be compiled.
    """


class SiftParseError(SiftError):
    """
    An error parsing snapshot data or a numeric value.
    """


class SiftArgumentError(SiftError):
    """
    An invalid argument or combination of arguments was given.
    """


class SiftSystemError(SiftError):
    """
    An error when calling the operating system.
    """


def parse_int64(text: str) -> int:
    """
    Parse a base-10 signed 64-bit integer, ignoring any digit grouping
    commas.

    :param text: The text to parse.
    :type text: ``str``
    :returns: The parsed integer value.
    :rtype: ``int``
    :raises: ``SiftParseError`` if the text is not a valid 64-bit integer.
    """
    stripped = text.replace(",", "")
    if not _INT64_RE.match(stripped):
        raise SiftParseError(f"Invalid numeric value: '{text}'")
    value = int(stripped)
    if value < INT64_MIN or value > INT64_MAX:
        raise SiftParseError(f"Numeric value out of range: '{text}'")
    return value


def format_number(value: int, group: bool = False) -> str:
    """
    Format an integer value, optionally grouping digits in threes with
    commas.

    :param value: The value to format.
    :param group: ``True`` to group digits.
    :returns: The formatted number.
    """
    if group:
        return f"{value:,}"
    return str(value)


def parse_time_zone(name: str) -> Optional[tzinfo]:
    """
    Parse a time zone name for output time stamps.

    Accepts ``UTC``, ``Local`` (the system time zone, represented by
    ``None``), IANA zone names such as ``America/Chicago`` and fixed
    offsets in ``+HH:MM`` / ``-HH:MM`` form.

    :param name: The zone name.
    :type name: ``str``
    :returns: A ``tzinfo`` instance, or ``None`` for the local zone.
    :raises: ``SiftArgumentError`` if the zone is not known.
    """
    if name in ("UTC", "Z", ""):
        return timezone.utc
    if name == "Local":
        return None
    match = _OFFSET_RE.match(name)
    if match:
        sign, hours, minutes = match.groups()
        offset = timedelta(hours=int(hours), minutes=int(minutes))
        if offset >= timedelta(hours=24):
            raise SiftArgumentError(f"Invalid time zone offset: '{name}'")
        return timezone(-offset if sign == "-" else offset)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as err:
        raise SiftArgumentError(f"Unknown time zone: '{name}'") from err


def format_rfc3339(when: datetime) -> str:
    """
    Format an aware ``datetime`` as an RFC3339 string with second
    precision, using ``Z`` for a zero UTC offset.

    :param when: The time to format.
    :type when: ``datetime``
    :returns: The formatted time stamp.
    :rtype: ``str``
    """
    stamp = when.strftime("%Y-%m-%dT%H:%M:%S")
    offset = when.utcoffset()
    if not offset:
        return stamp + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    minutes = abs(minutes)
    return f"{stamp}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def format_mtime(stamp: int, tz: Optional[tzinfo] = timezone.utc) -> Optional[str]:
    """
    Convert seconds since the Unix epoch into an RFC3339 time stamp.

    :param stamp: Seconds since the epoch.
    :type stamp: ``int``
    :param tz: The zone to express the time in, ``None`` for local time.
    :returns: The formatted time, or ``None`` if it cannot be represented.
    :rtype: ``Optional[str]``
    """
    try:
        when = _EPOCH + timedelta(seconds=stamp)
        when = when.astimezone(tz) if tz is not None else when.astimezone()
    except (OverflowError, OSError, ValueError):
        return None
    return format_rfc3339(when)


def parse_mtime(text: str) -> Optional[int]:
    """
    Convert an RFC3339 time stamp into seconds since the Unix epoch.

    :param text: The time stamp to parse.
    :type text: ``str``
    :returns: The number of seconds, or ``None`` if ``text`` is not valid.
    :rtype: ``Optional[int]``
    """
    match = _RFC3339_RE.match(text)
    if not match:
        return None
    year, month, day, hour, minute, second, _frac, zone = match.groups()
    if zone in ("Z", "z"):
        offset = timedelta(0)
    else:
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        if zone[0] == "-":
            offset = -offset
    try:
        when = datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            tzinfo=timezone(offset),
        )
    except ValueError:
        return None
    return (when - _EPOCH) // timedelta(seconds=1)


def in_writer_thread(writer: "OutputWriter") -> bool:
    """Return ``True`` if called from ``writer``'s own worker thread."""
    return writer.thread is not None and writer.thread is threading.current_thread()


__all__ = [
    "FSIFT_DEBUG_COLUMNS",
    "FSIFT_DEBUG_FILTER",
    "FSIFT_DEBUG_ANALYZE",
    "FSIFT_DEBUG_SNAPSHOT",
    "FSIFT_DEBUG_SCAN",
    "FSIFT_DEBUG_OUTPUT",
    "FSIFT_DEBUG_COMMAND",
    "FSIFT_DEBUG_ALL",
    # Debug logging - subsystem name interface
    "SubsystemFilter",
    "FSIFT_SUBSYSTEM_COLUMNS",
    "FSIFT_SUBSYSTEM_FILTER",
    "FSIFT_SUBSYSTEM_ANALYZE",
    "FSIFT_SUBSYSTEM_SNAPSHOT",
    "FSIFT_SUBSYSTEM_SCAN",
    "FSIFT_SUBSYSTEM_OUTPUT",
    "FSIFT_SUBSYSTEM_COMMAND",
    "set_debug_mask",
    "get_debug_mask",
    # Output writer log callbacks
    "register_output_writer",
    "unregister_output_writer",
    "route_log_output",
    "in_writer_thread",
    "OutputAwareHandler",
    "MAX_ERROR_MESSAGES",
    "INT64_MIN",
    "INT64_MAX",
    "SiftError",
    "SiftColumnError",
    "SiftFilterError",
    "SiftParseError",
    "SiftArgumentError",
    "SiftSystemError",
    "parse_int64",
    "format_number",
    "parse_time_zone",
    "format_rfc3339",
    "format_mtime",
    "parse_mtime",
]
