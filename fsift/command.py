# Copyright Red Hat
#
# fsift/command.py - File Sifter command interface
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``fsift.command`` module provides the fsift command line
interface.

Scan roots given before a ``:`` argument belong to the left side and those
given after it belong to the right side. Options and roots may be freely
intermixed.
"""
from argparse import Action, ArgumentParser, RawDescriptionHelpFormatter
from typing import List, Tuple
from os.path import basename
import logging
import sys

from fsift import (
    FSIFT_DEBUG_COLUMNS,
    FSIFT_DEBUG_FILTER,
    FSIFT_DEBUG_ANALYZE,
    FSIFT_DEBUG_SNAPSHOT,
    FSIFT_DEBUG_SCAN,
    FSIFT_DEBUG_OUTPUT,
    FSIFT_DEBUG_COMMAND,
    FSIFT_DEBUG_ALL,
    FSIFT_SUBSYSTEM_COMMAND,
    SiftError,
    SubsystemFilter,
    set_debug_mask,
    OutputAwareHandler,
    __version__,
)
from fsift.sift import EXIT_FATAL, SiftOptions, Sifter
from fsift.sift.options import base_match_filter
from fsift.sift.columns import column_help_lines

#: Argument separating left side roots from right side roots
SIDE_SEPARATOR = ":"

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FSIFT_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def split_roots(roots: List[str]) -> Tuple[List[str], List[str]]:
    """
    Split the positional arguments into left and right side roots. Every
    root after the first ``:`` belongs to the right side.

    :param roots: Positional arguments in command line order.
    :type roots: ``List[str]``
    :returns: A tuple ``(left, right)``.
    :rtype: ``Tuple[List[str], List[str]]``
    """
    left = []
    right = []
    side = left
    for root in roots:
        if root == SIDE_SEPARATOR:
            side = right
            continue
        side.append(root)
    return left, right


def setup_logging(cmd_args):
    """
    Set up fsift logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    fsift_log = logging.getLogger("fsift")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    fsift_log.setLevel(level)
    if fsift_log.hasHandlers():
        fsift_log.handlers.clear()

    # Subsystem log filtering
    _fsift_subsystem_filter = SubsystemFilter("fsift")

    # Main console handler
    _CONSOLE_HANDLER = OutputAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_fsift_subsystem_filter)

    fsift_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down fsift logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "columns": FSIFT_DEBUG_COLUMNS,
        "filter": FSIFT_DEBUG_FILTER,
        "analyze": FSIFT_DEBUG_ANALYZE,
        "snapshot": FSIFT_DEBUG_SNAPSHOT,
        "scan": FSIFT_DEBUG_SCAN,
        "output": FSIFT_DEBUG_OUTPUT,
        "command": FSIFT_DEBUG_COMMAND,
        "all": FSIFT_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_selection_args(parser):
    """
    Add field selection, comparing and sorting arguments.
    """
    group = parser.add_argument_group("Field selection, comparing and sorting")
    group.add_argument(
        "-c",
        "--columns",
        metavar="COLUMNS",
        action="append",
        help="Output columns (default: ostp); a leading '+' adds to the defaults",
    )
    group.add_argument(
        "-s",
        "--sort",
        metavar="COLUMNS",
        action="append",
        help="Sort output using these fields; '/' sorts a field in reverse "
        "(default: no sort)",
    )
    group.add_argument(
        "-k",
        "--key",
        metavar="COLUMNS",
        action="append",
        help="Set fields used in comparisons (default: psto)",
    )
    group.add_argument(
        "-5",
        "--md5",
        action="store_true",
        help="Add md5 column to compare key and output",
    )
    group.add_argument(
        "-2",
        "--sha256",
        action="store_true",
        help="Add sha256 column to compare key and output",
    )
    group.add_argument(
        "-A",
        "--sha512",
        action="store_true",
        help="Add sha512 column to compare key and output",
    )
    group.add_argument(
        "-1",
        "--sha1",
        action="store_true",
        help="Add sha1 column to compare key and output",
    )


class BaseMatchAction(Action):
    """
    Append the prefilter expression for a ``--base-match`` glob to the
    ``--prefilter`` list, so that both options keep their command line
    order.
    """

    def __call__(self, parser, namespace, values, option_string=None):
        items = list(getattr(namespace, self.dest, None) or [])
        items.append(base_match_filter(values))
        setattr(namespace, self.dest, items)


def _add_prefilter_args(parser):
    """
    Add pre-analysis filtering arguments.
    """
    group = parser.add_argument_group("Pre-analysis filtering")
    group.add_argument(
        "-e",
        "--prefilter",
        metavar="FILTER-EXP",
        action="append",
        help="Filter files before indexing",
    )
    group.add_argument(
        "-b",
        "--base-match",
        dest="prefilter",
        metavar="GLOB-PAT",
        action=BaseMatchAction,
        help="Shortcut for --prefilter 'base*=*GLOB-PAT*'",
    )
    group.add_argument(
        "-x",
        "--exclude",
        metavar="GLOB-PAT",
        action="append",
        help="Exclude file system files and/or directory trees by name glob",
    )
    group.add_argument(
        "-R",
        "--regular-only",
        action="store_true",
        help="Only consider regular files while scanning file system",
    )
    group.add_argument(
        "-L",
        "--follow-links",
        action="store_true",
        help="Follow symbolic links while scanning file system",
    )
    group.add_argument(
        "-X",
        "--xdev",
        action="store_true",
        help="Don't descend directories on different file systems",
    )


def _add_postfilter_args(parser):
    """
    Add post-analysis filtering arguments.
    """
    group = parser.add_argument_group("Post-analysis filtering")
    group.add_argument(
        "-f",
        "--postfilter",
        metavar="FILTER-EXP",
        action="append",
        help="Filter output after analysis",
    )
    group.add_argument(
        "-m",
        "--membership",
        metavar="CHARS",
        type=str,
        help="Filter output by membership (one or more of lrLR)",
    )
    group.add_argument(
        "-d",
        "--diff",
        action="store_true",
        help="Show differing entries only; shortcut for -mLR",
    )
    group.add_argument(
        "--nodetect",
        dest="no_detect",
        action="store_true",
        help="Don't try to detect the type of regular files given as roots",
    )


def _add_output_args(parser):
    """
    Add output formatting arguments.
    """
    group = parser.add_argument_group("Output formatting")
    group.add_argument(
        "-o",
        "--out",
        dest="output",
        metavar="PATH",
        type=str,
        help="Output to file instead of stdout (compressed if PATH ends "
        "with .zst or .xz)",
    )
    group.add_argument(
        "-Y",
        "--verify",
        action="store_true",
        help="Check that all left entries are matched on the right",
    )
    group.add_argument(
        "-S",
        "--summary",
        dest="summary_only",
        action="store_true",
        help="Only output summary info; no entry lines",
    )
    group.add_argument(
        "-p",
        "--plain",
        action="store_true",
        help="Only output entries, no header info",
    )
    group.add_argument(
        "-0",
        "--plain0",
        action="store_true",
        help="Like 'plain', but also separate all output fields with null chars",
    )
    group.add_argument(
        "-G",
        "--group-nums",
        action="store_true",
        help="Output ',' between groups of numeric digits",
    )
    group.add_argument(
        "-N",
        "--ignore-nulls",
        action="store_true",
        help="No warnings for comparing nonexistent fields; match always false",
    )
    group.add_argument(
        "-J",
        "--json-out",
        action="store_true",
        help="Output in JSON format",
    )
    group.add_argument(
        "-Z",
        "--out-zone",
        metavar="ZONE",
        type=str,
        help="Format output times for the given location or +HH:MM offset "
        "(default: UTC)",
    )
    group.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease verbosity",
    )


def _build_parser(prog: str) -> ArgumentParser:
    epilog = (
        f"Scan roots before a \"{SIDE_SEPARATOR}\" argument belong to the "
        "\"left\" side,\nthose after the colon belong to the \"right\" side.\n\n"
        "COLUMNS codes (example: 'size,mtime,path' can be shortened to 'stp'):\n  "
        + "\n  ".join(column_help_lines())
    )
    parser = ArgumentParser(
        description="File Sifter",
        prog=prog,
        epilog=epilog,
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "roots",
        metavar="ROOT",
        nargs="*",
        help=f"A directory, file or snapshot to scan ('-' for stdin, "
        f"'{SIDE_SEPARATOR}' to switch to the right side)",
    )
    _add_selection_args(parser)
    _add_prefilter_args(parser)
    _add_postfilter_args(parser)
    _add_output_args(parser)
    parser.add_argument(
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of fsift",
        version=__version__,
    )
    return parser


def _sift_cmd(cmd_args):
    """
    Run the file sifter with the parsed command line arguments.

    :param cmd_args: Command line arguments for the command.
    :returns: The run's exit status.
    """
    options = SiftOptions.from_cmd_args(cmd_args)
    sifter = Sifter(options)
    return sifter.run()


def main(args):
    """
    Main entry point for fsift.
    """
    parser = _build_parser(basename(args[0]))
    cmd_args = parser.parse_intermixed_args(args[1:])

    status = EXIT_FATAL

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    cmd_args.roots_left, cmd_args.roots_right = split_roots(cmd_args.roots)
    cmd_args.verbosity = cmd_args.verbose - cmd_args.quiet
    cmd_args.command_line = " ".join(args[1:])

    if cmd_args.debug:
        try:
            status = _sift_cmd(cmd_args)
        except SiftError as err:
            _log_error("Command failed: %s", err)
    else:
        try:
            status = _sift_cmd(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def console_main():  # pragma: no cover
    """
    Console script entry point for fsift.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
