"""Command line entry point: ``tre``."""

import argparse
import logging
from typing import Optional

from tre import __version__
from tre.catalog.domain.exceptions import CatalogError
from tre.log import logger, setup

logger = logger.getChild(__name__)

EXIT_ERROR = 255
EXIT_INTERRUPTED = 252


def get_parent_parser() -> argparse.ArgumentParser:
    parent_parser = argparse.ArgumentParser(add_help=False)
    log_level_group = parent_parser.add_mutually_exclusive_group()
    log_level_group.add_argument(
        "-q", "--quiet", action="count", default=0, help="Be quiet."
    )
    log_level_group.add_argument(
        "-v", "--verbose", action="count", default=0, help="Be verbose."
    )
    return parent_parser


def get_main_parser() -> argparse.ArgumentParser:
    from tre.commands import catalog

    parent_parser = get_parent_parser()
    parser = argparse.ArgumentParser(
        prog="tre",
        description="Versioned asset and provenance catalog.",
        parents=[parent_parser],
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(
        title="Available Commands",
        metavar="COMMAND",
        dest="cmd",
        help="Use `tre COMMAND --help` for command-specific help.",
    )
    catalog.add_parser(subparsers, parent_parser)
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = get_main_parser()
    args = parser.parse_args(argv)
    args.parser = parser
    return args


def _log_level(args: argparse.Namespace) -> int:
    if args.quiet:
        return logging.CRITICAL if args.quiet > 1 else logging.WARNING
    if args.verbose:
        return logging.DEBUG
    return logging.INFO


def main(argv: Optional[list[str]] = None) -> int:
    """Run the ``tre`` command line.

    Returns:
        Process exit code: 0 on success, 255 on catalog errors.
    """
    from tre.ui import ui

    args = parse_args(argv)
    setup(_log_level(args))
    func = getattr(args, "func", None)
    if func is None:
        args.parser.print_help()
        return EXIT_ERROR
    try:
        cmd = func(args)
        return cmd.do_run()
    except (CatalogError, OSError, ValueError) as exc:
        logger.debug("command failed", exc_info=True)
        ui.error_write(f"ERROR: {exc}")
        return EXIT_ERROR
    except KeyboardInterrupt:
        ui.error_write("interrupted by the user")
        return EXIT_INTERRUPTED
