"""
Gomon Command Line Interface.

Watches the current directory and restarts a Go program when its
sources change.
Requires Python 3.11+.

Usage:
    gomon run main.go [args...]
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence

from monitor.app import Monitor
from utils.config import get_settings
from utils.errors import GomonError
from utils.logger import configure_logging, get_logger


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="gomon",
        description=(
            f"Run `{settings.process.program} <subcommand> <file> [args...]` and "
            "restart it whenever a source file in the working directory changes."
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {settings.app_version}",
    )
    parser.add_argument(
        "subcommand",
        help="Subcommand passed to the program (e.g. run)",
    )
    parser.add_argument(
        "file",
        help="Entry file passed to the program",
    )
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="Arguments passed verbatim to the program",
    )
    return parser


def build_command(subcommand: str, file: str, args: Sequence[str]) -> list[str]:
    """Full command line of the supervised child."""
    return [get_settings().process.program, subcommand, file, *args]


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    configure_logging()
    logger = get_logger("gomon")

    monitor = Monitor(build_command(args.subcommand, args.file, args.args))

    try:
        exit_code = asyncio.run(monitor.run())
    except GomonError as e:
        logger.error("startup_failed", error=str(e))
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
