"""Command line entry point for the APT history tailer.

Two modes are available:

1. Daemon (-d): continuously tail the history log and emit JSON records
2. Search (-s): scan history logs once and print a filtered JSON report
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import platform
import sys

from . import __version__
from .config import MAX_VERBOSITY, TailerConfig
from .logging_manager import setup_logging
from .search import SearchOptions, run_search
from .tailing import OutputSink, PositionStore, TailerError, TailingEngine

logger = logging.getLogger(__name__)

EPILOG = """\
Report bugs to: dev@evsec.net
APTHistoryLogger home page: <https://github.com/EvSecDev/APTHistoryLogger>
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apthistory",
        description="Watches apt history.log and parses events into JSON",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-d", "--daemon", action="store_true", help="Run continuously")
    mode.add_argument(
        "-s", "--search", action="store_true", help="Search through log file for given search parameters"
    )

    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument("-l", "--log-file", help="Input log file [default: /var/log/apt/history.log]")
    parser.add_argument("-o", "--out-file", help="Output to a file instead of stdout")
    parser.add_argument("--state-dir", help="Directory for the saved log position")
    parser.add_argument(
        "-T", "--dry-run", action="store_true", default=None, help="Does all startups except process the log file"
    )
    parser.add_argument(
        "-v",
        "--verbosity",
        type=int,
        choices=range(MAX_VERBOSITY + 1),
        metavar="0...5",
        help="Increase details and frequency of progress messages [default: 1]",
    )
    parser.add_argument("-V", "--version", action="store_true", help="Show version information")
    parser.add_argument("--versionid", action="store_true", help="Show only version number")

    search = parser.add_argument_group("search filters")
    search.add_argument(
        "--time-order", choices=("asc", "desc"), default="asc",
        help="Order search output by start timestamp [default: asc]",
    )
    search.add_argument(
        "--start-timestamp", default="", metavar="2010-12-31T23:59:59",
        help="Filter start time of search [default: 1 week ago]",
    )
    search.add_argument(
        "--end-timestamp", default="", metavar="2011-12-31T23:59:59",
        help="Filter end time of search [default: now]",
    )
    search.add_argument("--event-id", default="", metavar="uuid", help="Filter by specific event id")
    search.add_argument("--command-line", default="", metavar="text", help="Filter command line")
    search.add_argument("--package-name", default="", metavar="pkg", help="Filter package name")
    search.add_argument("--package-version", default="", metavar="ver", help="Filter package version")
    search.add_argument(
        "--operation", default="", metavar="op",
        help="Filter APT operation (install|reinstall|upgrade|remove|purge)",
    )
    search.add_argument("--user-name", default="", metavar="name", help="Filter user that initiated operation by name")
    search.add_argument("--user-uid", default="", metavar="num", help="Filter user that initiated operation by ID")
    return parser


def load_config(args: argparse.Namespace) -> TailerConfig:
    """Build the configuration: defaults, then the YAML file, then CLI flags.

    Raises:
        ValueError: If the configuration file or a value is invalid.
    """
    config = TailerConfig.from_yaml(args.config) if args.config else TailerConfig()
    return config.with_overrides(
        log_path=args.log_file,
        output_path=args.out_file,
        state_dir=args.state_dir,
        verbosity=args.verbosity,
        dry_run=args.dry_run,
    ).validate()


def run_daemon(config: TailerConfig) -> int:
    store = PositionStore(config.state_dir, config.state_file_name)
    sink = OutputSink(config.output_path)
    try:
        sink.open()
    except OSError as e:
        logger.critical(f"Failed to open output file {config.output_path}: {e}")
        return 1

    try:
        with sink:
            engine = TailingEngine(config, store, sink)
            asyncio.run(engine.run())
    except TailerError as e:
        logger.critical(str(e))
        return 1
    except OSError as e:
        logger.critical(f"Error reading log: {e}")
        return 1
    return 0


def run_search_mode(config: TailerConfig, args: argparse.Namespace) -> int:
    options = SearchOptions(
        event_id=args.event_id,
        output_order=args.time_order,
        start_timestamp=args.start_timestamp,
        end_timestamp=args.end_timestamp,
        package_name=args.package_name,
        package_version=args.package_version,
        operation=args.operation,
        command_line=args.command_line,
        user_name=args.user_name,
        user_id=args.user_uid,
    )
    try:
        report = run_search(config.log_path, options)
    except ValueError as e:
        logger.critical(f"Search failed: {e}")
        return 1

    if report["totalresults"] == 0:
        logger.info("Search returned no results")
        return 0

    print(json.dumps(report, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"APTHistoryLogger {__version__}")
        print(f"Built using Python {platform.python_version()} ({platform.python_implementation()}) on {platform.system()}")
        print("License GPLv3+: GNU GPL version 3 or later <https://gnu.org/licenses/gpl.html>")
        return 0
    if args.versionid:
        print(__version__)
        return 0

    try:
        config = load_config(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(config.verbosity, config.log_file)

    if args.daemon:
        return run_daemon(config)
    if args.search:
        return run_search_mode(config, args)

    logger.info("No arguments specified or incorrect argument combination. Use '-h' or '--help' to guide your way.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
