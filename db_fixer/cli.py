"""Command-line entry point: ``db-fixer [--config PATH] [--dry] [--log DIR]``."""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from db_fixer.config import CONFIG, load_config
from db_fixer.errors import ConfigurationError, DatabaseConnectionError
from db_fixer.reporting import ConsoleReporter
from db_fixer.runner import execute_run

EXIT_OK = 0
EXIT_CONNECTION_FAILED = 1
EXIT_BAD_CONFIG = 2


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyzes & fixes issues in database configuration.")
    parser.add_argument(
        "--config",
        default=CONFIG["CONFIG_FILE"],
        help="Python file defining configure(config) (default: %(default)s)",
    )
    parser.add_argument("--dry", action="store_true", help="Analyze without fixes")
    parser.add_argument("--log", metavar="DIR", default=None, help="Also write the run to a log file in DIR")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    reporter = ConsoleReporter()
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        reporter.error(f"Invalid configuration: {exc}")
        return EXIT_BAD_CONFIG
    try:
        execute_run(config, dry=args.dry, log_dir=args.log, reporter=reporter)
    except DatabaseConnectionError:
        return EXIT_CONNECTION_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
