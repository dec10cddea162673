"""Command-line interface for the yield compounder."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import ConfigError, load_config
from .logging_setup import configure_logging
from .models import RunStatus
from .services import Farmer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="yield-compounder",
        description="Harvest lending-protocol rewards and reinvest them daily",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Startup sequence, then reinvest on schedule")
    sub.add_parser("reinvest", help="Single claim/approve/deposit run")
    sub.add_parser("positions", help="List entered markets and estimated rates")

    return parser


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command and return the process exit code."""
    configure_logging(args.log_level)
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    farmer = Farmer(config)

    if args.command == "run":
        await farmer.run_forever()
    elif args.command == "reinvest":
        run = await farmer.reinvest()
        return 1 if run.status is RunStatus.FAILED else 0
    elif args.command == "positions":
        await farmer.report_positions()
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        sys.exit(130)
