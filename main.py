# main.py

"""Entry point for the shop_aggregator headless CLI."""

import argparse
import asyncio
import logging
import sys

from shop_aggregator.config.logging_config import setup_logging
from shop_aggregator.config.settings import Settings
from shop_aggregator.models.search import SortOrder

logger = logging.getLogger("shop_aggregator.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SERVICES)

    parser = argparse.ArgumentParser(
        prog="shop_aggregator",
        description="Multi-retailer product search with quota protection.",
        epilog=f"Available services: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query.",
    )
    parser.add_argument(
        "-s",
        "--services",
        default=None,
        help="Comma-separated service IDs (default: all).",
    )
    parser.add_argument(
        "--sort",
        choices=[o.value for o in SortOrder],
        default=SortOrder.RELEVANCE.value,
        help="Result ordering (default: relevance).",
    )
    parser.add_argument(
        "-n",
        "--max-results",
        type=int,
        default=Settings.DEFAULT_MAX_RESULTS,
        dest="max_results",
        help=f"Maximum merged results (default: {Settings.DEFAULT_MAX_RESULTS}).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--usage",
        action="store_true",
        default=False,
        help="Show monthly quota usage per service.",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        default=False,
        dest="clear_cache",
        help="Purge the in-memory and on-disk result cache.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show INFO log lines (quota, cache, fan-out) on stderr.",
    )
    return parser


def _run_search(args: argparse.Namespace) -> None:
    """Run headless search and exit."""
    from shop_aggregator.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            service_csv=args.services,
            sort=args.sort,
            max_results=args.max_results,
            output_format=args.output_format,
        )
    )
    sys.exit(exit_code)


def _run_usage_report() -> None:
    """Print the quota usage table."""
    from shop_aggregator.cli.runner import run_usage_report

    sys.exit(run_usage_report())


def _run_clear_cache() -> None:
    """Purge cached results."""
    from shop_aggregator.cli.runner import run_clear_cache

    sys.exit(run_clear_cache())


def main() -> None:
    """Route to the requested CLI action."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        console_level=logging.INFO if args.verbose else logging.WARNING,
    )
    logger.info("shop_aggregator starting, log file: %s", log_file)

    try:
        if args.clear_cache:
            _run_clear_cache()
        elif args.usage:
            _run_usage_report()
        elif args.query is None:
            parser.print_help(sys.stderr)
            sys.exit(1)
        else:
            _run_search(args)
    finally:
        logger.info("shop_aggregator shutting down")


if __name__ == "__main__":
    main()
