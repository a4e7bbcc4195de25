"""Operator commands for the balance cache.

Usage:
    pto-balances clear-balances-cache
    pto-balances inspect-balances-cache
    pto-balances initialize-balances --year 2025
    pto-balances debug-entitlement USER_ID YEAR
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from pto_balances.config import get_settings
from pto_balances.db import create_schema, dispose_engine
from pto_balances.schemas.maintenance import MaintenanceResult
from pto_balances.services.registry import get_services

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pto-balances", description="Inspect and maintain cached PTO balances")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("clear-balances-cache", help="Delete every cached balance")
    subparsers.add_parser("inspect-balances-cache", help="Print every cached balance")

    initialize = subparsers.add_parser("initialize-balances", help="Compute and cache balances for every employee")
    initialize.add_argument("--year", type=int, required=True)

    debug = subparsers.add_parser("debug-entitlement", help="Explain a user's entitlement for a year")
    debug.add_argument("user_id")
    debug.add_argument("year", type=int)

    return parser


async def run(args: argparse.Namespace) -> MaintenanceResult:
    """Execute one subcommand against the configured services."""
    services = get_services()
    maintenance = services.maintenance

    if args.command == "clear-balances-cache":
        return await maintenance.clear_balances_cache()
    if args.command == "inspect-balances-cache":
        return await maintenance.inspect_balances_cache()
    if args.command == "debug-entitlement":
        return await maintenance.debug_entitlement(args.user_id, args.year)

    summary = await maintenance.initialize_balances(args.year)
    message = f"{summary.message} ({summary.failed} failed)"
    if summary.failed:
        return MaintenanceResult(success=False, error=message, report=message)
    return MaintenanceResult(success=True, message=message, report=message)


async def _main(args: argparse.Namespace) -> MaintenanceResult:
    settings = get_settings()
    if settings.storage_backend != "sql":
        return await run(args)
    await create_schema()
    try:
        return await run(args)
    finally:
        await dispose_engine()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    result = asyncio.run(_main(args))
    print(result.report or result.message or result.error or "")
    if not result.success:
        logger.error("%s failed: %s", args.command, result.error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
