from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from raffle.contract import RaffleContract
from raffle.db import SqlStore
from raffle.services.chain import RaffleChainClient

from .config import load_config
from .scheduler import SettlementScheduler


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


async def run(args: argparse.Namespace) -> int:
    settings = load_config(args.env_file)
    configure_logging(args.verbose)
    logger = logging.getLogger("raffle.settler")

    contract = RaffleContract(SqlStore(settings.database_url), settings.engine)
    client = RaffleChainClient.from_settings(settings.chain)
    scheduler = SettlementScheduler(settings, contract, client, logger=logger)

    if args.once or settings.settle_only_once:
        report = await scheduler.run_once()
        logger.info("Settled %s transfer(s), %s failed", len(report.settled), len(report.failed))
        return len(report.failed)

    await scheduler.run_forever()
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Raffle payout settlement worker")
    parser.add_argument("--env-file", type=str, default=None, help="Path to .env file with credentials")
    parser.add_argument("--once", action="store_true", help="Run a single settlement pass and exit.")
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging (default INFO)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        failed = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Settler stopped by user.")
        return
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
