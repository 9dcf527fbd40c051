"""
Generate the weekly dues rows for a month and purge expired login sessions.

Meant to run from cron at the start of every month. Safe to re-run: rows that
already exist are skipped.
Usage: python -m kas.scripts.generate_weekly_payments [--year 2025 --month 7]
"""

import argparse
import asyncio
import logging
from datetime import date
from typing import Optional, Sequence

from kas.api.v1.weekly_payments.service import generate_entries
from kas.auth.services import purge_expired_sessions
from kas.core.config import settings
from kas.core.logging import setup_logging
from kas.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    today = date.today()
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--year", type=int, default=today.year)
    parser.add_argument("--month", type=int, default=today.month, choices=range(1, 13))
    return parser.parse_args(argv)


async def run(year: int, month: int) -> int:
    async with AsyncSessionLocal() as session:
        created = await generate_entries(session, year, month)
        purged = await purge_expired_sessions(session)
    logger.info("Generated %d entries for %02d/%d; purged %d expired session(s)", created, month, year, purged)
    return created


def main(argv: Optional[Sequence[str]] = None) -> None:
    setup_logging(settings.log_level)
    args = parse_args(argv)
    asyncio.run(run(args.year, args.month))


if __name__ == "__main__":
    main()
