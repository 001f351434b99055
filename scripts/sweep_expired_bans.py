from __future__ import annotations

import argparse
import asyncio

from modcore.core.logging import configure_logging
from modcore.persistence.db import SessionLocal
from modcore.services.content import HttpContentService
from modcore.services.housekeeping import sweep_expired_bans


async def sweep(limit: int) -> None:
    # Close out lapsed bans so the ledger matches what lazy expiry already reports.
    async with SessionLocal() as session:
        result = await sweep_expired_bans(session, HttpContentService(), limit=limit)
    print(f"expired_bans_processed={result.processed} skipped={result.skipped}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Close out expired bans")
    parser.add_argument("--limit", type=int, default=500, help="Maximum bans to close per run")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(sweep(args.limit))
