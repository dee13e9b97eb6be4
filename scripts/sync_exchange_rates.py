#!/usr/bin/env python3
"""
Pull the oracle snapshot once, outside the API.

Usage:
  python -m scripts.sync_exchange_rates
"""

import asyncio
import sys

from fxengine.database import AsyncSessionLocal
from fxengine.logging_config import setup_logging
from fxengine.services.rate_sync import RateSyncError, sync_exchange_rates


async def main() -> int:
    async with AsyncSessionLocal() as db:
        try:
            count = await sync_exchange_rates(db)
        except RateSyncError as exc:
            await db.rollback()
            print(f"Sync failed: {exc.message} ({exc.code})")
            return 1
        await db.commit()
    print(f"Successfully synced {count} exchange rates")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
