#!/usr/bin/env python3
"""
Find and optionally rewrite asset snapshots whose balance_in_usd was inflated
by an inverted fiat conversion.

Usage:
  python -m scripts.fix_wealth_corruption                  # dry-run
  python -m scripts.fix_wealth_corruption --no-dry-run     # write corrected values
  python -m scripts.fix_wealth_corruption --multiplier 20
"""

import argparse
import asyncio
from typing import Optional

from fxengine.database import AsyncSessionLocal
from fxengine.logging_config import setup_logging
from fxengine.services.wealth_repair import repair_snapshots


async def run(dry_run: bool, multiplier: Optional[float]) -> None:
    async with AsyncSessionLocal() as db:
        print(f"Scanning asset snapshots (dry_run={dry_run})")
        report = await repair_snapshots(db, dry_run=dry_run, multiplier=multiplier)

        for finding in report.findings:
            print(f"  {finding.audit_line(dry_run)}")

        print("\nSummary")
        for line in report.summary_lines():
            print(f"  {line}")

        if dry_run:
            print("\nDry run: no changes written. Re-run with --no-dry-run to fix.")
        else:
            await db.commit()
            print("\nWrote corrected balance_in_usd values.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Repair inflated wealth snapshot USD values")
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Only report flagged snapshots (default). Use --no-dry-run to persist fixes",
    )
    parser.add_argument(
        "--multiplier",
        type=float,
        default=None,
        help="Flag when recorded USD exceeds the estimate by this factor (default from settings)",
    )
    args = parser.parse_args()

    setup_logging()
    asyncio.run(run(dry_run=args.dry_run, multiplier=args.multiplier))
