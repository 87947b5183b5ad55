#!/usr/bin/env python3
"""Annual leave allocation — allowance + capped carry-forward for one tenant.

Usage:
    python scripts/run_annual_allocation.py --tenant <uuid> --year 2027 --dry-run
    python scripts/run_annual_allocation.py --tenant <uuid> --year 2027

Exit codes:
    0 = allocation ran (or dry run completed)
    1 = tenant has no users or no leave types
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import date

from leave_ledger.common.logging_config import setup_logging
from leave_ledger.database import async_session_factory, engine
from leave_ledger.leave.allocation import AnnualAllocationJob
from leave_ledger.leave.schemas import AnnualAllocationResponse

logger = logging.getLogger("run_annual_allocation")


async def run(tenant_id: uuid.UUID, year: int, dry_run: bool) -> AnnualAllocationResponse:
    try:
        async with async_session_factory() as session:
            try:
                result = await AnnualAllocationJob.for_session(session).run(
                    tenant_id, year, dry_run=dry_run,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return result
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Run annual leave allocation for a tenant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--tenant", type=uuid.UUID, required=True,
                        help="Tenant id")
    parser.add_argument("--year", type=int, default=date.today().year,
                        help="Target year (default: current year)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Count would-create / would-update rows without writing")
    args = parser.parse_args()

    setup_logging()
    result = asyncio.run(run(args.tenant, args.year, args.dry_run))

    if not result.success:
        logger.error("Allocation skipped: %s", result.message)
        sys.exit(1)

    stats = result.results[0]
    print(f"""
{'=' * 60}
  ANNUAL ALLOCATION {'(DRY RUN) ' if result.dry_run else ''}COMPLETE
  Year            : {result.year}
  Users           : {stats.total_users}
  Created         : {stats.created}
  Updated         : {stats.updated}
  Carried forward : {stats.carried_forward}
{'=' * 60}
""")


if __name__ == "__main__":
    main()
