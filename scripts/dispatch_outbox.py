#!/usr/bin/env python3
"""Outbox worker — deliver queued leave notifications (email + in-app).

Each pass runs in its own transaction: due messages are delivered, failures
are rescheduled with exponential backoff, and messages that exhaust
OUTBOX_MAX_ATTEMPTS are marked failed.

Usage:
    python scripts/dispatch_outbox.py                 # loop forever, 15s between passes
    python scripts/dispatch_outbox.py --once          # single pass (cron)
    python scripts/dispatch_outbox.py --interval 60 --batch-size 500

Exit codes:
    0 = clean exit
    1 = a pass raised (only with --once)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from leave_ledger.common.logging_config import setup_logging
from leave_ledger.config import settings
from leave_ledger.database import async_session_factory, engine
from leave_ledger.notifications.dispatcher import OutboxDispatcher
from leave_ledger.notifications.email import EmailClient
from leave_ledger.notifications.schemas import DispatchResult

logger = logging.getLogger("dispatch_outbox")


async def run_pass(email_client: EmailClient, batch_size: int) -> DispatchResult:
    async with async_session_factory() as session:
        try:
            result = await OutboxDispatcher(session, email_client).dispatch_pending(batch_size)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return result


async def run(args: argparse.Namespace) -> int:
    email_client = EmailClient()
    if email_client.is_mock:
        logger.warning("RESEND_API_KEY not set; emails will be logged, not sent")

    try:
        while True:
            try:
                result = await run_pass(email_client, args.batch_size)
            except Exception:
                logger.exception("Outbox pass failed")
                if args.once:
                    return 1
            else:
                if args.once:
                    logger.info("Single pass done: %s", result.model_dump())
                    return 0
            await asyncio.sleep(args.interval)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Deliver pending outbox messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--once", action="store_true",
                        help="Run a single pass and exit")
    parser.add_argument("--interval", type=float, default=15.0,
                        help="Seconds between passes (default: 15)")
    parser.add_argument("--batch-size", type=int, default=settings.OUTBOX_BATCH_SIZE,
                        help=f"Messages per pass (default: {settings.OUTBOX_BATCH_SIZE})")
    args = parser.parse_args()

    setup_logging()
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
