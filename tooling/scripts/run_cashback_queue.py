#!/usr/bin/env python3
"""Drain one batch of the cashback notification queue.

Intended for external cron or workflow runners that do not call the HTTP
trigger.

Example:
    python tooling/scripts/run_cashback_queue.py --batch-size 25
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send queued cashback WhatsApp notifications")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Rows to claim in this run (defaults to CASHBACK_QUEUE_BATCH_SIZE, capped at the max batch size).",
    )
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        help="Exit with status 1 when the run fails or any notification fails.",
    )
    args = parser.parse_args()
    if args.batch_size is not None and args.batch_size <= 0:
        parser.error("--batch-size must be a positive integer")
    return args


async def _run(batch_size: int | None) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from cashback_api.db.session import async_session  # type: ignore import-position
    from cashback_api.services.cashback import CashbackTriggerService  # type: ignore import-position

    summary = await CashbackTriggerService(async_session).process_queue(batch_size)
    return summary.queue_payload()


def main() -> int:
    args = parse_args()
    payload = asyncio.run(_run(args.batch_size))
    if not payload["success"]:
        logger.error("Cashback queue run failed", error=payload.get("error"))
        return 1 if args.fail_on_error else 0
    logger.success("Cashback queue run completed", **payload)
    if args.fail_on_error and payload["failed"]:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
