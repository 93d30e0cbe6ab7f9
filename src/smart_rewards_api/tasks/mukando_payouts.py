"""CLI + sync helpers for the Mukando payout sweep.

External schedulers (Celery, cron) trigger the same sweep as the in-process
worker through this module without importing FastAPI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from smart_rewards_api.core.settings import settings
from smart_rewards_api.db.session import async_session
from smart_rewards_api.services.mukando.payouts import SessionFactory, run_payout_sweep


async def run_mukando_payouts(
    *,
    limit: int | None = None,
    now: datetime | None = None,
    session_factory: SessionFactory | None = None,
) -> dict[str, Any]:
    """Run one payout sweep and return its summary payload."""

    summary = await run_payout_sweep(
        session_factory or async_session,
        now=now,
        limit=limit if limit is not None else settings.mukando_payout_batch_limit,
    )
    return summary.as_dict()


def run_mukando_payouts_sync(*, limit: int | None = None) -> dict[str, Any]:
    return asyncio.run(run_mukando_payouts(limit=limit))


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Distribute matured Mukando group bonuses")
    parser.add_argument("--limit", type=int, default=None, help="Maximum groups to process in this sweep.")
    parser.add_argument(
        "--now",
        type=_parse_timestamp,
        default=None,
        help="ISO-8601 reference time used for payout maturity (defaults to current UTC time).",
    )
    args = parser.parse_args(argv)

    summary = asyncio.run(run_mukando_payouts(limit=args.limit, now=args.now))
    logger.info("Mukando payout sweep finished", distributed=summary["distributed"], failed=summary["failed"])
    print(json.dumps(summary, indent=2))
    return 1 if summary["failed"] else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
