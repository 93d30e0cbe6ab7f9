"""Scheduled distribution of accrued Mukando bonuses."""

# meta: job: mukando-payouts

from __future__ import annotations

import datetime as dt
from typing import Any, Dict

from loguru import logger

from smart_rewards_api.core.settings import settings
from smart_rewards_api.services.mukando.payouts import SessionFactory, run_payout_sweep


async def run_mukando_payout_sweep(
    *,
    session_factory: SessionFactory,
    limit: int | None = None,
) -> Dict[str, Any]:
    """Pay every matured group's unpaid bonus to the member whose turn it is."""

    now = dt.datetime.now(dt.timezone.utc)
    batch_limit = limit if limit is not None else settings.mukando_payout_batch_limit
    summary = await run_payout_sweep(session_factory, now=now, limit=batch_limit)
    payload = summary.as_dict()
    if summary.failed:
        logger.bind(summary=payload).warning("Mukando payout job finished with failures")
    return payload


__all__ = ["run_mukando_payout_sweep"]
