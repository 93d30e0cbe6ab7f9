from __future__ import annotations

from loguru import logger

from smart_rewards_api.celery_app import celery_app
from smart_rewards_api.core.settings import settings
from smart_rewards_api.tasks.mukando_payouts import run_mukando_payouts_sync


@celery_app.task(
    name="mukando.run_payout_sweep",
    queue=settings.mukando_payout_task_queue,
)
def run_mukando_payout_sweep(limit: int | None = None) -> dict[str, object]:
    """Execute one Mukando payout sweep via Celery."""

    if not settings.mukando_payout_worker_enabled:
        logger.info("Mukando payout worker disabled; skipping Celery task.")
        return {"evaluated": 0, "distributed": 0, "failed": 0, "skipped": True}
    return run_mukando_payouts_sync(limit=limit)
