"""In-process loop that periodically runs the Mukando payout sweep."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from loguru import logger

from smart_rewards_api.core.settings import settings
from smart_rewards_api.services.mukando.payouts import SessionFactory, run_payout_sweep


class MukandoPayoutWorker:
    """Distribute matured group bonuses on a fixed interval."""

    # meta: worker: mukando-payouts

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        limit: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.mukando_payout_interval_seconds
        self.limit = limit if limit is not None else settings.mukando_payout_batch_limit
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Mukando payout worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Mukando payout worker stopped")

    async def run_once(self) -> Dict[str, Any]:
        summary = await run_payout_sweep(self._session_factory, limit=self.limit)
        return summary.as_dict()

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.exception("Mukando payout sweep failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["MukandoPayoutWorker"]
