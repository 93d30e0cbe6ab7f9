from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from smart_rewards_api.core.settings import settings
from smart_rewards_api.db.session import get_session
from smart_rewards_api.observability.scheduler import get_scheduler_store


router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


def _background_component(component: object | None, *, enabled: bool, label: str) -> ComponentStatus:
    if not enabled or component is None:
        return ComponentStatus(status="disabled", detail=f"{label} disabled via settings")
    running = bool(getattr(component, "is_running", False))
    return ComponentStatus(
        status="ready" if running else "starting",
        detail=None if running else f"{label} not running",
    )


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        components["database"] = ComponentStatus(status="error", detail=str(exc))
    else:
        components["database"] = ComponentStatus(status="ready")

    scheduler_enabled = settings.job_scheduler_enabled
    components["mukando_payout_worker"] = _background_component(
        getattr(request.app.state, "mukando_payout_worker", None),
        enabled=settings.mukando_payout_worker_enabled and not scheduler_enabled,
        label="Mukando payout worker",
    )
    scheduler_status = _background_component(
        getattr(request.app.state, "job_scheduler", None),
        enabled=scheduler_enabled,
        label="Job scheduler",
    )
    if scheduler_status.status == "ready":
        failing = [
            job_id
            for job_id, job in get_scheduler_store().snapshot().jobs.items()
            if job.consecutive_failures > 0
        ]
        if failing:
            scheduler_status = ComponentStatus(status="error", detail=f"Jobs failing: {', '.join(failing)}")
    components["job_scheduler"] = scheduler_status

    states = {component.status for component in components.values()}
    overall: Literal["ready", "degraded", "error"] = "ready"
    if "error" in states:
        overall = "error"
    elif "starting" in states:
        overall = "degraded"
    return ReadinessPayload(status=overall, components=components)
