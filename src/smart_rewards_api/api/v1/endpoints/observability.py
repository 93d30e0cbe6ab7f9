"""Observability snapshots and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from smart_rewards_api.api.dependencies.security import require_operator_api_key
from smart_rewards_api.observability.mukando import get_mukando_store
from smart_rewards_api.observability.scheduler import get_scheduler_store


router = APIRouter(
    prefix="/observability",
    tags=["Observability"],
    dependencies=[Depends(require_operator_api_key)],
)


@router.get("/mukando", summary="Mukando savings-group counters")
async def get_mukando_snapshot() -> dict[str, object]:
    return get_mukando_store().snapshot().as_dict()


@router.get("/scheduler", summary="Scheduled job counters")
async def get_scheduler_snapshot() -> dict[str, object]:
    return get_scheduler_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    mukando = get_mukando_store().snapshot()
    scheduler = get_scheduler_store().snapshot()

    lines: list[str] = []
    for event, value in sorted(mukando.lifecycle.items()):
        lines.extend(
            _format_metric(
                "smart_rewards_mukando_lifecycle_events_total",
                "Savings-group lifecycle events",
                value,
                labels={"event": event},
            )
        )
    contributions = mukando.contributions
    lines.extend(
        _format_metric("smart_rewards_mukando_contributions_total", "Accepted contributions", contributions.get("count", 0))
    )
    lines.extend(
        _format_metric(
            "smart_rewards_mukando_contributed_points_total",
            "Points moved into group pools",
            contributions.get("points", 0),
        )
    )
    lines.extend(
        _format_metric(
            "smart_rewards_mukando_bonus_points_total",
            "Bonus points accrued by contributions",
            contributions.get("bonus_points", 0),
        )
    )
    payouts = mukando.payouts
    lines.extend(_format_metric("smart_rewards_mukando_payouts_total", "Payouts distributed", payouts.get("count", 0)))
    lines.extend(
        _format_metric(
            "smart_rewards_mukando_payout_points_total",
            "Bonus points distributed to members",
            payouts.get("points_distributed", 0),
        )
    )
    lines.extend(
        _format_metric("smart_rewards_mukando_payout_failures_total", "Payout attempts that failed", payouts.get("failures", 0))
    )
    for key, value in sorted(scheduler.totals.items()):
        lines.extend(
            _format_metric(
                "smart_rewards_scheduler_jobs_total",
                "Scheduled job outcomes",
                value,
                labels={"bucket": key},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
