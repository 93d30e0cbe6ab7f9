#!/usr/bin/env python3
"""Quick health check for Smart Rewards observability endpoints.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$OPERATOR_API_KEY"

Fails when Mukando payout failures or consecutive scheduled-job failures
exceed the configured thresholds.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Smart Rewards observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the Smart Rewards API service.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Operator API key for the observability endpoints.",
    )
    parser.add_argument(
        "--max-payout-failures",
        type=int,
        default=0,
        help="Maximum allowed Mukando payout failures before failing (default: 0).",
    )
    parser.add_argument(
        "--max-consecutive-job-failures",
        type=int,
        default=2,
        help="Maximum consecutive failures for any scheduled job (default: 2).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


async def _get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


def _fail(message: str) -> None:
    print(f"[check-observability] FAIL {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] OK {message}")


async def validate_mukando(client: httpx.AsyncClient, headers: Dict[str, str], max_failures: int) -> None:
    payload = await _get_json(client, "/api/v1/observability/mukando", headers=headers)
    payouts = payload.get("payouts", {})
    contributions = payload.get("contributions", {})
    failures = int(payouts.get("failures", 0))

    if failures > max_failures:
        _fail(f"Mukando payout failures {failures} exceed threshold {max_failures}")

    _log_ok(
        f"Mukando observability OK (contributions={contributions.get('count', 0)}, "
        f"payouts={payouts.get('count', 0)}, failures={failures})"
    )


async def validate_scheduler(client: httpx.AsyncClient, headers: Dict[str, str], max_consecutive: int) -> None:
    payload = await _get_json(client, "/api/v1/observability/scheduler", headers=headers)
    for job_id, job in (payload.get("jobs") or {}).items():
        consecutive = int(job.get("totals", {}).get("consecutive_failures", 0))
        if consecutive > max_consecutive:
            _fail(
                f"Scheduled job {job_id} failed {consecutive} times in a row "
                f"(last error: {job.get('last_error')})"
            )

    totals = payload.get("totals", {})
    _log_ok(f"Scheduler observability OK (runs={totals.get('runs', 0)}, failures={totals.get('failures', 0)})")


async def main() -> None:
    args = parse_args()
    headers = {"X-API-Key": args.api_key} if args.api_key else {}

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        readiness = await client.get("/api/v1/readyz")
        if readiness.status_code != 200 or readiness.json().get("status") == "error":
            _fail(f"Readiness check failed: {readiness.text}")
        _log_ok(f"Readiness status {readiness.json().get('status')}")

        await validate_mukando(client, headers, args.max_payout_failures)
        await validate_scheduler(client, headers, args.max_consecutive_job_failures)

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except Exception as exc:  # pragma: no cover - best-effort logging
        _fail(f"Unexpected error: {exc}")
