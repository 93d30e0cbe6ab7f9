from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class MukandoSnapshot:
    lifecycle: Dict[str, int]
    contributions: Dict[str, int]
    payouts: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "lifecycle": dict(self.lifecycle),
            "contributions": dict(self.contributions),
            "payouts": dict(self.payouts),
        }


class MukandoObservabilityStore:
    """Collect savings-group telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._lifecycle: Dict[str, int] = defaultdict(int)
        self._contributions: Dict[str, int] = defaultdict(int)
        self._payouts: Dict[str, int] = defaultdict(int)

    def record_lifecycle_event(self, event: str) -> None:
        with self._lock:
            self._lifecycle[event] += 1

    def record_contribution(self, points: int, bonus_points: int) -> None:
        with self._lock:
            self._contributions["count"] += 1
            self._contributions["points"] += points
            self._contributions["bonus_points"] += bonus_points

    def record_contribution_rejected(self, reason: str) -> None:
        with self._lock:
            self._contributions[f"rejected:{reason}"] += 1

    def record_payout(self, points: int, *, completed: bool) -> None:
        with self._lock:
            self._payouts["count"] += 1
            self._payouts["points_distributed"] += points
            if completed:
                self._payouts["groups_completed"] += 1

    def record_payout_failure(self) -> None:
        with self._lock:
            self._payouts["failures"] += 1

    def record_sweep(self, *, evaluated: int) -> None:
        with self._lock:
            self._payouts["sweeps"] += 1
            self._payouts["groups_evaluated"] += evaluated

    def snapshot(self) -> MukandoSnapshot:
        with self._lock:
            return MukandoSnapshot(
                lifecycle=dict(self._lifecycle),
                contributions=dict(self._contributions),
                payouts=dict(self._payouts),
            )

    def reset(self) -> None:
        with self._lock:
            self._lifecycle.clear()
            self._contributions.clear()
            self._payouts.clear()


_STORE = MukandoObservabilityStore()


def get_mukando_store() -> MukandoObservabilityStore:
    return _STORE


__all__ = ["get_mukando_store", "MukandoObservabilityStore", "MukandoSnapshot"]
