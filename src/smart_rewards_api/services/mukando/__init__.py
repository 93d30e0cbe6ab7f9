"""Mukando rotating-savings group services."""

from .contributions import ContributionReceipt, MukandoContributionProcessor, compute_bonus  # noqa: F401
from .membership import MukandoGroupSummary, MukandoMembershipService  # noqa: F401
from .payouts import (  # noqa: F401
    MukandoPayoutScheduler,
    PayoutResult,
    PayoutSweepSummary,
    ReadyGroup,
    run_payout_sweep,
)
from .registry import MukandoGroupRegistry, progress_percentage  # noqa: F401

__all__ = [
    "ContributionReceipt",
    "MukandoContributionProcessor",
    "MukandoGroupRegistry",
    "MukandoGroupSummary",
    "MukandoMembershipService",
    "MukandoPayoutScheduler",
    "PayoutResult",
    "PayoutSweepSummary",
    "ReadyGroup",
    "compute_bonus",
    "progress_percentage",
    "run_payout_sweep",
]
