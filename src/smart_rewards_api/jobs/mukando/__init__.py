"""Mukando savings-group jobs."""

from .payouts import run_mukando_payout_sweep

__all__ = ["run_mukando_payout_sweep"]
