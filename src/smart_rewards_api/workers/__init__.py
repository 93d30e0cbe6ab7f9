"""Background workers supporting async processing."""

from .mukando_payouts import MukandoPayoutWorker

__all__ = ["MukandoPayoutWorker"]
