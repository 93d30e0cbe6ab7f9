"""Points ledger exports."""

from .ledger import PointsLedgerService, PointsMovement  # noqa: F401

__all__ = ["PointsLedgerService", "PointsMovement"]
