"""Typed failures raised by the points ledger and savings-group services."""

from __future__ import annotations


class RewardsError(RuntimeError):
    """Base exception for domain failures surfaced to the API layer."""


class NotFoundError(RewardsError):
    """Raised when a group, customer or business does not exist."""


class InvalidStateError(RewardsError):
    """Raised when an operation targets a group in the wrong status."""

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class GroupPermissionError(RewardsError):
    """Raised when the acting business does not own the group."""


class DuplicateMembershipError(RewardsError):
    """Raised when a customer joins a group they already belong to."""


class CapacityError(RewardsError):
    """Raised when a group has no free member slots."""


class InsufficientBalanceError(RewardsError):
    """Raised when a debit would take a customer's balance below zero."""

    def __init__(self, message: str, *, requested: int | None = None, available: int | None = None) -> None:
        super().__init__(message)
        self.requested = requested
        self.available = available


class NotMemberError(RewardsError):
    """Raised when a non-member tries to contribute."""


class ValidationError(RewardsError):
    """Raised for malformed input such as non-positive amounts."""


__all__ = [
    "CapacityError",
    "DuplicateMembershipError",
    "GroupPermissionError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "NotFoundError",
    "NotMemberError",
    "RewardsError",
    "ValidationError",
]
