"""SQLAlchemy models package."""

from .user import User, UserRoleEnum, UserStatusEnum  # noqa: F401
from .customer_profile import CustomerProfile  # noqa: F401
from .business_profile import BusinessProfile  # noqa: F401
from .mukando import (  # noqa: F401
    MukandoContribution,
    MukandoContributionInterval,
    MukandoGroup,
    MukandoGroupStatus,
    MukandoMember,
)
from .points import PointsTransaction, PointsTransactionType  # noqa: F401
