"""
Staff role hierarchy. Used only to arbitrate claim overrides.
"""

from typing import Union

from quoteflow.errors import InvalidInput
from quoteflow.models.enums import StaffRole

ROLE_RANK = {
    StaffRole.REVIEWER: 1,
    StaffRole.SENIOR_REVIEWER: 2,
    StaffRole.ADMIN: 3,
    StaffRole.SUPER_ADMIN: 4,
}


def role_rank(role: Union[StaffRole, str]) -> int:
    try:
        return ROLE_RANK[StaffRole(role)]
    except ValueError:
        raise InvalidInput("unknown staff role", role=role)


def can_override(requesting: Union[StaffRole, str], current: Union[StaffRole, str]) -> bool:
    """Strictly higher rank wins. Equal rank never overrides."""
    return role_rank(requesting) > role_rank(current)
