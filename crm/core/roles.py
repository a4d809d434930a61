"""
Tenant roles and their privilege ordering.

Roles form a total order given by ``ROLE_PRIORITY`` (most privileged first).
Comparison is by position in that tuple. Any role string that is not a known
role (after alias mapping) ranks below every known role, so it can never
satisfy a permission check.
"""
import enum
from typing import Optional, Union


class Role(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    manager = "manager"
    member = "member"
    viewer = "viewer"


ROLE_PRIORITY = (
    Role.owner,
    Role.admin,
    Role.manager,
    Role.member,
    Role.viewer,
)

# Older tenants were provisioned with the owner/manager/staff scheme
ROLE_ALIASES = {
    "staff": Role.member,
}

UNRANKED = len(ROLE_PRIORITY)


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Map a stored role string to a Role, or None if it is not recognised."""
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    normalized = value.strip().lower()
    if normalized in ROLE_ALIASES:
        return ROLE_ALIASES[normalized]
    try:
        return Role(normalized)
    except ValueError:
        return None


def role_rank(value: Union[Role, str, None]) -> int:
    """Position of a role in ROLE_PRIORITY; unknown or missing roles sort last."""
    role = parse_role(value)
    if role is None:
        return UNRANKED
    return ROLE_PRIORITY.index(role)


def compare_roles(a: Union[Role, str, None], b: Union[Role, str, None]) -> int:
    """Negative if ``a`` is more privileged than ``b``, zero if equal, positive otherwise."""
    return role_rank(a) - role_rank(b)


def has_minimum_role(value: Union[Role, str, None], min_role: Role) -> bool:
    rank = role_rank(value)
    return rank != UNRANKED and rank <= role_rank(min_role)
