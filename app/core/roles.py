"""
Role hierarchy

Total order over membership roles used by every authorization check:
SUPER_ADMIN > OWNER > ADMIN > MEMBER > VIEWER.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from app.core.exceptions import BadRequestError


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"

    @property
    def rank(self) -> int:
        return ROLE_RANKS[self]

    @classmethod
    def parse(cls, value: Union["Role", str]) -> "Role":
        """Convert a role string to a Role, rejecting unknown values"""
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise BadRequestError(f"Invalid role: {value}")


class TeamRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


# Lowest to highest; VIEWER starts at 2 so unknown roles (0) sit strictly below it
ROLE_ORDER = (Role.VIEWER, Role.MEMBER, Role.ADMIN, Role.OWNER, Role.SUPER_ADMIN)

ROLE_RANKS: Dict[Role, int] = {role: index + 2 for index, role in enumerate(ROLE_ORDER)}

# Roles that can be stored on a tenant or project membership row
MEMBERSHIP_ROLES = (Role.OWNER, Role.ADMIN, Role.MEMBER, Role.VIEWER)

if set(ROLE_RANKS) != set(Role):
    raise RuntimeError("ROLE_ORDER must rank every Role")


RoleLike = Optional[Union[Role, str]]


def role_rank(role: RoleLike) -> int:
    """Rank of a role; None and unknown strings rank 0"""
    if role is None:
        return 0
    if isinstance(role, Role):
        return role.rank
    try:
        return Role(str(role).upper()).rank
    except ValueError:
        return 0


def has_minimum_role(held: RoleLike, required: RoleLike) -> bool:
    """True when ``held`` ranks at or above ``required``"""
    return role_rank(held) >= role_rank(required)


def can_manage(manager: RoleLike, target: RoleLike) -> bool:
    """
    Whether a holder of ``manager`` may change or remove a holder of ``target``.

    SUPER_ADMIN manages anyone, nobody manages a SUPER_ADMIN, otherwise the
    manager must rank strictly higher (peers cannot manage peers).
    """
    if role_rank(manager) == Role.SUPER_ADMIN.rank:
        return True
    if role_rank(target) == Role.SUPER_ADMIN.rank:
        return False
    return role_rank(manager) > role_rank(target)


def parse_membership_role(value: Union[Role, str]) -> Role:
    """Parse a role that may be stored on a membership (SUPER_ADMIN is system-wide only)"""
    role = Role.parse(value)
    if role not in MEMBERSHIP_ROLES:
        raise BadRequestError(
            f"Invalid role. Must be one of: {', '.join(r.value for r in MEMBERSHIP_ROLES)}"
        )
    return role


@dataclass(frozen=True)
class TenantScope:
    """Authorization scope covering a whole tenant"""
    tenant_id: Optional[str]


@dataclass(frozen=True)
class ProjectScope:
    """Authorization scope covering one project"""
    project_id: Optional[str]


Scope = Union[TenantScope, ProjectScope]
