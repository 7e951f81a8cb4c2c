"""
Role authority: pure allow/deny decisions on team roles.

There is no implied hierarchy. Each call site names exactly which roles
qualify; "owner" does not inherit what "admin" may do unless the allow-set
says so.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Union

from rollcall_shared.schemas.common import TeamRole

RoleLike = Union[TeamRole, str, None]


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def _as_role(role: RoleLike) -> Optional[TeamRole]:
    if isinstance(role, TeamRole):
        return role
    try:
        return TeamRole(role)
    except ValueError:
        return None


def authorize(acting_role: RoleLike, required_roles: Iterable[RoleLike]) -> Decision:
    """Allow only when the acting role is one of the required roles."""
    role = _as_role(acting_role)
    if role is None:
        return Decision.DENY
    allowed = {_as_role(r) for r in required_roles}
    return Decision.ALLOW if role in allowed else Decision.DENY


def is_allowed(acting_role: RoleLike, required_roles: Iterable[RoleLike]) -> bool:
    return authorize(acting_role, required_roles) is Decision.ALLOW