from enum import Enum


class TeamRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


# Roles allowed to manage membership and invites
TEAM_MANAGER_ROLES: frozenset["TeamRole"] = frozenset({TeamRole.OWNER, TeamRole.ADMIN})

# Roles that satisfy the "team always has an owner or admin" invariant
OWNER_OR_ADMIN_ROLES: frozenset["TeamRole"] = TEAM_MANAGER_ROLES
