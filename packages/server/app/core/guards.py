"""
Access resolver (team guard) and role gates.

``resolve_team`` answers "which team, which membership" for one request and
returns a ``TeamContext`` that is passed explicitly to the services. The
FastAPI dependencies below are thin adapters around it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall_shared.schemas.common import TEAM_MANAGER_ROLES, TeamRole

from app.core.auth import get_verified_user_id
from app.core.database import get_session
from app.core.errors import ErrorKind, Result, TeamError, abort, fail, unwrap
from app.core.roles import Decision, authorize
from app.models.team import Team
from app.models.team_member import TeamMember
from app.models.user import User

log = structlog.get_logger()

TEAM_ID_HEADER = "x-team-id"


@dataclass(frozen=True)
class TeamContext:
    """The acting user with their resolved team and membership."""

    user: User
    team: Team
    member: TeamMember

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id

    @property
    def team_id(self) -> uuid.UUID:
        return self.team.id

    @property
    def role(self) -> TeamRole:
        return TeamRole(self.member.role)


def _parse_team_id(value: Optional[str]) -> Optional[uuid.UUID] | TeamError:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return uuid.UUID(text)
    except ValueError:
        # Not an id any team could have
        return fail(ErrorKind.TEAM_NOT_FOUND)


async def resolve_team(
    user_id: Optional[uuid.UUID],
    explicit_team_id: Optional[str],
    session: AsyncSession,
) -> Result[TeamContext]:
    """Resolve (user, team, membership) or the first failing step."""
    if user_id is None:
        return fail(ErrorKind.MISSING_AUTH)

    parsed = _parse_team_id(explicit_team_id)
    if isinstance(parsed, TeamError):
        return parsed

    user = await session.get(User, user_id)
    team_id = parsed or (user.last_active_team_id if user else None)
    if team_id is None:
        return fail(ErrorKind.MISSING_TEAM)
    if user is None:
        return fail(ErrorKind.USER_NOT_FOUND)

    team = await session.get(Team, team_id)
    if team is None:
        return fail(ErrorKind.TEAM_NOT_FOUND)

    member = await session.get(TeamMember, (team.id, user.id))
    if member is None:
        return fail(ErrorKind.NOT_A_MEMBER)

    return TeamContext(user=user, team=team, member=member)


def check_role(ctx: TeamContext, required_roles: Iterable[TeamRole]) -> Result[TeamContext]:
    if authorize(ctx.member.role, required_roles) is Decision.DENY:
        log.debug(
            "guard.denied",
            user_id=str(ctx.user_id),
            team_id=str(ctx.team_id),
            role=ctx.member.role,
        )
        return fail(ErrorKind.FORBIDDEN)
    return ctx


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def explicit_team_id(request: Request) -> Optional[str]:
    """Team named by the request: path, then query, then header."""
    return (
        request.path_params.get("team_id")
        or request.query_params.get("team_id")
        or request.headers.get(TEAM_ID_HEADER)
    )


async def require_user_id(
    user_id: Optional[uuid.UUID] = Depends(get_verified_user_id),
) -> uuid.UUID:
    if user_id is None:
        abort(ErrorKind.MISSING_AUTH)
    return user_id


async def require_team(
    request: Request,
    user_id: Optional[uuid.UUID] = Depends(get_verified_user_id),
    session: AsyncSession = Depends(get_session),
) -> TeamContext:
    """Any member of the resolved team."""
    return unwrap(await resolve_team(user_id, explicit_team_id(request), session))


def require_team_role(*roles: TeamRole):
    """Dependency factory: resolved member whose role is in ``roles``."""
    required = frozenset(roles)

    async def dependency(ctx: TeamContext = Depends(require_team)) -> TeamContext:
        return unwrap(check_role(ctx, required))

    return dependency


require_team_manager = require_team_role(*TEAM_MANAGER_ROLES)
