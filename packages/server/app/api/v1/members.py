"""
Team member API endpoints (owner or admin only).

GET    /api/v1/teams/{team_id}/users               List members
POST   /api/v1/teams/{team_id}/users               Add an existing user by email
PATCH  /api/v1/teams/{team_id}/users/{user_id}     Change a member's role
DELETE /api/v1/teams/{team_id}/users/{user_id}     Remove a member (or leave)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import ErrorKind, abort, unwrap
from app.core.guards import TeamContext, require_team_manager
from app.core.parsing import UNSET, Invalid, parse_team_role
from app.models.team_member import TeamMember
from app.models.user import User
from app.services import teams as team_service
from rollcall_shared.schemas.teams import (
    MemberAddRequest,
    MemberEnvelope,
    MemberListResponse,
    MemberRemovedResponse,
    MemberResponse,
    MemberRoleRequest,
)

router = APIRouter()


def _member_response(member: TeamMember, user: User) -> MemberResponse:
    return MemberResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        username=user.username,
        name=user.display_name,
        role=member.role,
        created_at=member.created_at,
    )


def _parse_user_id(value: str) -> uuid.UUID:
    text = value.strip()
    if not text:
        abort(ErrorKind.MISSING_USER_ID)
    try:
        return uuid.UUID(text)
    except ValueError:
        # No member can have a malformed id
        abort(ErrorKind.MEMBER_NOT_FOUND)


@router.get("", response_model=MemberListResponse, tags=["Members"])
async def list_members(
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    rows = await team_service.list_members(ctx.team_id, session)
    return MemberListResponse(users=[_member_response(m, u) for m, u in rows])


@router.post("", response_model=MemberEnvelope, status_code=201, tags=["Members"])
async def add_member(
    body: MemberAddRequest,
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    """Add an existing user to the team as a member."""
    member, user = unwrap(
        await team_service.add_member(ctx.team_id, body.email, ctx.role, session)
    )
    return MemberEnvelope(user=_member_response(member, user))


@router.patch("/{user_id}", response_model=MemberEnvelope, tags=["Members"])
async def change_role(
    user_id: str,
    body: MemberRoleRequest,
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. Owners are locked; only owners can grant ownership."""
    role = parse_team_role(body.role)
    if isinstance(role, Invalid):
        abort(role.reason)
    if role is UNSET:
        abort(ErrorKind.MISSING_ROLE)

    member, user = unwrap(
        await team_service.change_role(
            ctx.team_id, _parse_user_id(user_id), role.value, ctx.user_id, session
        )
    )
    return MemberEnvelope(user=_member_response(member, user))


@router.delete("/{user_id}", response_model=MemberRemovedResponse, tags=["Members"])
async def remove_member(
    user_id: str,
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member. Removing yourself as the last owner promotes the oldest admin."""
    removal = unwrap(
        await team_service.remove_member(
            ctx.team_id, _parse_user_id(user_id), ctx.user_id, session
        )
    )
    return MemberRemovedResponse(
        removed_user_id=removal.removed_user_id,
        promoted_user_id=removal.promoted_user_id,
    )
