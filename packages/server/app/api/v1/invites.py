"""
Team invite API endpoints.

POST   /api/v1/teams/{team_id}/invites     Issue an invite (owner or admin)
GET    /api/v1/invites/{token}             Preview an invite (public)
POST   /api/v1/invites/{token}/accept      Redeem an invite
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_verified_user_id
from app.core.database import get_session
from app.core.errors import unwrap
from app.core.guards import TeamContext, require_team_manager
from app.services import invites as invite_service
from rollcall_shared.schemas.invites import (
    InviteAcceptResponse,
    InviteCreatedResponse,
    InviteCreateRequest,
    InviteLookupResponse,
    InviteResponse,
    InviteView,
)

router = APIRouter()


@router.post(
    "/teams/{team_id}/invites",
    response_model=InviteCreatedResponse,
    status_code=201,
    tags=["Invites"],
)
async def create_invite(
    body: InviteCreateRequest,
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    """Issue an invite link, optionally capped and limited to one email domain."""
    invite = unwrap(
        await invite_service.issue_invite(
            ctx.team_id,
            ctx.role,
            ctx.user_id,
            session,
            max_uses=body.max_uses,
            allowed_domain=body.allowed_domain,
        )
    )
    return InviteCreatedResponse(
        invite=InviteResponse(
            token=invite.token,
            team_id=invite.team_id,
            allowed_domain=invite.allowed_domain,
            max_uses=invite.max_uses,
            remaining_uses=invite.remaining_uses,
            path=invite_service.accept_path(invite.token),
        )
    )


@router.get("/invites/{token:path}", response_model=InviteLookupResponse, tags=["Invites"])
async def lookup_invite(
    token: str,
    session: AsyncSession = Depends(get_session),
):
    """Preview an invite. Accepts a bare token or a pasted invite link."""
    found = unwrap(await invite_service.lookup_invite(token, session))
    invite, team = found.invite, found.team
    return InviteLookupResponse(
        invite=InviteView(
            token=invite.token,
            team_id=invite.team_id,
            team_name=team.name,
            team_slug=team.slug,
            allowed_domain=invite.allowed_domain,
            max_uses=invite.max_uses,
            remaining_uses=invite.remaining_uses,
        )
    )


@router.post("/invites/{token:path}/accept", response_model=InviteAcceptResponse, tags=["Invites"])
async def accept_invite(
    token: str,
    user_id: Optional[uuid.UUID] = Depends(get_verified_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Join the invite's team; existing members just switch to it."""
    redemption = unwrap(await invite_service.accept_invite(token, user_id, session))
    return InviteAcceptResponse(
        team_id=redemption.team_id,
        team_name=redemption.team_name,
        joined=redemption.joined,
        already_member=redemption.already_member,
        remaining_uses=redemption.remaining_uses,
    )
