"""
Team API endpoints.

GET    /api/v1/teams                      List teams for the authenticated user
POST   /api/v1/teams                      Create a team (creator becomes owner)
GET    /api/v1/team                       Current team (header or last active)
GET    /api/v1/teams/{team_id}            Get team details
PATCH  /api/v1/teams/{team_id}            Rename / re-slug (owner or admin)
POST   /api/v1/teams/{team_id}/select     Make this the active team
GET    /api/v1/teams/{team_id}/inbox      Team inbox address
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import unwrap
from app.core.guards import TeamContext, require_team, require_team_manager, require_user_id
from app.models.team import Team
from app.services import teams as team_service
from rollcall_shared.schemas.teams import (
    InboxResponse,
    TeamCreateRequest,
    TeamEnvelope,
    TeamListItem,
    TeamListResponse,
    TeamResponse,
    TeamSelectResponse,
    TeamUpdateRequest,
)

router = APIRouter()


def _team_response(team: Team) -> TeamResponse:
    return TeamResponse.model_validate(team)


@router.get("/teams", response_model=TeamListResponse, tags=["Teams"])
async def list_teams(
    user_id: uuid.UUID = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """List teams the authenticated user belongs to, with their role."""
    rows = await team_service.list_user_teams(user_id, session)
    return TeamListResponse(
        teams=[
            TeamListItem(**_team_response(team).model_dump(), member_role=role)
            for team, role in rows
        ]
    )


@router.post("/teams", response_model=TeamEnvelope, status_code=201, tags=["Teams"])
async def create_team(
    body: TeamCreateRequest,
    user_id: uuid.UUID = Depends(require_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Create a team. The creator becomes its owner and it becomes their active team."""
    team = unwrap(
        await team_service.create_team(body.name, user_id, session, slug=body.slug)
    )
    return TeamEnvelope(team=_team_response(team))


@router.get("/team", response_model=TeamEnvelope, tags=["Teams"])
async def get_current_team(ctx: TeamContext = Depends(require_team)):
    """The team named by X-Team-Id, or the user's last active team."""
    return TeamEnvelope(team=_team_response(ctx.team))


@router.get("/teams/{team_id}", response_model=TeamEnvelope, tags=["Teams"])
async def get_team(ctx: TeamContext = Depends(require_team)):
    return TeamEnvelope(team=_team_response(ctx.team))


@router.patch("/teams/{team_id}", response_model=TeamEnvelope, tags=["Teams"])
async def update_team(
    body: TeamUpdateRequest,
    ctx: TeamContext = Depends(require_team_manager),
    session: AsyncSession = Depends(get_session),
):
    """Rename a team or change its slug (owner or admin)."""
    team = unwrap(
        await team_service.update_team(
            ctx.team_id, session, name=body.name, slug=body.slug
        )
    )
    return TeamEnvelope(team=_team_response(team))


@router.post("/teams/{team_id}/select", response_model=TeamSelectResponse, tags=["Teams"])
async def select_team(
    ctx: TeamContext = Depends(require_team),
    session: AsyncSession = Depends(get_session),
):
    team_id = await team_service.select_team(ctx, session)
    return TeamSelectResponse(active_team_id=team_id)


@router.get("/teams/{team_id}/inbox", response_model=InboxResponse, tags=["Teams"])
async def get_inbox(ctx: TeamContext = Depends(require_team)):
    return InboxResponse(address=team_service.inbox_address(ctx.team))
