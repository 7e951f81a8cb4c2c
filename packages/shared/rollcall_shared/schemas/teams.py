"""
Team and membership Pydantic schemas shared between server and clients.

Covers: team create/update requests, team responses, member
add/role-change requests and member responses.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .common import TeamRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class TeamCreateRequest(BaseModel):
    name: str = Field(default="", max_length=100, description="Team display name")
    slug: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Optional slug override; normalized and de-duplicated server-side",
    )


class TeamUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    slug: Optional[str] = Field(None, max_length=100)


class MemberAddRequest(BaseModel):
    email: str = ""


class MemberRoleRequest(BaseModel):
    # Left untyped so unknown roles surface as invalid_role, not a 422
    role: Any = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TeamResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    inbox_base: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TeamListItem(TeamResponse):
    member_role: TeamRole  # the requesting user's role in this team


class TeamListResponse(BaseModel):
    teams: list[TeamListItem]


class TeamEnvelope(BaseModel):
    team: TeamResponse


class TeamSelectResponse(BaseModel):
    active_team_id: uuid.UUID


class InboxResponse(BaseModel):
    address: str


class MemberResponse(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    role: TeamRole
    created_at: datetime


class MemberEnvelope(BaseModel):
    user: MemberResponse


class MemberListResponse(BaseModel):
    users: list[MemberResponse]


class MemberRemovedResponse(BaseModel):
    removed_user_id: uuid.UUID
    promoted_user_id: Optional[uuid.UUID] = None
