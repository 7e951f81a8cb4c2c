"""Team invite schemas."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from pydantic import BaseModel


class InviteCreateRequest(BaseModel):
    # Raw values: max_uses is clamped, allowed_domain is pattern-checked
    max_uses: Any = None
    allowed_domain: Any = None


class InviteResponse(BaseModel):
    token: str
    team_id: uuid.UUID
    allowed_domain: Optional[str] = None
    max_uses: int
    remaining_uses: Optional[int] = None
    path: str


class InviteCreatedResponse(BaseModel):
    invite: InviteResponse


class InviteView(BaseModel):
    token: str
    team_id: uuid.UUID
    team_name: str
    team_slug: str
    allowed_domain: Optional[str] = None
    max_uses: int
    remaining_uses: Optional[int] = None


class InviteLookupResponse(BaseModel):
    invite: InviteView


class InviteAcceptResponse(BaseModel):
    team_id: uuid.UUID
    team_name: str
    joined: bool
    already_member: bool
    remaining_uses: Optional[int] = None
