"""Team membership (join table, unique on team + user)."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class TeamMember(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (
        sa.Index("ix_team_members_team_created", "team_id", "created_at"),
    )

    team_id: uuid.UUID = Field(foreign_key="teams.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member
