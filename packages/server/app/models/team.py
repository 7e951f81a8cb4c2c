"""Team model."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Team(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
    inbox_base: str = Field(nullable=False)
    created_by_user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
