"""User model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)
    full_name: Optional[str] = None
    username: Optional[str] = None
    # Weak reference: no FK, the team may be gone or the user removed from it
    last_active_team_id: Optional[uuid.UUID] = Field(default=None)

    @property
    def display_name(self) -> Optional[str]:
        return self.full_name or self.username or self.email
