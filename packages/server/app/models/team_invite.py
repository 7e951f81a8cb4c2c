"""Team invite model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class TeamInvite(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "team_invites"

    token: str = Field(unique=True, nullable=False, index=True)
    team_id: uuid.UUID = Field(foreign_key="teams.id", nullable=False, index=True)
    max_uses: int = Field(default=0, nullable=False)  # 0 = unlimited
    used_count: int = Field(default=0, nullable=False)
    allowed_domain: Optional[str] = None
    created_by_user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)

    @property
    def remaining_uses(self) -> Optional[int]:
        return remaining_uses(self.max_uses, self.used_count)

    @property
    def is_exhausted(self) -> bool:
        remaining = self.remaining_uses
        return remaining is not None and remaining <= 0


def remaining_uses(max_uses: int, used_count: int) -> Optional[int]:
    """None for unlimited invites, otherwise the uses left (never negative)."""
    if not max_uses:
        return None
    return max(max_uses - used_count, 0)
