# SQLModel tables, imported here so the metadata is complete for Alembic.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .user import User  # noqa: F401
from .team import Team  # noqa: F401
from .team_member import TeamMember  # noqa: F401
from .team_invite import TeamInvite  # noqa: F401
