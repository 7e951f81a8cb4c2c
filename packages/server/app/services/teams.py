"""
Team membership service: team creation, member add/role/remove and
ownership succession.

Every function here either returns its value or a ``TeamError``. The
request-scoped session is the atomic unit; mutations that read membership
state first lock the team row so concurrent changes to the same team
serialize.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from rollcall_shared.schemas.common import (
    OWNER_OR_ADMIN_ROLES,
    TEAM_MANAGER_ROLES,
    TeamRole,
)

from app.core.config import get_settings
from app.core.errors import ErrorKind, Result, fail
from app.core.guards import TeamContext
from app.core.roles import is_allowed
from app.models.base import utcnow
from app.models.team import Team
from app.models.team_member import TeamMember
from app.models.user import User
from app.services.slugs import (
    DEFAULT_SLUG,
    allocate_slug,
    normalize_team_slug,
    sanitize_local_part,
)

log = structlog.get_logger()
settings = get_settings()


@dataclass(frozen=True)
class MemberRemoval:
    removed_user_id: uuid.UUID
    promoted_user_id: Optional[uuid.UUID]


def _role_values(roles) -> list[str]:
    return [role.value for role in roles]


def derive_inbox_base(user: User, existing: Optional[str] = None) -> str:
    """Stable inbox identity for a user's teams.

    Reuses ``existing`` when the user already owns a team, then falls back
    to the email local part, the full name, the username, and finally a
    fixed default.
    """
    if existing:
        return existing
    if user.email and "@" in user.email:
        local = sanitize_local_part(user.email.split("@", 1)[0])
        if local:
            return local
    for candidate in (user.full_name, user.username):
        cleaned = sanitize_local_part(candidate or "")
        if cleaned:
            return cleaned
    return DEFAULT_SLUG


def inbox_address(team: Team) -> str:
    return f"{team.inbox_base}.{team.slug}@{settings.inbound_email_domain}"


async def _lock_team(team_id: uuid.UUID, session: AsyncSession) -> Optional[Team]:
    """Load the team row FOR UPDATE; membership checks happen after this."""
    result = await session.execute(
        select(Team)
        .where(Team.id == team_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _fresh_member(
    team_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Optional[TeamMember]:
    return await session.get(TeamMember, (team_id, user_id), populate_existing=True)


async def _locked_role(
    team_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Optional[str]:
    member = await _fresh_member(team_id, user_id, session)
    return member.role if member is not None else None


async def _count_members(
    team_id: uuid.UUID,
    roles: list[str],
    session: AsyncSession,
    *,
    exclude_user_id: Optional[uuid.UUID] = None,
) -> int:
    query = (
        select(func.count())
        .select_from(TeamMember)
        .where(TeamMember.team_id == team_id, TeamMember.role.in_(roles))
    )
    if exclude_user_id is not None:
        query = query.where(TeamMember.user_id != exclude_user_id)
    result = await session.execute(query)
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

async def list_user_teams(
    user_id: uuid.UUID, session: AsyncSession
) -> list[tuple[Team, str]]:
    """All teams a user belongs to, with their role, oldest membership first."""
    result = await session.execute(
        select(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(TeamMember.created_at, Team.id)
    )
    return [(team, role) for team, role in result.all()]


async def _owned_inbox_base(user_id: uuid.UUID, session: AsyncSession) -> Optional[str]:
    result = await session.execute(
        select(Team.inbox_base)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(
            TeamMember.user_id == user_id,
            TeamMember.role == TeamRole.OWNER.value,
        )
        .order_by(TeamMember.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_team(
    name: str,
    creator_user_id: uuid.UUID,
    session: AsyncSession,
    *,
    slug: Optional[str] = None,
) -> Result[Team]:
    """Create a team with the creator as its owner and make it their active team."""
    name = (name or "").strip()
    if not name:
        return fail(ErrorKind.MISSING_NAME)

    slug_base = normalize_team_slug((slug or "").strip() or name)

    for attempt in range(1, settings.insert_retry_attempts + 1):
        user = await session.get(User, creator_user_id)
        if user is None:
            return fail(ErrorKind.USER_NOT_FOUND)

        inbox_base = derive_inbox_base(user, await _owned_inbox_base(user.id, session))
        team_slug = await allocate_slug(slug_base, session)
        now = utcnow()

        try:
            team = Team(
                name=name,
                slug=team_slug,
                inbox_base=inbox_base,
                created_by_user_id=user.id,
                created_at=now,
                updated_at=now,
            )
            session.add(team)
            await session.flush()

            session.add(
                TeamMember(
                    team_id=team.id,
                    user_id=user.id,
                    role=TeamRole.OWNER.value,
                    created_at=now,
                )
            )
            user.last_active_team_id = team.id
            session.add(user)
            await session.flush()
        except IntegrityError:
            # Lost a race for the slug; nothing from this attempt survives
            await session.rollback()
            log.warning("team.slug_retry", slug=team_slug, attempt=attempt)
            continue

        log.info("team.created", team_id=str(team.id), slug=team.slug, creator=str(user.id))
        return team

    return fail(ErrorKind.SLUG_CONFLICT)


async def update_team(
    team_id: uuid.UUID,
    session: AsyncSession,
    *,
    name: Optional[str] = None,
    slug: Optional[str] = None,
) -> Result[Team]:
    """Rename a team and/or move it to a new slug."""
    new_name = (name or "").strip()
    slug_input = (slug or "").strip()

    for attempt in range(1, settings.insert_retry_attempts + 1):
        team = await session.get(Team, team_id, populate_existing=True)
        if team is None:
            return fail(ErrorKind.TEAM_NOT_FOUND)

        changed = False
        if new_name and new_name != team.name:
            team.name = new_name
            changed = True
        if slug_input:
            slug_base = normalize_team_slug(slug_input)
            if slug_base != team.slug:
                team.slug = await allocate_slug(slug_base, session)
                changed = True
        if not changed:
            return team

        team.updated_at = utcnow()
        session.add(team)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            log.warning("team.slug_retry", team_id=str(team_id), attempt=attempt)
            continue

        log.info("team.updated", team_id=str(team.id), slug=team.slug)
        return team

    return fail(ErrorKind.SLUG_CONFLICT)


async def select_team(ctx: TeamContext, session: AsyncSession) -> uuid.UUID:
    """Make the resolved team the user's active team."""
    ctx.user.last_active_team_id = ctx.team.id
    session.add(ctx.user)
    await session.flush()
    log.info("team.selected", team_id=str(ctx.team.id), user_id=str(ctx.user.id))
    return ctx.team.id


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

async def list_members(
    team_id: uuid.UUID, session: AsyncSession
) -> list[tuple[TeamMember, User]]:
    result = await session.execute(
        select(TeamMember, User)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.created_at, TeamMember.user_id)
    )
    return [(member, user) for member, user in result.all()]


async def add_member(
    team_id: uuid.UUID,
    email: str,
    acting_role: TeamRole | str,
    session: AsyncSession,
) -> Result[tuple[TeamMember, User]]:
    """Add an existing user, found by email, as a plain member."""
    if not is_allowed(acting_role, TEAM_MANAGER_ROLES):
        return fail(ErrorKind.FORBIDDEN)

    email = (email or "").strip().lower()
    if not email:
        return fail(ErrorKind.MISSING_EMAIL)

    result = await session.execute(select(User).where(func.lower(User.email) == email))
    user = result.scalars().first()
    if user is None:
        return fail(ErrorKind.USER_NOT_FOUND)

    if await _fresh_member(team_id, user.id, session) is not None:
        return fail(ErrorKind.ALREADY_MEMBER)

    member = TeamMember(team_id=team_id, user_id=user.id, role=TeamRole.MEMBER.value)
    session.add(member)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        return fail(ErrorKind.ALREADY_MEMBER)

    log.info("member.added", team_id=str(team_id), user_id=str(user.id))
    return member, user


async def change_role(
    team_id: uuid.UUID,
    target_user_id: uuid.UUID,
    new_role: TeamRole,
    acting_user_id: uuid.UUID,
    session: AsyncSession,
) -> Result[tuple[TeamMember, User]]:
    """Change a member's role. Owner rows never change; only owners grant ownership.

    The actor's role is read under the team lock, so a demotion that lands
    while this request is in flight is honored.
    """
    if await _lock_team(team_id, session) is None:
        return fail(ErrorKind.TEAM_NOT_FOUND)

    acting_role = await _locked_role(team_id, acting_user_id, session)
    if not is_allowed(acting_role, TEAM_MANAGER_ROLES):
        return fail(ErrorKind.FORBIDDEN)

    target = await _fresh_member(team_id, target_user_id, session)
    if target is None:
        return fail(ErrorKind.MEMBER_NOT_FOUND)
    if target.role == TeamRole.OWNER.value:
        return fail(ErrorKind.OWNER_LOCKED)
    if new_role is TeamRole.OWNER and not is_allowed(acting_role, [TeamRole.OWNER]):
        return fail(ErrorKind.OWNER_ONLY)

    previous = target.role
    target.role = new_role.value
    session.add(target)
    await session.flush()

    user = await session.get(User, target_user_id)
    log.info(
        "member.role_changed",
        team_id=str(team_id),
        user_id=str(target_user_id),
        previous=previous,
        role=target.role,
    )
    return target, user


async def remove_member(
    team_id: uuid.UUID,
    target_user_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    session: AsyncSession,
) -> Result[MemberRemoval]:
    """Remove a member, promoting the oldest admin if the last owner leaves.

    Owners can only remove themselves, removing anyone else takes an owner
    or admin, and nobody may leave if that would leave the team without an
    owner or admin. The delete and any promotion
    run in the same transaction under the team row lock.
    """
    if await _lock_team(team_id, session) is None:
        return fail(ErrorKind.TEAM_NOT_FOUND)

    target = await _fresh_member(team_id, target_user_id, session)
    if target is None:
        return fail(ErrorKind.MEMBER_NOT_FOUND)

    is_self = target.user_id == acting_user_id
    removed_role = target.role
    if removed_role == TeamRole.OWNER.value and not is_self:
        return fail(ErrorKind.OWNER_LOCKED)
    if not is_self and not is_allowed(
        await _locked_role(team_id, acting_user_id, session), TEAM_MANAGER_ROLES
    ):
        return fail(ErrorKind.FORBIDDEN)

    if is_self:
        others = await _count_members(
            team_id,
            _role_values(OWNER_OR_ADMIN_ROLES),
            session,
            exclude_user_id=target.user_id,
        )
        if others == 0:
            return fail(ErrorKind.LAST_ADMIN_OWNER)

    await session.delete(target)
    await session.flush()
    log.info("member.removed", team_id=str(team_id), user_id=str(target_user_id), role=removed_role)

    promoted_user_id: Optional[uuid.UUID] = None
    if is_self and removed_role == TeamRole.OWNER.value:
        owners = await _count_members(team_id, [TeamRole.OWNER.value], session)
        if owners == 0:
            result = await session.execute(
                select(TeamMember)
                .where(
                    TeamMember.team_id == team_id,
                    TeamMember.role == TeamRole.ADMIN.value,
                )
                .order_by(TeamMember.created_at, TeamMember.user_id)
                .limit(1)
                .execution_options(populate_existing=True)
            )
            successor = result.scalar_one_or_none()
            if successor is not None:
                successor.role = TeamRole.OWNER.value
                session.add(successor)
                await session.flush()
                promoted_user_id = successor.user_id
                log.info(
                    "member.promoted",
                    team_id=str(team_id),
                    user_id=str(promoted_user_id),
                    previous_owner=str(target_user_id),
                )

    return MemberRemoval(removed_user_id=target_user_id, promoted_user_id=promoted_user_id)
