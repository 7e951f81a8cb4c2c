"""
Invite service: issue team invite tokens and redeem them.

An invite is active until a capped invite runs out of uses; there is no
expiry or revocation. The usage counter only moves through a conditional
UPDATE, so concurrent redemptions can never push it past the cap.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from rollcall_shared.schemas.common import TEAM_MANAGER_ROLES, TeamRole

from app.core.config import get_settings
from app.core.errors import ErrorKind, Result, TeamError, fail
from app.core.parsing import Invalid, Valid, clamp_max_uses, parse_allowed_domain, parse_invite_token
from app.core.roles import is_allowed
from app.models.team import Team
from app.models.team_invite import TeamInvite, remaining_uses
from app.models.team_member import TeamMember
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()

TOKEN_BYTES = 24


@dataclass(frozen=True)
class InviteWithTeam:
    invite: TeamInvite
    team: Team


@dataclass(frozen=True)
class Redemption:
    team_id: uuid.UUID
    team_name: str
    joined: bool
    already_member: bool
    remaining_uses: Optional[int]


def generate_invite_token() -> str:
    """24 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def accept_path(token: str) -> str:
    return f"{settings.invite_accept_path}?token={quote(token, safe='')}"


def email_domain(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


async def issue_invite(
    team_id: uuid.UUID,
    acting_role: TeamRole | str,
    created_by_user_id: uuid.UUID,
    session: AsyncSession,
    *,
    max_uses: Any = None,
    allowed_domain: Any = None,
) -> Result[TeamInvite]:
    """Create an invite for a team. Unusable ``max_uses`` means unlimited."""
    if not is_allowed(acting_role, TEAM_MANAGER_ROLES):
        return fail(ErrorKind.FORBIDDEN)

    domain = parse_allowed_domain(allowed_domain)
    if isinstance(domain, Invalid):
        return fail(domain.reason)
    uses = clamp_max_uses(max_uses, settings.invite_max_uses_cap)

    for attempt in range(1, settings.insert_retry_attempts + 1):
        invite = TeamInvite(
            token=generate_invite_token(),
            team_id=team_id,
            max_uses=uses,
            used_count=0,
            allowed_domain=domain.value if isinstance(domain, Valid) else None,
            created_by_user_id=created_by_user_id,
        )
        session.add(invite)
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            log.warning("invite.token_retry", team_id=str(team_id), attempt=attempt)
            continue

        log.info(
            "invite.issued",
            team_id=str(team_id),
            invite_id=str(invite.id),
            max_uses=uses,
            allowed_domain=invite.allowed_domain,
        )
        return invite

    return fail(ErrorKind.TOKEN_CONFLICT)


async def _load_active_invite(token: str, session: AsyncSession) -> Result[InviteWithTeam]:
    result = await session.execute(
        select(TeamInvite, Team)
        .join(Team, Team.id == TeamInvite.team_id)
        .where(TeamInvite.token == token)
        .execution_options(populate_existing=True)
    )
    row = result.one_or_none()
    if row is None:
        return fail(ErrorKind.INVITE_NOT_FOUND)
    invite, team = row
    if invite.is_exhausted:
        return fail(ErrorKind.INVITE_EXHAUSTED)
    return InviteWithTeam(invite=invite, team=team)


async def lookup_invite(raw_token_or_url: str, session: AsyncSession) -> Result[InviteWithTeam]:
    """Public preview of an invite from a token or a pasted link."""
    token = parse_invite_token(raw_token_or_url)
    if not token:
        return fail(ErrorKind.MISSING_TOKEN)
    return await _load_active_invite(token, session)


async def _existing_member(
    team_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Optional[TeamMember]:
    return await session.get(TeamMember, (team_id, user_id), populate_existing=True)


async def _redeem(token: str, user_id: uuid.UUID, session: AsyncSession) -> Result[Redemption]:
    loaded = await _load_active_invite(token, session)
    if isinstance(loaded, TeamError):
        return loaded
    invite, team = loaded.invite, loaded.team

    user = await session.get(User, user_id, populate_existing=True)
    if user is None:
        return fail(ErrorKind.USER_NOT_FOUND)

    if invite.allowed_domain and email_domain(user.email) != invite.allowed_domain.lower():
        return fail(ErrorKind.DOMAIN_RESTRICTED)

    if await _existing_member(team.id, user.id, session) is not None:
        # Re-accepting re-selects the team and never spends a use
        user.last_active_team_id = team.id
        session.add(user)
        await session.flush()
        log.info("invite.reaccepted", team_id=str(team.id), user_id=str(user.id))
        return Redemption(
            team_id=team.id,
            team_name=team.name,
            joined=False,
            already_member=True,
            remaining_uses=invite.remaining_uses,
        )

    used_count = invite.used_count
    if invite.max_uses > 0:
        result = await session.execute(
            update(TeamInvite)
            .where(
                TeamInvite.id == invite.id,
                TeamInvite.used_count < TeamInvite.max_uses,
            )
            .values(used_count=TeamInvite.used_count + 1)
            .returning(TeamInvite.used_count)
            .execution_options(synchronize_session=False)
        )
        used_count = result.scalar_one_or_none()
        if used_count is None:
            return fail(ErrorKind.INVITE_EXHAUSTED)

    session.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.MEMBER.value))
    user.last_active_team_id = team.id
    session.add(user)
    await session.flush()

    remaining = remaining_uses(invite.max_uses, used_count)
    log.info(
        "invite.accepted",
        team_id=str(team.id),
        user_id=str(user.id),
        invite_id=str(invite.id),
        remaining_uses=remaining,
    )
    return Redemption(
        team_id=team.id,
        team_name=team.name,
        joined=True,
        already_member=False,
        remaining_uses=remaining,
    )


async def accept_invite(
    raw_token_or_url: str,
    acting_user_id: Optional[uuid.UUID],
    session: AsyncSession,
) -> Result[Redemption]:
    """Join the invite's team, or just re-select it for existing members."""
    if acting_user_id is None:
        return fail(ErrorKind.MISSING_AUTH)
    token = parse_invite_token(raw_token_or_url)
    if not token:
        return fail(ErrorKind.MISSING_TOKEN)

    try:
        return await _redeem(token, acting_user_id, session)
    except IntegrityError:
        # Joined concurrently through another request; roll back our use of
        # the invite and take the already-member path
        await session.rollback()
        log.warning("invite.accept_retry", user_id=str(acting_user_id))
    return await _redeem(token, acting_user_id, session)
