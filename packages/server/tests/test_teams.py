"""
Membership service: team creation, member management and ownership
succession.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlmodel import select

from app.core.config import get_settings
from app.core.errors import ErrorKind, TeamError
from app.models.base import utcnow
from app.models.team import Team
from app.models.team_member import TeamMember
from app.models.user import User
from app.services import teams as team_service
from rollcall_shared.schemas.common import TeamRole


async def _user(session, email, **kwargs) -> User:
    user = User(email=email, **kwargs)
    session.add(user)
    await session.flush()
    return user


async def _join(session, team, user, role, created_at=None) -> TeamMember:
    member = TeamMember(team_id=team.id, user_id=user.id, role=role.value)
    if created_at is not None:
        member.created_at = created_at
    session.add(member)
    await session.flush()
    return member


async def _roles(session, team_id) -> dict:
    result = await session.execute(
        select(TeamMember).where(TeamMember.team_id == team_id).execution_options(populate_existing=True)
    )
    return {m.user_id: m.role for m in result.scalars().all()}


# ---------------------------------------------------------------------------
# createTeam
# ---------------------------------------------------------------------------

class TestCreateTeam:
    async def test_creator_becomes_owner_and_active(self, session):
        user = await _user(session, "jane.doe@example.com")
        team = await team_service.create_team("  Core  ", user.id, session)

        assert isinstance(team, Team)
        assert team.name == "Core"
        assert team.slug == "core"
        assert team.inbox_base == "jane.doe"
        assert await _roles(session, team.id) == {user.id: "owner"}
        assert user.last_active_team_id == team.id

    async def test_blank_name(self, session):
        user = await _user(session, "a@example.com")
        assert await team_service.create_team("   ", user.id, session) == TeamError(ErrorKind.MISSING_NAME)

    async def test_unknown_creator(self, session):
        result = await team_service.create_team("Core", User().id, session)
        assert result == TeamError(ErrorKind.USER_NOT_FOUND)

    async def test_same_name_gets_suffixed_slug(self, session):
        first_user = await _user(session, "a@example.com")
        second_user = await _user(session, "b@example.com")
        first = await team_service.create_team("Acme", first_user.id, session)
        second = await team_service.create_team("Acme", second_user.id, session)
        assert (first.slug, second.slug) == ("acme", "acme-1")

    async def test_explicit_slug_is_normalized(self, session):
        user = await _user(session, "a@example.com")
        team = await team_service.create_team("Core", user.id, session, slug="My Slug!")
        assert team.slug == "my-slug"

    async def test_owner_keeps_inbox_base_across_teams(self, session):
        user = await _user(session, "jane@example.com")
        first = await team_service.create_team("One", user.id, session)
        first.inbox_base = "jane.custom"
        session.add(first)
        await session.flush()

        second = await team_service.create_team("Two", user.id, session)
        assert second.inbox_base == "jane.custom"
        assert team_service.inbox_address(second) == "jane.custom.two@inbox.localhost"

    async def test_list_user_teams_with_roles(self, session):
        owner = await _user(session, "owner@example.com")
        other = await _user(session, "other@example.com")
        mine = await team_service.create_team("Mine", owner.id, session)
        theirs = await team_service.create_team("Theirs", other.id, session)
        await _join(session, theirs, owner, TeamRole.ADMIN, created_at=utcnow() + timedelta(seconds=1))

        rows = await team_service.list_user_teams(owner.id, session)
        assert [(t.id, role) for t, role in rows] == [(mine.id, "owner"), (theirs.id, "admin")]


class TestUpdateTeam:
    async def test_rename_and_reslug(self, session):
        user = await _user(session, "a@example.com")
        team = await team_service.create_team("Core", user.id, session)
        updated = await team_service.update_team(team.id, session, name="Platform", slug="Platform")
        assert (updated.name, updated.slug) == ("Platform", "platform")

    async def test_reslug_to_taken_slug_is_suffixed(self, session):
        user = await _user(session, "a@example.com")
        await team_service.create_team("Acme", user.id, session)
        other = await team_service.create_team("Other", user.id, session)
        updated = await team_service.update_team(other.id, session, slug="acme")
        assert updated.slug == "acme-1"

    async def test_unknown_team(self, session):
        assert await team_service.update_team(User().id, session, name="x") == TeamError(ErrorKind.TEAM_NOT_FOUND)


# ---------------------------------------------------------------------------
# addMember / changeRole
# ---------------------------------------------------------------------------

class TestAddMember:
    async def test_adds_member_by_email_case_insensitively(self, session):
        owner = await _user(session, "owner@example.com")
        target = await _user(session, "Target@Example.com")
        team = await team_service.create_team("Core", owner.id, session)

        member, user = await team_service.add_member(team.id, " TARGET@example.COM ", TeamRole.OWNER, session)
        assert member.role == "member"
        assert user.id == target.id
        assert target.last_active_team_id is None

    async def test_requires_owner_or_admin(self, session):
        owner = await _user(session, "owner@example.com")
        await _user(session, "target@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        result = await team_service.add_member(team.id, "target@example.com", TeamRole.MEMBER, session)
        assert result == TeamError(ErrorKind.FORBIDDEN)

    async def test_errors(self, session):
        owner = await _user(session, "owner@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        assert await team_service.add_member(team.id, "", TeamRole.ADMIN, session) == TeamError(ErrorKind.MISSING_EMAIL)
        assert await team_service.add_member(team.id, "ghost@example.com", TeamRole.ADMIN, session) == TeamError(
            ErrorKind.USER_NOT_FOUND
        )
        assert await team_service.add_member(team.id, "owner@example.com", TeamRole.ADMIN, session) == TeamError(
            ErrorKind.ALREADY_MEMBER
        )


class TestChangeRole:
    async def _team(self, session):
        owner = await _user(session, "owner@example.com")
        admin = await _user(session, "admin@example.com")
        member = await _user(session, "member@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, admin, TeamRole.ADMIN)
        await _join(session, team, member, TeamRole.MEMBER)
        return team, owner, admin, member

    async def test_admin_cannot_grant_ownership(self, session):
        team, _, admin, member = await self._team(session)
        result = await team_service.change_role(team.id, member.id, TeamRole.OWNER, admin.id, session)
        assert result == TeamError(ErrorKind.OWNER_ONLY)

    async def test_owner_can_grant_ownership(self, session):
        team, owner, _, member = await self._team(session)
        updated, user = await team_service.change_role(team.id, member.id, TeamRole.OWNER, owner.id, session)
        assert updated.role == "owner"
        assert user.id == member.id

    async def test_owner_rows_are_locked(self, session):
        team, owner, _, _ = await self._team(session)
        result = await team_service.change_role(team.id, owner.id, TeamRole.MEMBER, owner.id, session)
        assert result == TeamError(ErrorKind.OWNER_LOCKED)

    async def test_admin_promotes_member_to_admin(self, session):
        team, _, admin, member = await self._team(session)
        updated, _ = await team_service.change_role(team.id, member.id, TeamRole.ADMIN, admin.id, session)
        assert updated.role == "admin"

    async def test_unknown_member(self, session):
        team, owner, _, _ = await self._team(session)
        result = await team_service.change_role(team.id, User().id, TeamRole.ADMIN, owner.id, session)
        assert result == TeamError(ErrorKind.MEMBER_NOT_FOUND)

    async def test_plain_member_is_forbidden(self, session):
        team, _, admin, member = await self._team(session)
        result = await team_service.change_role(team.id, admin.id, TeamRole.MEMBER, member.id, session)
        assert result == TeamError(ErrorKind.FORBIDDEN)

    async def test_actor_role_is_read_at_change_time(self, session):
        team, owner, admin, member = await self._team(session)
        # Demoted after the request was authorized
        demoted, _ = await team_service.change_role(team.id, admin.id, TeamRole.MEMBER, owner.id, session)
        assert demoted.role == "member"

        result = await team_service.change_role(team.id, member.id, TeamRole.ADMIN, admin.id, session)
        assert result == TeamError(ErrorKind.FORBIDDEN)
        assert (await _roles(session, team.id))[member.id] == "member"

    async def test_outsider_is_forbidden(self, session):
        team, _, _, member = await self._team(session)
        outsider = await _user(session, "outsider@example.com")
        result = await team_service.change_role(team.id, member.id, TeamRole.ADMIN, outsider.id, session)
        assert result == TeamError(ErrorKind.FORBIDDEN)


# ---------------------------------------------------------------------------
# removeMember and succession
# ---------------------------------------------------------------------------

class TestRemoveMember:
    async def test_sole_owner_leaving_promotes_earliest_admin(self, session):
        owner = await _user(session, "owner@example.com")
        early = await _user(session, "early@example.com")
        late = await _user(session, "late@example.com")
        plain = await _user(session, "plain@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        start = utcnow()
        await _join(session, team, plain, TeamRole.MEMBER, created_at=start + timedelta(seconds=1))
        await _join(session, team, late, TeamRole.ADMIN, created_at=start + timedelta(seconds=3))
        await _join(session, team, early, TeamRole.ADMIN, created_at=start + timedelta(seconds=2))

        removal = await team_service.remove_member(team.id, owner.id, owner.id, session)
        assert removal.removed_user_id == owner.id
        assert removal.promoted_user_id == early.id
        assert await _roles(session, team.id) == {early.id: "owner", late.id: "admin", plain.id: "member"}

    async def test_sole_owner_alone_cannot_leave(self, session):
        owner = await _user(session, "owner@example.com")
        team = await team_service.create_team("Core", owner.id, session)

        result = await team_service.remove_member(team.id, owner.id, owner.id, session)
        assert result == TeamError(ErrorKind.LAST_ADMIN_OWNER)
        assert await _roles(session, team.id) == {owner.id: "owner"}

    async def test_sole_owner_with_only_members_cannot_leave(self, session):
        owner = await _user(session, "owner@example.com")
        plain = await _user(session, "plain@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, plain, TeamRole.MEMBER)

        result = await team_service.remove_member(team.id, owner.id, owner.id, session)
        assert result == TeamError(ErrorKind.LAST_ADMIN_OWNER)
        assert await _roles(session, team.id) == {owner.id: "owner", plain.id: "member"}

    async def test_owner_leaving_with_coowner_promotes_nobody(self, session):
        owner = await _user(session, "owner@example.com")
        co_owner = await _user(session, "co@example.com")
        admin = await _user(session, "admin@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, co_owner, TeamRole.OWNER)
        await _join(session, team, admin, TeamRole.ADMIN)

        removal = await team_service.remove_member(team.id, owner.id, owner.id, session)
        assert removal.promoted_user_id is None
        assert await _roles(session, team.id) == {co_owner.id: "owner", admin.id: "admin"}

    async def test_owner_cannot_be_removed_by_others(self, session):
        owner = await _user(session, "owner@example.com")
        admin = await _user(session, "admin@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, admin, TeamRole.ADMIN)

        result = await team_service.remove_member(team.id, owner.id, admin.id, session)
        assert result == TeamError(ErrorKind.OWNER_LOCKED)

    async def test_admin_removes_member(self, session):
        owner = await _user(session, "owner@example.com")
        plain = await _user(session, "plain@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, plain, TeamRole.MEMBER)

        removal = await team_service.remove_member(team.id, plain.id, owner.id, session)
        assert (removal.removed_user_id, removal.promoted_user_id) == (plain.id, None)
        assert await _roles(session, team.id) == {owner.id: "owner"}

    async def test_unknown_member(self, session):
        owner = await _user(session, "owner@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        result = await team_service.remove_member(team.id, User().id, owner.id, session)
        assert result == TeamError(ErrorKind.MEMBER_NOT_FOUND)

    async def test_demoted_actor_cannot_remove_others(self, session):
        owner = await _user(session, "owner@example.com")
        admin = await _user(session, "admin@example.com")
        plain = await _user(session, "plain@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, admin, TeamRole.ADMIN)
        await _join(session, team, plain, TeamRole.MEMBER)
        await team_service.change_role(team.id, admin.id, TeamRole.MEMBER, owner.id, session)

        result = await team_service.remove_member(team.id, plain.id, admin.id, session)
        assert result == TeamError(ErrorKind.FORBIDDEN)
        assert plain.id in await _roles(session, team.id)

    async def test_plain_member_can_leave(self, session):
        owner = await _user(session, "owner@example.com")
        plain = await _user(session, "plain@example.com")
        team = await team_service.create_team("Core", owner.id, session)
        await _join(session, team, plain, TeamRole.MEMBER)

        removal = await team_service.remove_member(team.id, plain.id, plain.id, session)
        assert (removal.removed_user_id, removal.promoted_user_id) == (plain.id, None)

    async def test_concurrent_owner_self_removals_keep_an_owner(self, session_factory):
        async with session_factory() as s:
            first = await _user(s, "first@example.com")
            second = await _user(s, "second@example.com")
            admin = await _user(s, "admin@example.com")
            team = await team_service.create_team("Core", first.id, s)
            start = utcnow()
            await _join(s, team, second, TeamRole.OWNER, created_at=start + timedelta(seconds=1))
            await _join(s, team, admin, TeamRole.ADMIN, created_at=start + timedelta(seconds=2))
            await s.commit()

        async def leave(user_id):
            async with session_factory() as s:
                result = await team_service.remove_member(team.id, user_id, user_id, s)
                await s.commit()
                return result

        results = await asyncio.gather(leave(first.id), leave(second.id))
        promoted = [r.promoted_user_id for r in results if not isinstance(r, TeamError)]

        async with session_factory() as s:
            roles = await _roles(s, team.id)
        assert len(promoted) == 2
        assert promoted.count(admin.id) == 1
        assert roles == {admin.id: "owner"}


# ---------------------------------------------------------------------------
# Slug uniqueness races
# ---------------------------------------------------------------------------

class TestSlugRaces:
    """A slug that was free when allocated can be taken before the insert."""

    async def _committed_users(self, session, *emails) -> list:
        users = [await _user(session, email) for email in emails]
        ids = [user.id for user in users]
        await session.commit()
        return ids

    def _stale_allocator(self, monkeypatch, taken, *, times=1):
        real_allocate = team_service.allocate_slug
        calls = []

        async def allocate(base, session):
            calls.append(base)
            if times is None or len(calls) <= times:
                return taken
            return await real_allocate(base, session)

        monkeypatch.setattr(team_service, "allocate_slug", allocate)
        return calls

    async def test_create_reallocates_after_collision(self, session, monkeypatch):
        first_id, second_id = await self._committed_users(session, "a@example.com", "b@example.com")
        taken = await team_service.create_team("Acme", first_id, session)
        assert taken.slug == "acme"
        await session.commit()

        calls = self._stale_allocator(monkeypatch, "acme")
        team = await team_service.create_team("Acme", second_id, session)
        await session.commit()

        assert team.slug == "acme-1"
        assert len(calls) == 2
        assert [t.id for t, _ in await team_service.list_user_teams(second_id, session)] == [team.id]
        assert await _roles(session, team.id) == {second_id: "owner"}

    async def test_create_gives_up_with_slug_conflict(self, session, monkeypatch):
        first_id, second_id = await self._committed_users(session, "a@example.com", "b@example.com")
        await team_service.create_team("Acme", first_id, session)
        await session.commit()

        calls = self._stale_allocator(monkeypatch, "acme", times=None)
        result = await team_service.create_team("Acme", second_id, session)

        assert result == TeamError(ErrorKind.SLUG_CONFLICT)
        assert len(calls) == get_settings().insert_retry_attempts
        assert await team_service.list_user_teams(second_id, session) == []
        user = await session.get(User, second_id)
        assert user.last_active_team_id is None

    async def test_update_reallocates_after_collision(self, session, monkeypatch):
        (owner_id,) = await self._committed_users(session, "a@example.com")
        await team_service.create_team("Acme", owner_id, session)
        other = await team_service.create_team("Other", owner_id, session)
        other_id = other.id
        await session.commit()

        calls = self._stale_allocator(monkeypatch, "acme")
        updated = await team_service.update_team(other_id, session, name="Acme Two", slug="Acme Two")

        assert (updated.name, updated.slug) == ("Acme Two", "acme-two")
        assert len(calls) == 2

    async def test_update_gives_up_with_slug_conflict(self, session, monkeypatch):
        (owner_id,) = await self._committed_users(session, "a@example.com")
        await team_service.create_team("Acme", owner_id, session)
        other = await team_service.create_team("Other", owner_id, session)
        other_id = other.id
        await session.commit()

        self._stale_allocator(monkeypatch, "acme", times=None)
        result = await team_service.update_team(other_id, session, slug="renamed")

        assert result == TeamError(ErrorKind.SLUG_CONFLICT)
        stored = await session.get(Team, other_id, populate_existing=True)
        assert stored.slug == "other"
