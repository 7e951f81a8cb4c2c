"""
Shared fixtures: a file-backed SQLite database per test and an HTTP client
wired to it.

Every transaction starts with ``BEGIN IMMEDIATE`` so concurrent sessions
queue on the database lock the way they would on a locking database. A
session that has started a transaction holds that lock until it commits or
closes, so tests never keep one open while another session works.
"""

from __future__ import annotations

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="rollcall-tests-")
os.environ.setdefault("RC_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/app.db")
os.environ.setdefault("RC_SECRET_KEY", "rollcall-test-secret-key-0123456789abcdef")
os.environ.setdefault("RC_LOG_FORMAT", "text")
os.environ.setdefault("RC_LOG_LEVEL", "warning")

import uuid
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import create_jwt
from app.core.database import get_session
from app.main import app as fastapi_app
from app.models.user import User


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'rollcall.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """Insert a user in its own committed transaction."""

    async def _make_user(
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        async with session_factory() as s:
            user = User(
                email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
                full_name=full_name,
                username=username,
            )
            s.add(user)
            await s.commit()
            return user

    return _make_user


@pytest.fixture
async def client(session_factory):
    async def _get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers for a user, optionally naming a team via X-Team-Id."""

    def _auth_headers(user: User, team_id: Optional[uuid.UUID] = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {create_jwt(user.id)}"}
        if team_id is not None:
            headers["X-Team-Id"] = str(team_id)
        return headers

    return _auth_headers
