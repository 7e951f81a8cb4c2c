"""
Slug allocation and small text normalizers for team identifiers.
"""

from __future__ import annotations

import re

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.team import Team

log = structlog.get_logger()
settings = get_settings()

DEFAULT_SLUG = "team"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_LOCAL_PART_DISALLOWED = re.compile(r"[^a-z0-9._-]+")
_DOTS = re.compile(r"\.{2,}")


def slugify(value: str) -> str:
    """Lower-kebab-case: runs of anything non-alphanumeric become one hyphen."""
    return _NON_ALNUM.sub("-", (value or "").lower()).strip("-")


def normalize_team_slug(value: str, max_length: int | None = None) -> str:
    limit = max_length or settings.slug_max_length
    return slugify(value)[:limit].strip("-")


def sanitize_local_part(value: str) -> str:
    """Make a string safe to use as an email local part."""
    cleaned = re.sub(r"\s+", ".", (value or "").strip().lower())
    cleaned = _LOCAL_PART_DISALLOWED.sub("", cleaned)
    return _DOTS.sub(".", cleaned).strip(".")


async def slug_exists(slug: str, session: AsyncSession) -> bool:
    result = await session.execute(select(Team.id).where(Team.slug == slug))
    return result.first() is not None


async def allocate_slug(base: str, session: AsyncSession) -> str:
    """First free slug among ``base``, ``base-1``, ``base-2``, ...

    Every candidate is checked against the store; a concurrent insert can
    still take the winner before we do, so callers retry on a uniqueness
    violation.
    """
    root = base or DEFAULT_SLUG
    candidate = root
    suffix = 1
    while await slug_exists(candidate, session):
        candidate = f"{root}-{suffix}"
        suffix += 1
    if candidate != root:
        log.debug("slug.suffixed", base=root, slug=candidate)
    return candidate
