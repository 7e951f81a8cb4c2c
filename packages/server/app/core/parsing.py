"""
Input parsing with explicit three-way results.

Every parser answers one of: the field was not supplied (``UNSET``), it was
supplied and is usable (``Valid``), or it was supplied and is wrong
(``Invalid`` with the error kind to report).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union
from urllib.parse import parse_qs, urlsplit

from rollcall_shared.schemas.common import TeamRole

from app.core.errors import ErrorKind

T = TypeVar("T")

DOMAIN_PATTERN = re.compile(r"^(?!-)[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}$")


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: ErrorKind


ParseResult = Union[_Unset, Valid[T], Invalid]


def parse_team_role(value: Any) -> ParseResult[TeamRole]:
    if value is None:
        return UNSET
    if not isinstance(value, str):
        return Invalid(ErrorKind.INVALID_ROLE)
    cleaned = value.strip().lower()
    if not cleaned:
        return UNSET
    try:
        return Valid(TeamRole(cleaned))
    except ValueError:
        return Invalid(ErrorKind.INVALID_ROLE)


def parse_allowed_domain(value: Any) -> ParseResult[str]:
    """Lowercased email domain restriction; empty means no restriction."""
    if not isinstance(value, str):
        return UNSET
    cleaned = value.strip().lower()
    if not cleaned:
        return UNSET
    if not DOMAIN_PATTERN.match(cleaned):
        return Invalid(ErrorKind.INVALID_DOMAIN)
    return Valid(cleaned)


def clamp_max_uses(value: Any, cap: int = 10_000) -> int:
    """Clamp a usage cap into [0, cap]. Anything unusable means unlimited (0)."""
    # bool is an int subclass but never a usage count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return min(math.floor(value), cap)


def parse_invite_token(raw: str) -> str:
    """Pull the token out of a bare token or an invite link.

    Links may carry the token as a ``token`` query parameter or as the
    final path segment. Anything that does not parse as a link is taken
    whole as the token.
    """
    text = (raw or "").strip()
    if not text:
        return ""
    try:
        parts = urlsplit(text)
    except ValueError:
        return text
    if not parts.scheme and not text.startswith("/"):
        return text

    from_query = parse_qs(parts.query).get("token")
    if from_query and from_query[0].strip():
        return from_query[0].strip()

    segments = [segment for segment in parts.path.split("/") if segment]
    if segments:
        return segments[-1].strip()
    return text
