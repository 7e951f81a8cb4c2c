"""
Error kinds for team membership operations.

Core operations return either their value or a ``TeamError``. Expected
business outcomes (not a member, exhausted invite, last owner leaving...)
are values, not exceptions. Only the HTTP layer turns a ``TeamError`` into
a response, via ``unwrap``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NoReturn, TypeVar, Union

from fastapi import Request
from fastapi.responses import JSONResponse

T = TypeVar("T")


class ErrorKind(str, Enum):
    MISSING_AUTH = "missing_auth"
    MISSING_TEAM = "missing_team"
    MISSING_NAME = "missing_name"
    MISSING_EMAIL = "missing_email"
    MISSING_ROLE = "missing_role"
    MISSING_USER_ID = "missing_user_id"
    MISSING_TOKEN = "missing_token"
    INVALID_ROLE = "invalid_role"
    INVALID_DOMAIN = "invalid_domain"
    USER_NOT_FOUND = "user_not_found"
    TEAM_NOT_FOUND = "team_not_found"
    MEMBER_NOT_FOUND = "member_not_found"
    INVITE_NOT_FOUND = "invite_not_found"
    NOT_A_MEMBER = "not_a_member"
    FORBIDDEN = "forbidden"
    OWNER_LOCKED = "owner_locked"
    OWNER_ONLY = "owner_only"
    DOMAIN_RESTRICTED = "domain_restricted"
    ALREADY_MEMBER = "already_member"
    INVITE_EXHAUSTED = "invite_exhausted"
    LAST_ADMIN_OWNER = "last_admin_owner"
    SLUG_CONFLICT = "slug_conflict"
    TOKEN_CONFLICT = "token_conflict"


class ErrorCategory(str, Enum):
    INPUT = "input"
    AUTHORIZATION = "authorization"
    STATE = "state"
    INVARIANT = "invariant"
    CONFLICT = "conflict"


ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.MISSING_AUTH: 401,
    ErrorKind.MISSING_TEAM: 400,
    ErrorKind.MISSING_NAME: 400,
    ErrorKind.MISSING_EMAIL: 400,
    ErrorKind.MISSING_ROLE: 400,
    ErrorKind.MISSING_USER_ID: 400,
    ErrorKind.MISSING_TOKEN: 400,
    ErrorKind.INVALID_ROLE: 400,
    ErrorKind.INVALID_DOMAIN: 400,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.TEAM_NOT_FOUND: 404,
    ErrorKind.MEMBER_NOT_FOUND: 404,
    ErrorKind.INVITE_NOT_FOUND: 404,
    ErrorKind.NOT_A_MEMBER: 403,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.OWNER_LOCKED: 403,
    ErrorKind.OWNER_ONLY: 403,
    ErrorKind.DOMAIN_RESTRICTED: 403,
    ErrorKind.ALREADY_MEMBER: 409,
    ErrorKind.INVITE_EXHAUSTED: 410,
    ErrorKind.LAST_ADMIN_OWNER: 400,
    ErrorKind.SLUG_CONFLICT: 409,
    ErrorKind.TOKEN_CONFLICT: 409,
}

ERROR_CATEGORY: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.MISSING_AUTH: ErrorCategory.AUTHORIZATION,
    ErrorKind.MISSING_TEAM: ErrorCategory.INPUT,
    ErrorKind.MISSING_NAME: ErrorCategory.INPUT,
    ErrorKind.MISSING_EMAIL: ErrorCategory.INPUT,
    ErrorKind.MISSING_ROLE: ErrorCategory.INPUT,
    ErrorKind.MISSING_USER_ID: ErrorCategory.INPUT,
    ErrorKind.MISSING_TOKEN: ErrorCategory.INPUT,
    ErrorKind.INVALID_ROLE: ErrorCategory.INPUT,
    ErrorKind.INVALID_DOMAIN: ErrorCategory.INPUT,
    ErrorKind.USER_NOT_FOUND: ErrorCategory.STATE,
    ErrorKind.TEAM_NOT_FOUND: ErrorCategory.STATE,
    ErrorKind.MEMBER_NOT_FOUND: ErrorCategory.STATE,
    ErrorKind.INVITE_NOT_FOUND: ErrorCategory.STATE,
    ErrorKind.NOT_A_MEMBER: ErrorCategory.AUTHORIZATION,
    ErrorKind.FORBIDDEN: ErrorCategory.AUTHORIZATION,
    ErrorKind.OWNER_LOCKED: ErrorCategory.AUTHORIZATION,
    ErrorKind.OWNER_ONLY: ErrorCategory.AUTHORIZATION,
    ErrorKind.DOMAIN_RESTRICTED: ErrorCategory.AUTHORIZATION,
    ErrorKind.ALREADY_MEMBER: ErrorCategory.STATE,
    ErrorKind.INVITE_EXHAUSTED: ErrorCategory.STATE,
    ErrorKind.LAST_ADMIN_OWNER: ErrorCategory.INVARIANT,
    ErrorKind.SLUG_CONFLICT: ErrorCategory.CONFLICT,
    ErrorKind.TOKEN_CONFLICT: ErrorCategory.CONFLICT,
}


@dataclass(frozen=True)
class TeamError:
    """A failed operation: the kind, with status and category derived from it."""

    kind: ErrorKind

    @property
    def status(self) -> int:
        return ERROR_STATUS[self.kind]

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATEGORY[self.kind]


Result = Union[T, TeamError]


def fail(kind: ErrorKind) -> TeamError:
    return TeamError(kind)


# ---------------------------------------------------------------------------
# HTTP adapter
# ---------------------------------------------------------------------------

class TeamErrorResponse(Exception):
    """Carries a TeamError out of a FastAPI dependency or route."""

    def __init__(self, error: TeamError):
        super().__init__(error.kind.value)
        self.error = error


def unwrap(result: Result[T]) -> T:
    """Return the value of a successful result; raise for the HTTP layer otherwise."""
    if isinstance(result, TeamError):
        raise TeamErrorResponse(result)
    return result


def abort(kind: ErrorKind) -> NoReturn:
    raise TeamErrorResponse(TeamError(kind))


async def team_error_handler(request: Request, exc: TeamErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=exc.error.status,
        content={"error": exc.error.kind.value},
    )
