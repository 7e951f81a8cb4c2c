"""
API v1 Router

Team-scoped endpoints live under /teams/{team_id}; the access resolver also
accepts the team from a team_id query parameter, the X-Team-Id header, or
the user's last active team.
"""

from fastapi import APIRouter
from . import invites, members, teams

router = APIRouter()

router.include_router(teams.router)
router.include_router(members.router, prefix="/teams/{team_id}/users")
router.include_router(invites.router)


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/teams",
            "/team",
            "/teams/{team_id}",
            "/teams/{team_id}/users",
            "/teams/{team_id}/invites",
            "/invites/{token}",
            "/invites/{token}/accept",
        ],
    }
