"""
API v1 Router

Story endpoints live under /stories; the caller's own views under /me.
"""

from fastapi import APIRouter
from . import me, members, stories

router = APIRouter()

router.include_router(stories.router, prefix="/stories", tags=["Stories"])
router.include_router(members.router, prefix="/stories/{storyId}/members", tags=["Members"])
router.include_router(me.router, prefix="/me", tags=["Me"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/stories",
            "/stories/{storyId}",
            "/stories/{storyId}/access",
            "/stories/{storyId}/members",
            "/me/memberships",
            "/me/stories",
        ],
    }
