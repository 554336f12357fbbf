"""
Version 1 API routers.

Provides endpoints for:
- Members, applications, CSV import and mailing-list subscription
- The authenticated user's roles and metadata
"""
from fastapi import APIRouter

from gtc_api.api.v1.members import router as members_router
from gtc_api.api.v1.users import router as users_router

# Combined v1 router
api_router = APIRouter()

api_router.include_router(
    members_router,
    prefix="/member",
    tags=["member"]
)

api_router.include_router(
    users_router,
    prefix="/user",
    tags=["user"]
)

__all__ = ["api_router"]
