"""
Endpoints describing the authenticated user.
"""
from typing import Any

from fastapi import APIRouter, Depends

from gtc_api.core.deps import get_current_principal
from gtc_api.core.security import ApplicationRole, Principal

router = APIRouter()


@router.get("/roles", response_model=list[ApplicationRole])
async def get_user_roles(principal: Principal = Depends(get_current_principal)):
    """Returns the current user's roleset."""
    return principal.roles


@router.get("/metadata/app", response_model=dict[str, Any])
async def get_user_app_metadata(principal: Principal = Depends(get_current_principal)):
    """Returns the current user's metadata."""
    return principal.app_metadata
