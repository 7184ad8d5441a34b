"""Authentication dependencies."""

import logging

from fastapi import APIRouter, HTTPException, Depends, Header
from typing import Optional
from velvethold.database import get_supabase
from velvethold.models.user import CurrentUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def get_current_user(authorization: Optional[str] = Header(None)) -> Optional[CurrentUser]:
    """Extract and validate current user from auth header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization.replace("Bearer ", "")
    supabase = get_supabase()

    try:
        user_response = supabase.auth.get_user(token)
    except Exception as e:
        logger.info(f"Rejected access token: {e}")
        return None

    if not user_response or not user_response.user:
        return None

    return CurrentUser(id=user_response.user.id, email=user_response.user.email)


async def require_auth(user: Optional[CurrentUser] = Depends(get_current_user)) -> CurrentUser:
    """Require authenticated user."""
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


@router.get("/me", response_model=CurrentUser)
async def get_me(user: CurrentUser = Depends(require_auth)):
    """Get current user identity."""
    return user
