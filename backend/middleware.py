from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import decode_access_token
from models import UserProfile
from services.identity_service import fetch_user_profile
from utils import messages

logger = logging.getLogger(__name__)

async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and validate current user from JWT token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ")[1]
    return decode_access_token(token)

async def require_auth(request: Request) -> UserProfile:
    """Require a valid token whose identity still has a profile."""
    payload = await get_current_user(request)
    if not payload or not payload.get("uid"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    profile = await fetch_user_profile(payload["uid"])
    if profile is None:
        logger.warning(f"Token for uid {payload['uid']} has no profile; rejecting")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=messages.PROFILE_LOAD_FAILED
        )
    return profile
