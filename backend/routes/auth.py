from fastapi import APIRouter, Depends, HTTPException, status
from middleware import require_auth
from models import LoginRequest, TokenResponse, UserProfile
from auth import create_access_token
from services.identity_service import AuthSession
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(credentials: LoginRequest):
    """Staff sign-in. Valid credentials without a profile are refused."""
    session = AuthSession()
    if not await session.login(credentials.email, credentials.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=session.error
        )

    access_token = create_access_token(session.uid, session.user.role)
    logger.info(f"User {session.uid} signed in")
    return TokenResponse(access_token=access_token, user=session.user)


@router.get("/me", response_model=UserProfile)
async def me(user: UserProfile = Depends(require_auth)):
    return user


@router.post("/logout")
async def logout(user: UserProfile = Depends(require_auth)):
    # Tokens are stateless; the client discards its copy
    logger.info(f"User {user.id} signed out")
    return {"message": "Signed out"}
