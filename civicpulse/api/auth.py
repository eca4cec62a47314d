"""
Authentication API endpoints for CivicPulse.
Handles Google OAuth sign-in, token refresh and sign-out.
"""
from pydantic import BaseModel, Field

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..infrastructure.database import get_db
from ..domain.errors import CivicPulseError
from ..domain.models import SessionContext, ProfileResponse
from ..domain.services.auth_service import auth_service
from ..domain.services.profile_service import ProfileService
from .deps import get_current_session, check_rate_limit, http_error


router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class GoogleAuthRequest(BaseModel):
    """Request for Google OAuth authentication"""
    id_token: str = Field(..., description="Google ID token from client-side sign-in")


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token")


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token to revoke")


class TokenResponse(BaseModel):
    """Response containing auth tokens"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/google", response_model=TokenResponse)
async def google_auth(
    request: GoogleAuthRequest,
    http_request: Request,
    db: Session = Depends(get_db)
):
    """
    Exchange a Google ID token for CivicPulse session tokens.
    The profile is created on first sign-in.

    Rate limited to 10 attempts per minute per IP address.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    check_rate_limit(f"google:{client_ip}", max_requests=10, window_seconds=60)

    try:
        return await auth_service.sign_in_with_google(request.id_token, db)
    except CivicPulseError as e:
        raise http_error(e, "Sign-in failed")


@router.post("/refresh", response_model=TokenResponse)
def refresh_tokens(
    request: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """
    Rotate a refresh token. The old token stops working.
    """
    try:
        return auth_service.refresh(request.refresh_token, db)
    except CivicPulseError as e:
        raise http_error(e, "Failed to refresh session")


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: LogoutRequest,
    db: Session = Depends(get_db)
):
    """
    Sign out by revoking the refresh token.
    """
    try:
        revoked = auth_service.sign_out(request.refresh_token, db)
    except CivicPulseError as e:
        raise http_error(e, "Failed to sign out")
    return MessageResponse(message="Signed out" if revoked else "Session already ended")


@router.get("/me", response_model=ProfileResponse)
def get_me(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    try:
        return ProfileService(db).get_profile(session.user_id)
    except CivicPulseError as e:
        raise http_error(e, "Failed to fetch profile")
