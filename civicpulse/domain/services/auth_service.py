"""
Authentication Service for CivicPulse.

Owns the session lifecycle: a session is created at sign-in (Google OAuth),
refreshed by rotating its refresh token, and cleared at sign-out. Listeners
registered with subscribe() are told about each transition.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional
from uuid import UUID
import logging

import httpx
from sqlalchemy.orm import Session

from .common import commit
from .security import (
    create_access_token,
    create_refresh_token,
    verify_token,
    hash_token,
)
from ..errors import AuthError, RemoteError
from ..models import SessionContext
from ...core.config import settings
from ...infrastructure.models import User, RefreshToken

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SIGNED_OUT = "SIGNED_OUT"


SessionListener = Callable[[SessionEvent, Optional[SessionContext]], None]


class AuthService:
    """Service for handling all authentication operations"""

    def __init__(self):
        self._listeners: List[SessionListener] = []

    # =========================================================================
    # Session-change subscription
    # =========================================================================

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener for session changes.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent, context: Optional[SessionContext]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, context)
            except Exception as e:
                logger.error(f"Session listener failed on {event.value}: {e}")

    # =========================================================================
    # Google OAuth
    # =========================================================================

    async def verify_google_token(self, id_token: str) -> Optional[dict]:
        """
        Verify Google ID token with Google's servers.

        Returns:
            Google user info if valid, None otherwise

        Raises:
            RemoteError: Google could not be reached
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    settings.GOOGLE_TOKENINFO_URL,
                    params={"id_token": id_token},
                    timeout=10.0
                )
        except httpx.RequestError as e:
            logger.error(f"Google token verification request failed: {e}")
            raise RemoteError("Identity provider unavailable") from e

        if response.status_code != 200:
            logger.info(f"Google rejected ID token: {response.status_code}")
            return None

        token_info = response.json()

        # Verify the token is for our app
        if settings.GOOGLE_CLIENT_ID and token_info.get("aud") != settings.GOOGLE_CLIENT_ID:
            logger.warning("Google ID token issued for a different client")
            return None

        return {
            "google_id": token_info.get("sub"),
            "email": token_info.get("email"),
            "name": token_info.get("name"),
            "picture": token_info.get("picture"),
        }

    def get_or_create_google_user(self, google_data: dict, db: Session) -> User:
        """
        Get existing profile by Google ID or email, or create one on first sign-in.
        """
        user = db.query(User).filter(User.google_id == google_data["google_id"]).first()

        if user:
            if google_data.get("picture") and user.avatar_url != google_data["picture"]:
                user.avatar_url = google_data["picture"]
                commit(db, "update profile avatar")
            return user

        if google_data.get("email"):
            user = db.query(User).filter(User.email == google_data["email"]).first()
            if user:
                # Link Google account to existing profile
                user.google_id = google_data["google_id"]
                user.auth_provider = "google"
                if google_data.get("picture"):
                    user.avatar_url = google_data["picture"]
                commit(db, "link google account")
                return user

        base_name = google_data.get("name") or (google_data.get("email") or "user").split("@")[0]
        user = User(
            username=self._generate_unique_username(base_name, db),
            email=google_data.get("email"),
            display_name=google_data.get("name"),
            google_id=google_data["google_id"],
            auth_provider="google",
            avatar_url=google_data.get("picture"),
        )
        db.add(user)
        commit(db, "create profile")
        db.refresh(user)
        logger.info(f"Created profile {user.id} ({user.username}) on first sign-in")

        return user

    async def sign_in_with_google(self, id_token: str, db: Session) -> dict:
        """
        Exchange a Google ID token for CivicPulse session tokens.

        Raises:
            AuthError: The token was rejected
        """
        google_data = await self.verify_google_token(id_token)
        if not google_data or not google_data.get("google_id"):
            raise AuthError("Invalid Google token")

        user = self.get_or_create_google_user(google_data, db)
        tokens = self.create_tokens(user, db)
        self._emit(SessionEvent.SIGNED_IN, SessionContext.for_user(user))
        return tokens

    # =========================================================================
    # Session Management
    # =========================================================================

    def current_session(self, access_token: Optional[str], db: Session) -> SessionContext:
        """
        Resolve an access token to the caller's session.
        Admin and banned flags come from the profile, not the token.
        """
        if not access_token:
            raise AuthError("Not authenticated")

        payload = verify_token(access_token, token_type="access")
        if not payload or not payload.get("sub"):
            raise AuthError("Invalid or expired token")

        user = db.query(User).filter(User.id == _parse_uuid(payload["sub"])).first()
        if not user:
            raise AuthError("User not found")

        return SessionContext.for_user(user)

    def create_tokens(self, user: User, db: Session) -> dict:
        """
        Create access and refresh tokens for a user.

        Returns:
            Dict with access_token, refresh_token, token_type, and expires_in
        """
        access_token = create_access_token(data={"sub": str(user.id)})
        refresh_token, token_hash = create_refresh_token(str(user.id))

        db.add(RefreshToken(
            token_hash=token_hash,
            user_id=user.id,
            expires_at=datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        commit(db, "store refresh token")

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,  # seconds
        }

    def refresh(self, refresh_token: str, db: Session) -> dict:
        """
        Exchange a refresh token for new tokens (with rotation).

        Raises:
            AuthError: Token invalid, revoked, expired, or its user is gone
        """
        payload = verify_token(refresh_token, token_type="refresh")
        if not payload or not payload.get("sub"):
            raise AuthError("Invalid refresh token")

        db_token = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.revoked == False
        ).first()

        if not db_token:
            raise AuthError("Refresh token revoked or unknown")

        # Revoke the old token whether or not it is still usable
        db_token.revoked = True

        if db_token.expires_at < datetime.utcnow():
            commit(db, "expire refresh token")
            raise AuthError("Refresh token expired")

        user = db.query(User).filter(User.id == db_token.user_id).first()
        if not user:
            commit(db, "revoke orphaned refresh token")
            raise AuthError("User not found")

        tokens = self.create_tokens(user, db)
        self._emit(SessionEvent.TOKEN_REFRESHED, SessionContext.for_user(user))
        return tokens

    def sign_out(self, refresh_token: str, db: Session) -> bool:
        """
        Revoke a refresh token.

        Returns:
            True if revoked, False if the token was unknown
        """
        db_token = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token)
        ).first()

        if not db_token:
            return False

        db_token.revoked = True
        commit(db, "revoke refresh token")

        user = db.query(User).filter(User.id == db_token.user_id).first()
        self._emit(SessionEvent.SIGNED_OUT, SessionContext.for_user(user) if user else None)
        return True

    # =========================================================================
    # Helpers
    # =========================================================================

    def _generate_unique_username(self, base_name: str, db: Session) -> str:
        """Generate a unique username from a base name."""
        clean_name = "".join(c for c in base_name if c.isalnum() or c == "_").lower()
        if not clean_name:
            clean_name = "user"

        username = clean_name
        counter = 1

        while db.query(User).filter(User.username == username).first():
            username = f"{clean_name}_{counter}"
            counter += 1

        return username


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise AuthError("Invalid token payload")


# Singleton instance
auth_service = AuthService()
