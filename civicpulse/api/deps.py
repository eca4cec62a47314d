"""
Authentication dependencies for FastAPI routes.
Provides dependency injection for protected endpoints.
"""
from typing import Optional
from collections import defaultdict
from datetime import datetime, timedelta
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..infrastructure.database import get_db
from ..domain.errors import AuthError, CivicPulseError, RemoteError
from ..domain.models import SessionContext
from ..domain.services.auth_service import auth_service

logger = logging.getLogger(__name__)


# =============================================================================
# Rate Limiting
# =============================================================================

# In-memory rate limit store: key -> list of timestamps
_rate_limit_store: dict[str, list[datetime]] = defaultdict(list)


def check_rate_limit(
    key: str,
    max_requests: int = 5,
    window_seconds: int = 60
) -> None:
    """
    Simple in-memory sliding-window rate limiter.

    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded

    Usage:
        check_rate_limit(f"comment:{session.user_id}")
    """
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=window_seconds)

    _rate_limit_store[key] = [t for t in _rate_limit_store[key] if t > cutoff]

    if len(_rate_limit_store[key]) >= max_requests:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please wait {window_seconds} seconds before trying again.",
        )

    _rate_limit_store[key].append(now)


# =============================================================================
# Error translation
# =============================================================================

def http_error(error: CivicPulseError, failure_message: str) -> HTTPException:
    """
    Translate a domain error into an HTTPException.
    Collaborator failures are logged and surfaced as a generic failure notice.
    """
    if isinstance(error, RemoteError):
        logger.error(f"{failure_message}: {error}")
        return HTTPException(status_code=500, detail=failure_message)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(error, AuthError) else None
    return HTTPException(status_code=error.status_code, detail=str(error), headers=headers)


# =============================================================================
# Session dependencies
# =============================================================================

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> SessionContext:
    """
    Dependency to get the caller's session.
    Raises 401 if not authenticated.

    Usage:
        @router.get("/protected")
        async def protected_route(session: SessionContext = Depends(get_current_session)):
            return {"user_id": str(session.user_id)}
    """
    try:
        return auth_service.current_session(credentials.credentials if credentials else None, db)
    except CivicPulseError as e:
        raise http_error(e, "Failed to resolve session")


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[SessionContext]:
    """
    Dependency to optionally get the caller's session.
    Returns None if not authenticated (does not raise).
    """
    if not credentials:
        return None
    try:
        return auth_service.current_session(credentials.credentials, db)
    except AuthError:
        return None


async def get_admin_session(
    session: SessionContext = Depends(get_current_session)
) -> SessionContext:
    """
    Dependency to verify the caller is an admin.
    Raises 403 if not.
    """
    if not session.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    return session
