"""
Session token helpers: signed JWTs for access and refresh, plus the hash
under which refresh tokens are stored.
"""
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import secrets

from jose import jwt, JWTError

from ...core.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(claims: dict, lifetime: timedelta, token_type: str) -> str:
    issued = datetime.utcnow()
    payload = {**claims, "iat": issued, "exp": issued + lifetime, "type": token_type}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Short-lived bearer token. `data` normally carries `sub` (the profile id).
    """
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, lifetime, ACCESS)


def create_refresh_token(user_id: str) -> tuple[str, str]:
    """
    Returns:
        (token, token_hash). Only the hash is persisted; the token goes to the client.
    """
    token = _encode(
        {"sub": user_id, "jti": secrets.token_urlsafe(32)},
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        REFRESH,
    )
    return token, hash_token(token)


def verify_token(token: str, token_type: str = ACCESS) -> Optional[dict]:
    """Decoded claims if the signature, expiry and type all check out, else None."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    return claims if claims.get("type") == token_type else None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
