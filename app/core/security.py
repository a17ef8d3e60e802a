"""Security and authentication utilities."""
import secrets
import hmac
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from fastapi import HTTPException, Request

from app.core import config


def generate_voting_token() -> str:
    """Generate a secure random voting token."""
    return secrets.token_urlsafe(32)


def create_token_lookup_key(token: str) -> str:
    """Create deterministic lookup key from token using HMAC-SHA256.

    Only this key is persisted; the raw token lives in the emailed link.
    HMAC is appropriate here because tokens are:
    - Randomly generated (not user-chosen)
    - Already cryptographically secure (32+ bytes)

    Returns:
        64-character hex string (SHA256 output)
    """
    return hmac.new(
        config.settings.SECRET_KEY.encode(),
        token.encode(),
        hashlib.sha256
    ).hexdigest()


def token_matches(token: str, lookup_key: str) -> bool:
    """Constant-time comparison of a presented token against a stored key."""
    return hmac.compare_digest(create_token_lookup_key(token), lookup_key)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=config.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.settings.SECRET_KEY, algorithm=config.settings.ALGORITHM)
    return encoded_jwt


def verify_identity_token(token: str) -> str:
    """Verify a bearer credential and return the verified subject id.

    Raises:
        HTTPException: 401 if the token is expired, malformed or has no subject
    """
    try:
        payload = jwt.decode(token, config.settings.SECRET_KEY, algorithms=[config.settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(subject)


def get_current_user(request: Request) -> str:
    """FastAPI dependency: the verified subject id of the acting user."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")

    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return verify_identity_token(token.strip())
