"""
Access token verification.
Tokens are issued by the auth service; this API only verifies them.
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID

import jwt
from fastapi import HTTPException, status
from pydantic import BaseModel

from app.config import settings
from app.core.clock import utcnow


class TokenData(BaseModel):
    """Claims this API relies on."""
    user_id: UUID


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token (used by tooling and tests)."""
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": str(user_id), "type": "access", "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_access_token(token: str) -> TokenData:
    """Decode and validate an access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise credentials_exception

    if payload.get("type") != "access" or not payload.get("sub"):
        raise credentials_exception

    try:
        return TokenData(user_id=payload["sub"])
    except ValueError:
        raise credentials_exception
