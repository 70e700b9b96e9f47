"""Bearer-token authentication against the identity provider's session JWTs."""

from __future__ import annotations

import os
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .deps import get_db

# Security scheme for Bearer token
oauth2_scheme = HTTPBearer(auto_error=False)

# JWT Configuration (tokens are issued by the identity provider; we only verify)
IDP_JWT_SECRET = os.getenv("IDP_JWT_SECRET")
if not IDP_JWT_SECRET:
    raise RuntimeError(
        "IDP_JWT_SECRET environment variable is required but not set. "
        "Use the signing key configured for session tokens at the identity provider."
    )
if len(IDP_JWT_SECRET) < 32:
    raise RuntimeError("IDP_JWT_SECRET is too short. Must be at least 32 characters long.")
IDP_JWT_ALGORITHM = os.getenv("IDP_JWT_ALGORITHM", "HS256")
IDP_JWT_ISSUER = os.getenv("IDP_JWT_ISSUER") or None


@dataclass
class CurrentUser:
    """Authenticated caller as described by the session token claims."""

    id: str
    email: str | None = None
    name: str | None = None
    image_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Unknown User"


def decode_token(token: str) -> CurrentUser:
    """
    Verify a session token and extract the caller.

    Raises HTTPException(401) for expired, malformed, or unsigned tokens.
    """
    options = {"require": ["sub", "exp"]}
    try:
        payload = jwt.decode(
            token,
            IDP_JWT_SECRET,
            algorithms=[IDP_JWT_ALGORITHM],
            issuer=IDP_JWT_ISSUER,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    user_id = str(payload["sub"]).strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject",
        )

    email = payload.get("email")
    return CurrentUser(
        id=user_id,
        email=email.strip().lower() if isinstance(email, str) else None,
        name=payload.get("name"),
        image_url=payload.get("image_url") or payload.get("picture"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """
    Get current authenticated user from Bearer token.

    The first authenticated request from a user also mirrors their profile
    into the local cache and assigns their display color.
    """
    from .services.user_cache import ensure_cached_user

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = decode_token(credentials.credentials)
    ensure_cached_user(db, user)
    return user


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser | None:
    """
    Get current user if authenticated, None otherwise.

    Used for public and guest routes that behave differently for signed-in users.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials, db)
    except HTTPException:
        return None
