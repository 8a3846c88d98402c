"""Authentication dependency for user-scoped API endpoints.

The bearer token is a Firebase ID token; it is resolved to a user through
the app's identity provider.

Behavior matrix:
  provider configured + valid token      → user
  provider configured + wrong/missing    → 401 Unauthorized
  provider configured + provider down    → 502 Bad Gateway
  no provider (FIREBASE_API_KEY empty) + DEBUG=true   → anonymous dev user
  no provider (FIREBASE_API_KEY empty) + DEBUG=false  → 403 Forbidden
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_assistant.config import settings
from booking_assistant.identity.base import IdentityError, IdentityUser

log = logging.getLogger("booking_assistant.auth")

_bearer_scheme = HTTPBearer(auto_error=False)

DEV_USER = IdentityUser(uid="dev", email="dev@localhost", display_name="Developer")


async def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> IdentityUser:
    """FastAPI dependency: resolve the bearer ID token to a user."""
    identity = getattr(request.app.state, "identity", None)

    if identity is None:
        # No identity provider (FIREBASE_API_KEY unset)
        if settings.debug:
            return DEV_USER  # Local dev: allow without auth
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Sign-in is not configured. Set FIREBASE_API_KEY in .env.",
        )

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing ID token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await identity.lookup(credentials.credentials)
    except IdentityError as e:
        if not e.is_credential_error:
            log.error("Token lookup failed: %s", e)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Identity provider unavailable.",
            ) from e
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired ID token.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
