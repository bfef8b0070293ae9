"""
Common dependencies for FastAPI routes.
"""

from typing import Optional
from fastapi import Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.exceptions import UnauthorizedException

# HTTP Bearer token security scheme
security = HTTPBearer()


def _decode_token(token: str) -> Optional[dict]:
    """Decode JWT token. Import here to avoid circular imports."""
    from app.auth.service import AuthService
    return AuthService.decode_token(token)


def _user_from_token(token: Optional[str]) -> dict:
    if not token:
        raise UnauthorizedException("Access token required")

    payload = _decode_token(token)
    if not payload:
        raise UnauthorizedException("Invalid or expired token")

    return {
        "id": payload["sub"],
        "email": payload["email"],
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.
    Returns user dict with 'id' and 'email'.
    """
    return _user_from_token(credentials.credentials)


async def get_current_user_from_query(
    authorization: Optional[str] = Query(None, description="JWT access token"),
) -> dict:
    """
    Authenticate long-lived streaming connections.

    Browser EventSource cannot set headers, so the token travels as the
    `authorization` query parameter. A leading "Bearer " is tolerated.
    """
    token = (authorization or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return _user_from_token(token)
