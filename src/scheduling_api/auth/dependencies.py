"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.session import get_session
from scheduling_api.dependencies import get_token_cache
from scheduling_api.exceptions import AuthenticationError
from scheduling_api.services.auth_service import AuthService, CurrentUser, get_auth_service
from scheduling_api.services.token_cache import TokenCache
from scheduling_api.utils.logging import bind_actor

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_token_from_header(
    authorization: Optional[str] = Header(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Extract a bearer token from the Authorization header."""
    if credentials:
        return credentials.credentials
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def auth_service(
    session: AsyncSession = Depends(get_session),
    token_cache: TokenCache = Depends(get_token_cache),
) -> AuthService:
    return get_auth_service(session, token_cache)


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(get_token_from_header),
    service: AuthService = Depends(auth_service),
) -> CurrentUser:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        AuthenticationError: 401 if the token is missing, unknown or invalid
    """
    if not token:
        raise AuthenticationError("Access denied. No token provided.")
    current_user = await service.authenticate(token)
    request.state.actor = current_user
    bind_actor(current_user.user_id, current_user.role)
    return current_user

