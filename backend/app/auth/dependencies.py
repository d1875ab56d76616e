"""FastAPI dependencies for auth."""

import logging
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import TokenKind, subject_of
from app.db.session import get_db
from app.errors import Unauthenticated
from app.users.models import User
from app.users.service import get_user_by_email

security = HTTPBearer(auto_error=False)
log = logging.getLogger(__name__)


async def user_from_token(session: AsyncSession, token: Optional[str]) -> User:
    """Resolve an access token to its user; raise Unauthenticated if invalid or unknown.

    Shared by the HTTP dependency and the live channel handshake.
    """
    if not token:
        log.debug("Request missing Bearer token")
        raise Unauthenticated("Not authenticated")
    email = subject_of(token, TokenKind.ACCESS)
    if not email:
        log.debug("Invalid or expired access token")
        raise Unauthenticated("Invalid or expired token")
    user = await get_user_by_email(session, email)
    if not user:
        log.warning("Token valid but user not found: email=%s", email)
        raise Unauthenticated("User not found")
    return user


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve Bearer token to current user; raise 401 if invalid or missing."""
    return await user_from_token(session, credentials.credentials if credentials else None)
