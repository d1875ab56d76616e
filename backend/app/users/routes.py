"""User routes: authenticate-or-register, login, register, refresh, verify, me."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.jwt import TokenKind, subject_of, token_pair
from app.db.session import get_db
from app.errors import Unauthenticated
from app.limiter import limiter
from app.users.models import (
    AuthenticateResponse,
    Credentials,
    RefreshRequest,
    TokenPair,
    User,
    UserResponse,
    VerifyRequest,
    VerifyResponse,
)
from app.users.service import (
    authenticate_or_register,
    authenticate_user,
    get_user_by_email,
    register_user,
)

router = APIRouter(prefix="/api", tags=["users"])
log = logging.getLogger(__name__)


@router.post("/auth/authenticate", response_model=AuthenticateResponse)
@limiter.limit("20/minute")
async def authenticate(
    request: Request,
    body: Credentials,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> AuthenticateResponse:
    """Log in, or register when the email is unknown; returns access and refresh tokens."""
    user, registered = await authenticate_or_register(session, body.email, body.password)
    log.info("Authenticate successful for email=%s registered=%s", user.email, registered)
    return AuthenticateResponse(registered=registered, **token_pair(user.email))


@router.post("/auth/login", response_model=TokenPair)
@limiter.limit("20/minute")
async def login(
    request: Request,
    body: Credentials,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Login with email and password; returns access and refresh tokens."""
    user = await authenticate_user(session, body.email, body.password)
    log.info("Login successful for email=%s", user.email)
    return TokenPair(**token_pair(user.email))


@router.post("/auth/register", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def register(
    request: Request,
    body: Credentials,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Register a new account; 409 if the email is taken."""
    user = await register_user(session, body.email, body.password)
    return TokenPair(**token_pair(user.email))


@router.post("/auth/refresh", response_model=TokenPair)
@limiter.limit("20/minute")
async def refresh(
    request: Request,
    body: RefreshRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> TokenPair:
    """Exchange refresh token for new access and refresh tokens."""
    email = subject_of(body.refresh_token, TokenKind.REFRESH)
    if not email:
        log.warning("Refresh failed: invalid or expired token")
        raise Unauthenticated("Invalid or expired refresh token")
    user = await get_user_by_email(session, email)
    if not user:
        log.warning("Refresh failed: user not found email=%s", email)
        raise Unauthenticated("User not found")
    log.info("Refresh successful for email=%s", user.email)
    return TokenPair(**token_pair(user.email))


@router.post("/auth/verify", response_model=VerifyResponse)
@limiter.limit("60/minute")
async def verify(
    request: Request,
    body: VerifyRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> VerifyResponse:
    """Report whether an access token is valid and which user it belongs to."""
    email = subject_of(body.token, TokenKind.ACCESS)
    if not email or not await get_user_by_email(session, email):
        return VerifyResponse(valid=False)
    return VerifyResponse(valid=True, email=email)


@router.get("/users/me", response_model=UserResponse)
async def me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    """Return current authenticated user."""
    return UserResponse.model_validate(current_user)
