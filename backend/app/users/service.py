"""User service: registration, credential checks, authenticate-or-register."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.passwords import hash_password, verify_password
from app.errors import Conflict, InvalidRequest, Unauthenticated
from app.users.models import User

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Return user by email or None."""
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def register_user(session: AsyncSession, email: str, password: str) -> User:
    """
    Create a new user with a bcrypt password hash.
    Raises Conflict if the email is taken, InvalidRequest if the password is too short.
    """
    email = normalize_email(email)
    if not password or len(password.strip()) < MIN_PASSWORD_LENGTH:
        raise InvalidRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    existing = await get_user_by_email(session, email)
    if existing:
        raise Conflict(f"User already exists: {email}")
    user = User(email=email, password_hash=hash_password(password))
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # Registered concurrently under the same email
        await session.rollback()
        raise Conflict(f"User already exists: {email}")
    log.info("Registered user email=%s", email)
    return user


async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    """Return the user if email and password match; raise Unauthenticated otherwise."""
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.password_hash):
        log.warning("Login failed for email=%s", normalize_email(email))
        raise Unauthenticated("Invalid email or password")
    return user


async def authenticate_or_register(
    session: AsyncSession, email: str, password: str
) -> tuple[User, bool]:
    """
    Log in an existing user or register a new one.
    Returns (user, registered). A known email with a wrong password is Unauthenticated,
    never a silent re-registration.
    """
    existing = await get_user_by_email(session, email)
    if existing:
        return await authenticate_user(session, email, password), False
    return await register_user(session, email, password), True
