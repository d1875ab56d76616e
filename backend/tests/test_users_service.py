"""Tests for user service: lookup, register, authenticate, authenticate-or-register."""

import pytest

from app.errors import Conflict, InvalidRequest, Unauthenticated
from app.users.service import (
    authenticate_or_register,
    authenticate_user,
    get_user_by_email,
    register_user,
)


@pytest.mark.asyncio
async def test_get_user_by_email_none_for_unknown(session_factory):
    """get_user_by_email returns None when no user exists."""
    async with session_factory() as session:
        user = await get_user_by_email(session, "nobody-here@example.com")
    assert user is None


@pytest.mark.asyncio
async def test_register_user_normalizes_email_and_hashes(session_factory, unique_email):
    email = unique_email("New")
    async with session_factory() as session:
        user = await register_user(session, f"  {email.upper()} ", "password123")
    assert user.email == email.lower()
    assert user.password_hash.startswith("$2")
    async with session_factory() as session:
        assert await get_user_by_email(session, email) is not None


@pytest.mark.asyncio
async def test_register_user_duplicate_raises_conflict(session_factory, unique_email):
    email = unique_email("dup")
    async with session_factory() as session:
        await register_user(session, email, "password123")
    async with session_factory() as session:
        with pytest.raises(Conflict, match="already exists"):
            await register_user(session, email, "password456")


@pytest.mark.asyncio
async def test_register_user_short_password_rejected(session_factory, unique_email):
    async with session_factory() as session:
        with pytest.raises(InvalidRequest):
            await register_user(session, unique_email(), "short")


@pytest.mark.asyncio
async def test_authenticate_user_wrong_password(session_factory, unique_email):
    email = unique_email()
    async with session_factory() as session:
        await register_user(session, email, "password123")
    async with session_factory() as session:
        with pytest.raises(Unauthenticated):
            await authenticate_user(session, email, "wrong-password")


@pytest.mark.asyncio
async def test_authenticate_or_register_registers_then_logs_in(session_factory, unique_email):
    email = unique_email()
    async with session_factory() as session:
        user, registered = await authenticate_or_register(session, email, "password123")
    assert registered is True
    async with session_factory() as session:
        again, registered = await authenticate_or_register(session, email, "password123")
    assert registered is False
    assert again.email == user.email


@pytest.mark.asyncio
async def test_authenticate_or_register_wrong_password_is_not_reregistration(
    session_factory, unique_email
):
    email = unique_email()
    async with session_factory() as session:
        await authenticate_or_register(session, email, "password123")
    async with session_factory() as session:
        with pytest.raises(Unauthenticated):
            await authenticate_or_register(session, email, "another-password")
