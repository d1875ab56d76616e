"""Tests for bearer tokens and password hashing behind the identity adapter."""

from datetime import timedelta

import pytest
from jose import jwt

from app.auth.jwt import TokenKind, issue_token, subject_of, token_pair
from app.auth.passwords import BCRYPT_MAX_BYTES, hash_password, verify_password
from app.config import get_settings


def test_token_pair_round_trips_to_email() -> None:
    pair = token_pair("alice@example.com")
    assert subject_of(pair["access_token"], TokenKind.ACCESS) == "alice@example.com"
    assert subject_of(pair["refresh_token"], TokenKind.REFRESH) == "alice@example.com"
    assert pair["expires_in"] == get_settings().access_token_expire_minutes * 60


@pytest.mark.parametrize("issued, expected", [(TokenKind.ACCESS, TokenKind.REFRESH), (TokenKind.REFRESH, TokenKind.ACCESS)])
def test_token_kinds_are_not_interchangeable(issued, expected) -> None:
    assert subject_of(issue_token("bob@example.com", issued), expected) is None


def test_tokens_issued_together_differ() -> None:
    assert issue_token("bob@example.com", TokenKind.ACCESS) != issue_token("bob@example.com", TokenKind.ACCESS)


@pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_have_no_subject(token) -> None:
    assert subject_of(token, TokenKind.ACCESS) is None


def test_expired_token_rejected() -> None:
    token = issue_token("bob@example.com", TokenKind.ACCESS, lifetime=timedelta(seconds=-1))
    assert subject_of(token, TokenKind.ACCESS) is None


def test_token_signed_with_other_secret_rejected(monkeypatch) -> None:
    token = issue_token("bob@example.com", TokenKind.ACCESS)
    monkeypatch.setenv("SHARELINK_JWT_SECRET", "a-completely-different-secret-of-32-chars")
    assert subject_of(token, TokenKind.ACCESS) is None


def test_token_without_string_subject_rejected() -> None:
    settings = get_settings()
    token = jwt.encode({"type": "access", "sub": ""}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    assert subject_of(token, TokenKind.ACCESS) is None


def test_password_hash_verifies_only_the_right_password() -> None:
    hashed = hash_password("correct horse")
    assert hashed.startswith("$2")
    assert "correct horse" not in hashed
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_password_beyond_bcrypt_limit_is_truncated() -> None:
    hashed = hash_password("é" * BCRYPT_MAX_BYTES)
    assert verify_password("é" * (BCRYPT_MAX_BYTES // 2), hashed)
