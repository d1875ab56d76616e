"""
Bearer tokens behind the identity adapter.

Access and refresh tokens are HS256 JWTs whose subject is the user's email.
Nothing outside this module looks inside a token: callers ask subject_of()
for the email and treat None as "not authenticated".
"""

import enum
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.config import get_settings


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


def _lifetime(kind: TokenKind) -> timedelta:
    settings = get_settings()
    if kind is TokenKind.REFRESH:
        return timedelta(days=settings.refresh_token_expire_days)
    return timedelta(minutes=settings.access_token_expire_minutes)


def issue_token(email: str, kind: TokenKind, lifetime: Optional[timedelta] = None) -> str:
    """Sign a token for email. Each token carries a unique jti so two issued in the same second differ."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": email,
        "type": kind.value,
        "iat": now,
        "exp": now + (lifetime if lifetime is not None else _lifetime(kind)),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def token_pair(email: str) -> Dict[str, Any]:
    """Fresh access and refresh tokens plus the access lifetime in seconds."""
    return {
        "access_token": issue_token(email, TokenKind.ACCESS),
        "refresh_token": issue_token(email, TokenKind.REFRESH),
        "expires_in": int(_lifetime(TokenKind.ACCESS).total_seconds()),
    }


def subject_of(token: Optional[str], kind: TokenKind) -> Optional[str]:
    """Email the token was issued for, or None if it is malformed, expired, foreign or of another kind."""
    if not token:
        return None
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if claims.get("type") != kind.value:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None
