"""User SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class User(Base):
    """User table: email is primary key, login identifier and user id."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# Pydantic schemas for API
class UserResponse(BaseModel):
    """User as returned by API (no password)."""

    model_config = ConfigDict(from_attributes=True)

    email: str
    created_at: Optional[datetime] = None


class Credentials(BaseModel):
    """Login / register request body."""

    email: EmailStr
    password: str


class TokenPair(BaseModel):
    """Access and refresh token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class AuthenticateResponse(TokenPair):
    """Token pair for authenticate-or-register; registered is True when the account was just created."""

    registered: bool = False


class RefreshRequest(BaseModel):
    """Refresh token request body."""

    refresh_token: str


class VerifyRequest(BaseModel):
    """Token verification request body."""

    token: str


class VerifyResponse(BaseModel):
    valid: bool
    email: Optional[str] = None
