"""
Authentication models.

Provides both SQLAlchemy ORM models and Pydantic schemas for:
- User and session entities (database)
- Form-encoded requests for the /auth endpoints
- JSON responses carrying an application-level status code
- E-mail address validation

The ORM models define the table layout; the repositories talk to the
database through asyncpg directly.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import BigInteger, ForeignKey, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class User(Base):
    """
    User account model.

    The password column holds a bcrypt hash of the peppered SHA-512/256
    digest of password and salt, never the password itself.
    """
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    salt: Mapped[str] = mapped_column(String(16), nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(user_id='{self.user_id}', email='{self.email}')>"


class SessionModel(Base):
    """Login session. Expiry is a Unix timestamp in seconds."""
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False
    )
    expiry: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_expiry", "expiry"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<SessionModel(session_id='{self.session_id}', user_id='{self.user_id}')>"


# ============================================================================
# Pydantic Database Models
# ============================================================================


class UserDB(BaseModel):
    """User row as read from the database."""
    user_id: str
    email: str
    password: str = Field(..., repr=False)
    salt: str = Field(..., repr=False)


class SessionDB(BaseModel):
    """Session row as read from the database."""
    session_id: str
    user_id: str
    expiry: int

    def is_expired(self, now: int) -> bool:
        """A session is expired from its expiry second onwards."""
        return now >= self.expiry


# ============================================================================
# Pydantic Request Models (form-encoded)
# ============================================================================


class RegisterForm(BaseModel):
    """Register request. Both values are standard base64 of UTF-8 text."""
    email_base64: str = Field(..., description="Base64 encoded E-mail address")
    password_base64: str = Field(..., description="Base64 encoded password")


class LoginForm(BaseModel):
    """Login request. The username is the account's E-mail address."""
    username_base64: str = Field(..., description="Base64 encoded E-mail address")
    password_base64: str = Field(..., description="Base64 encoded password")


class SessionForm(BaseModel):
    """Session lookup request."""
    session_id: str = Field(..., description="Session ID returned by register or login")


class LogoutForm(BaseModel):
    """Logout request."""
    session_id: str = Field(..., description="Session ID to invalidate")


# ============================================================================
# Pydantic Response Models
# ============================================================================


class RegisterResponse(BaseModel):
    """Register result; status 200, 400 or 409."""
    status: int
    message: Optional[str] = None
    session_id: Optional[str] = None
    expiry: Optional[int] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": 200,
                "message": None,
                "session_id": "aVeryLong64CharacterAlphanumericSessionIdentifier0123456789abcd",
                "expiry": 1735689600
            }
        }
    }


class LoginResponse(BaseModel):
    """Login result; status 200 or 401."""
    status: int
    message: Optional[str] = None
    session_id: Optional[str] = None
    expiry: Optional[int] = None


class SessionResponse(BaseModel):
    """Session lookup result; status 200 or 401."""
    status: int
    user_id: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class LogoutResponse(BaseModel):
    """Logout result; status 200 or 401."""
    status: int


class ErrorResponse(BaseModel):
    """Error response schema."""
    detail: str


# ============================================================================
# E-mail validation
# ============================================================================

MAX_EMAIL_LENGTH = 255

EMAIL_PATTERN = re.compile(
    r'(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r'@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}])'
    r'|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))'
)


def is_storable_email(address: str) -> bool:
    """Whether the address fits the users.email column."""
    return len(address) <= MAX_EMAIL_LENGTH and "\x00" not in address


def is_valid_email(address: str) -> bool:
    """
    Check an E-mail address.

    The pattern is searched rather than fully matched, so an address only has
    to contain a well-formed local@domain part. The whole input must still fit
    the users.email column.
    """
    return is_storable_email(address) and EMAIL_PATTERN.search(address) is not None
