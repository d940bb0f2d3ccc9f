"""User and authentication schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
import re

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address"""
    return str(email or "").strip().lower()


class Credentials(BaseModel):
    """Email/password pair for signup"""
    email: str = Field(..., max_length=320)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_normalized(cls, v):
        """Normalize and sanity-check the email"""
        v = normalize_email(v)
        if not EMAIL_PATTERN.match(v):
            raise ValueError("A valid email address is required")
        return v

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class SignupRequest(Credentials):
    """User signup schema"""


class LoginRequest(BaseModel):
    """
    User login schema

    Shapes are not checked here; malformed credentials fail at
    authentication like any other bad login.
    """
    email: str
    password: str


class ProfileUpdate(BaseModel):
    """Mutable profile fields; omitted or null fields are left unchanged"""
    full_name: Optional[str] = Field(None, max_length=200)
    locale: Optional[str] = Field(None, max_length=35)
    time_zone: Optional[str] = Field(None, max_length=64)


class UserResponse(BaseModel):
    """Public user projection (never includes the password hash)"""
    id: int
    email: str
    is_verified: bool = False
    full_name: Optional[str] = None
    locale: Optional[str] = None
    time_zone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserEnvelope(BaseModel):
    """Success envelope carrying a user"""
    ok: bool = True
    user: UserResponse
