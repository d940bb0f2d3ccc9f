"""Pydantic schemas for API validation"""

from gravizot.schemas.user import (
    SignupRequest,
    LoginRequest,
    ProfileUpdate,
    UserResponse,
    UserEnvelope,
)
from gravizot.schemas.response import OkResponse, ErrorResponse

__all__ = [
    "SignupRequest", "LoginRequest", "ProfileUpdate", "UserResponse", "UserEnvelope",
    "OkResponse", "ErrorResponse",
]
