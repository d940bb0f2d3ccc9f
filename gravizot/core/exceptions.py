"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password; the two cases are indistinguishable"""
    def __init__(self):
        super().__init__("Invalid credentials")


class RefreshTokenError(AuthenticationError):
    """Refresh token cannot be rotated"""
    reason = "invalid"

    def __init__(self):
        super().__init__("Refresh failed")


class TokenNotFoundError(RefreshTokenError):
    reason = "not_found"


class TokenUserMismatchError(RefreshTokenError):
    reason = "user_mismatch"


class TokenAlreadyRevokedError(RefreshTokenError):
    reason = "already_revoked"


class TokenExpiredError(RefreshTokenError):
    reason = "expired"


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class CSRFError(AuthorizationError):
    """Double-submit CSRF check failed"""
    def __init__(self):
        super().__init__("Bad CSRF token")


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ConflictError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class EmailAlreadyRegisteredError(ConflictError):
    """Normalized email already has an account"""
    def __init__(self):
        super().__init__("Email already registered")


# Throttling
class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
